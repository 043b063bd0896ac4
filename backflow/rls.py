"""
Row-Level Security for the tenant tables

Renders the SQL that creates the ``auth`` helper functions and the per-table
policies, applies it, and reports the current RLS state. Policies read the
session settings written by ``security_middleware.set_rls_context``.
"""

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .database import is_postgres

logger = logging.getLogger(__name__)

# table -> how a portal customer is matched to a row (None = team only)
TENANT_TABLES = {
    "customers": "id = auth.current_user_id()",
    "devices": "customer_id = auth.current_user_id()",
    "appointments": "customer_id = auth.current_user_id()",
    "test_reports": "customer_id = auth.current_user_id()",
    "invoices": "customer_id = auth.current_user_id()",
    "payments": "customer_id = auth.current_user_id()",
    "leads": None,
    "team_users": None,
    "team_invitations": None,
    "auth_sessions": None,
    "webhook_endpoints": None,
    "api_keys": None,
    "api_usage_logs": None,
    "audit_logs": None,
    "billing_invoices": None,
}

TEAM_ROLES = ("admin", "manager", "technician")

# Tables an API key may read (and, for usage logs and keys, write) for its company
API_TABLES = {"customers", "invoices", "test_reports", "api_keys", "api_usage_logs"}

HELPER_FUNCTIONS = [
    "CREATE SCHEMA IF NOT EXISTS auth",
    """
    CREATE OR REPLACE FUNCTION auth.current_company_id()
    RETURNS INTEGER AS $$
      SELECT NULLIF(current_setting('app.current_company_id', true), '')::INTEGER
    $$ LANGUAGE sql STABLE
    """,
    """
    CREATE OR REPLACE FUNCTION auth.current_user_id()
    RETURNS INTEGER AS $$
      SELECT NULLIF(current_setting('app.current_user_id', true), '')::INTEGER
    $$ LANGUAGE sql STABLE
    """,
    """
    CREATE OR REPLACE FUNCTION auth.is_team_member()
    RETURNS BOOLEAN AS $$
    BEGIN
      IF COALESCE(current_setting('app.current_role', true), '') NOT IN ({team_roles}) THEN
        RETURN FALSE;
      END IF;
      RETURN EXISTS (
        SELECT 1 FROM public.team_users
        WHERE id = auth.current_user_id()
          AND company_id = auth.current_company_id()
          AND is_active
      );
    END;
    $$ LANGUAGE plpgsql STABLE SECURITY DEFINER
    """,
    """
    CREATE OR REPLACE FUNCTION auth.is_admin()
    RETURNS BOOLEAN AS $$
    BEGIN
      RETURN auth.is_team_member() AND EXISTS (
        SELECT 1 FROM public.team_users
        WHERE id = auth.current_user_id() AND role = 'admin'
      );
    END;
    $$ LANGUAGE plpgsql STABLE SECURITY DEFINER
    """,
    """
    CREATE OR REPLACE FUNCTION auth.is_customer()
    RETURNS BOOLEAN AS $$
      SELECT COALESCE(current_setting('app.current_role', true), '') = 'customer'
    $$ LANGUAGE sql STABLE
    """,
    """
    CREATE OR REPLACE FUNCTION auth.is_api_client()
    RETURNS BOOLEAN AS $$
      SELECT COALESCE(current_setting('app.current_role', true), '') = 'api'
    $$ LANGUAGE sql STABLE
    """,
]


def _helper_sql() -> list[str]:
    roles = ", ".join(f"'{r}'" for r in TEAM_ROLES)
    return [stmt.strip().replace("{team_roles}", roles) for stmt in HELPER_FUNCTIONS]


def table_policy_sql(table: str, customer_clause: str = None) -> list[str]:
    """ENABLE RLS plus select/insert/update tenant policies and an admin-only delete policy"""
    tenant = "company_id = auth.current_company_id()"
    clauses = ["auth.is_team_member()"]
    if customer_clause:
        clauses.append(f"(auth.is_customer() AND {customer_clause})")
    if table in API_TABLES:
        clauses.append("auth.is_api_client()")
    readers = clauses[0] if len(clauses) == 1 else f"({' OR '.join(clauses)})"

    statements = [f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY"]
    policies = {
        f"{table}_tenant_select": f"FOR SELECT USING ({tenant} AND {readers})",
        f"{table}_tenant_insert": f"FOR INSERT WITH CHECK ({tenant} AND {readers})",
        f"{table}_tenant_update": f"FOR UPDATE USING ({tenant} AND {readers})",
        f"{table}_admin_delete": f"FOR DELETE USING ({tenant} AND auth.is_admin())",
    }
    for name, body in policies.items():
        statements.append(f"DROP POLICY IF EXISTS {name} ON public.{table}")
        statements.append(f"CREATE POLICY {name} ON public.{table} {body}")
    return statements


def build_rls_statements() -> list[str]:
    """Every statement needed to (re)apply tenant isolation, in order"""
    statements = _helper_sql()

    statements.append("ALTER TABLE public.companies ENABLE ROW LEVEL SECURITY")
    statements.append("DROP POLICY IF EXISTS companies_tenant_select ON public.companies")
    statements.append(
        "CREATE POLICY companies_tenant_select ON public.companies FOR SELECT "
        "USING (id = auth.current_company_id())"
    )

    for table, customer_clause in TENANT_TABLES.items():
        statements.extend(table_policy_sql(table, customer_clause))

    # Deliveries carry no company_id; scope them through their endpoint
    statements.append("ALTER TABLE public.webhook_deliveries ENABLE ROW LEVEL SECURITY")
    statements.append("DROP POLICY IF EXISTS webhook_deliveries_tenant ON public.webhook_deliveries")
    statements.append(
        "CREATE POLICY webhook_deliveries_tenant ON public.webhook_deliveries FOR ALL USING ("
        "EXISTS (SELECT 1 FROM public.webhook_endpoints e WHERE e.id = webhook_endpoint_id "
        "AND e.company_id = auth.current_company_id()) AND auth.is_admin())"
    )
    return statements


def apply_rls(engine: Engine) -> int:
    """Apply all statements in one transaction, returns the number executed"""
    if engine.dialect.name != "postgresql":
        raise RuntimeError(f"Row-level security requires PostgreSQL, not {engine.dialect.name}")

    statements = build_rls_statements()
    with engine.begin() as conn:
        for i, stmt in enumerate(statements, 1):
            logger.debug(f"RLS statement {i}/{len(statements)}: {stmt.splitlines()[0][:80]}")
            conn.execute(text(stmt))
    logger.info(f"✅ Applied {len(statements)} RLS statements")
    return len(statements)


RLS_STATUS_QUERY = """
SELECT c.relname AS table_name,
       c.relrowsecurity AS rls_enabled,
       COALESCE(array_agg(p.policyname) FILTER (WHERE p.policyname IS NOT NULL), '{}') AS policies
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace AND n.nspname = 'public'
LEFT JOIN pg_policies p ON p.schemaname = 'public' AND p.tablename = c.relname
WHERE c.relname = ANY(:tables)
GROUP BY c.relname, c.relrowsecurity
"""


def monitored_tables() -> list[str]:
    return ["companies", *TENANT_TABLES.keys(), "webhook_deliveries"]


def summarize(tables: list[dict]) -> dict:
    total = len(tables)
    with_rls = len([t for t in tables if t["rls_enabled"]])
    with_policies = len([t for t in tables if t["policy_count"] > 0])
    return {
        "total_tables": total,
        "tables_with_rls": with_rls,
        "tables_with_policies": with_policies,
        "tables_with_rls_no_policies": len(
            [t for t in tables if t["rls_enabled"] and t["policy_count"] == 0]
        ),
        "rls_coverage_percent": round(with_rls / total * 100) if total else 0,
    }


def get_rls_status(db: Session) -> dict:
    """Per-table RLS flag and policy names; every table reports disabled off Postgres"""
    names = monitored_tables()
    found = {}
    supported = is_postgres(db)

    if supported:
        rows = db.execute(text(RLS_STATUS_QUERY), {"tables": names}).mappings().all()
        found = {row["table_name"]: row for row in rows}

    tables = []
    for name in names:
        row = found.get(name)
        policies = list(row["policies"]) if row else []
        tables.append(
            {
                "table_name": name,
                "rls_enabled": bool(row["rls_enabled"]) if row else False,
                "policy_count": len(policies),
                "policies": policies,
            }
        )

    summary = summarize(tables)
    recommendations = []
    if not supported:
        recommendations.append("Row-level security needs PostgreSQL; run `backflow-admin apply-rls` there")
    elif summary["tables_with_rls"] < summary["total_tables"]:
        missing = [t["table_name"] for t in tables if not t["rls_enabled"]]
        recommendations.append(f"Enable RLS on: {', '.join(missing)}")
    if summary["tables_with_rls_no_policies"]:
        recommendations.append("Tables with RLS but no policies deny all access; add policies")

    return {
        "supported": supported,
        "tables": tables,
        "summary": summary,
        "recommendations": recommendations,
    }
