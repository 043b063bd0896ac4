"""
Unit tests for row-level security SQL generation and operator CLI helpers.
"""

from types import SimpleNamespace

import pytest

from backflow import database
from backflow.cli import build_parser, split_sql
from backflow.rls import TENANT_TABLES, build_rls_statements, get_rls_status, summarize, table_policy_sql
from backflow.security_middleware import clear_rls_context, set_rls_context

pytestmark = pytest.mark.unit


class TestPolicySql:
    def test_team_only_table(self):
        statements = table_policy_sql("leads")
        assert statements[0] == "ALTER TABLE public.leads ENABLE ROW LEVEL SECURITY"
        select = next(s for s in statements if s.startswith("CREATE POLICY leads_tenant_select"))
        assert "company_id = auth.current_company_id() AND auth.is_team_member()" in select
        delete = next(s for s in statements if s.startswith("CREATE POLICY leads_admin_delete"))
        assert "auth.is_admin()" in delete

    def test_customer_visible_table(self):
        select = next(
            s for s in table_policy_sql("devices", TENANT_TABLES["devices"]) if "devices_tenant_select" in s and s.startswith("CREATE")
        )
        assert "auth.is_customer() AND customer_id = auth.current_user_id()" in select

    def test_api_table_allows_api_clients(self):
        select = next(s for s in table_policy_sql("invoices", TENANT_TABLES["invoices"]) if s.startswith("CREATE POLICY invoices_tenant_select"))
        assert "auth.is_api_client()" in select

    def test_every_tenant_table_is_covered(self):
        statements = build_rls_statements()
        for table in TENANT_TABLES:
            assert f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY" in statements
        assert any("webhook_deliveries_tenant" in s for s in statements)
        assert statements[0] == "CREATE SCHEMA IF NOT EXISTS auth"

    def test_policies_are_reapplicable(self):
        statements = build_rls_statements()
        creates = [s for s in statements if s.startswith("CREATE POLICY")]
        drops = [s for s in statements if s.startswith("DROP POLICY IF EXISTS")]
        assert len(creates) == len(drops)


class TestStatus:
    def test_summary(self):
        tables = [
            {"table_name": "a", "rls_enabled": True, "policy_count": 4},
            {"table_name": "b", "rls_enabled": True, "policy_count": 0},
            {"table_name": "c", "rls_enabled": False, "policy_count": 0},
            {"table_name": "d", "rls_enabled": False, "policy_count": 0},
        ]
        assert summarize(tables) == {
            "total_tables": 4,
            "tables_with_rls": 2,
            "tables_with_policies": 1,
            "tables_with_rls_no_policies": 1,
            "rls_coverage_percent": 50,
        }

    def test_sqlite_reports_unsupported(self, db):
        status = get_rls_status(db)
        assert status["supported"] is False
        assert status["summary"]["tables_with_rls"] == 0
        assert {t["table_name"] for t in status["tables"]} >= {"companies", "customers", "webhook_deliveries"}
        assert status["recommendations"]


class PostgresSessionDouble:
    """Records what the RLS helpers send to a Postgres-bound session"""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name="postgresql"))

    def execute(self, statement, params=None):
        if self.fail:
            raise RuntimeError("connection lost")
        self.calls.append(("execute", params))

    def rollback(self):
        self.calls.append("rollback")

    def commit(self):
        self.calls.append("commit")

    def invalidate(self):
        self.calls.append("invalidate")

    def close(self):
        self.calls.append("close")

    def settings(self):
        values = {}
        for call in self.calls:
            if isinstance(call, tuple):
                values[call[1]["name"]] = call[1].get("value", "")
        return values


class TestRlsContext:
    def test_clear_commits_empty_settings(self):
        session = PostgresSessionDouble()
        set_rls_context(session, 1, 2, "admin")

        clear_rls_context(session)

        assert session.settings() == {
            "app.current_company_id": "",
            "app.current_user_id": "",
            "app.current_role": "",
        }
        assert session.calls[-1] == "commit"

    def test_unresettable_connection_is_discarded(self):
        session = PostgresSessionDouble(fail=True)
        clear_rls_context(session)
        assert session.calls[-1] == "invalidate"

    def test_request_session_is_reset_before_close(self, monkeypatch):
        session = PostgresSessionDouble()
        monkeypatch.setattr(database, "SessionLocal", lambda: session)

        dependency = database.get_db()
        db = next(dependency)
        set_rls_context(db, 7, 3, "technician")
        dependency.close()

        assert session.settings()["app.current_company_id"] == ""
        assert session.calls[-2:] == ["commit", "close"]

    def test_sqlite_is_untouched(self, db):
        clear_rls_context(db)
        set_rls_context(db, 1)


class TestCli:
    def test_split_sql_drops_comments(self):
        sql = """
        -- add an index
        CREATE INDEX ix_devices_next ON devices (next_test_date);
        -- comment only
        ;
        UPDATE companies SET plan = 'starter'
        """
        assert split_sql(sql) == [
            "CREATE INDEX ix_devices_next ON devices (next_test_date)",
            "UPDATE companies SET plan = 'starter'",
        ]

    def test_parser(self):
        args = build_parser().parse_args(["create-admin", "--company", "fisher-backflows", "--email", "a@b.com"])
        assert args.command == "create-admin"
        assert args.company == "fisher-backflows"
        assert args.password is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
