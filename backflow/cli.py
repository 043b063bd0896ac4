"""
backflow-admin - operator commands

Usage:
    backflow-admin init-db
    backflow-admin apply-rls
    backflow-admin verify-rls
    backflow-admin run-sql migrations/0003_add_index.sql
    backflow-admin create-admin --company fisher-backflows --email owner@example.com
    backflow-admin process-webhooks
    backflow-admin send-reminders
"""

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import text

from . import models  # noqa: F401
from . import models_invoice  # noqa: F401
from . import models_webhook  # noqa: F401
from .config import PASSWORD_MIN_LENGTH
from .database import Base, SessionLocal, engine
from .domain.invoices.service import InvoiceService
from .domain.team.repository import TeamRepository
from .models import Company, TeamUser
from .rls import apply_rls, get_rls_status
from .security_utils import hash_password
from .services.test_due_reminders import send_test_due_reminders
from .services.webhook_delivery import process_pending_webhooks

logger = logging.getLogger("backflow.cli")


def split_sql(sql: str) -> list[str]:
    """Split a migration file into statements, dropping comment-only chunks"""
    statements = []
    for chunk in sql.split(";"):
        lines = [line for line in chunk.strip().splitlines() if not line.strip().startswith("--")]
        stmt = "\n".join(lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


def cmd_init_db(args) -> int:
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info(f"✅ Created {len(Base.metadata.tables)} tables")
    return 0


def cmd_apply_rls(args) -> int:
    count = apply_rls(engine)
    logger.info(f"✅ Row-level security applied ({count} statements)")
    return 0


def cmd_verify_rls(args) -> int:
    db = SessionLocal()
    try:
        status = get_rls_status(db)
    finally:
        db.close()
    print(json.dumps(status, indent=2, default=str))
    summary = status["summary"]
    return 0 if summary["tables_with_rls"] == summary["total_tables"] else 1


def cmd_run_sql(args) -> int:
    path = Path(args.file)
    if not path.exists():
        logger.error(f"SQL file not found: {path}")
        return 1

    statements = split_sql(path.read_text())
    logger.info(f"Found {len(statements)} SQL statements to execute")
    with engine.begin() as conn:
        for i, stmt in enumerate(statements, 1):
            logger.info(f"Executing statement {i}/{len(statements)}...")
            conn.execute(text(stmt))
    logger.info("✅ SQL file applied")
    return 0


def cmd_create_admin(args) -> int:
    password = args.password or getpass.getpass("Password: ")
    if len(password) < PASSWORD_MIN_LENGTH:
        logger.error(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        return 1

    db = SessionLocal()
    try:
        company = db.query(Company).filter(Company.slug == args.company).first()
        if not company:
            logger.error(f"Company not found: {args.company}")
            return 1
        email = args.email.strip().lower()
        if TeamRepository.get_user_by_email(db, email):
            logger.error(f"A team user already exists for {email}")
            return 1

        user = TeamUser(
            company_id=company.id,
            email=email,
            password_hash=hash_password(password),
            first_name=args.first_name,
            last_name=args.last_name,
            role="admin",
            is_active=True,
            failed_login_attempts=0,
        )
        db.add(user)
        db.commit()
        logger.info(f"✅ Admin {email} created for {company.name}")
        return 0
    finally:
        db.close()


async def _process_webhooks() -> dict:
    db = SessionLocal()
    try:
        return await process_pending_webhooks(db)
    finally:
        db.close()


def cmd_process_webhooks(args) -> int:
    summary = asyncio.run(_process_webhooks())
    logger.info(f"Webhook run: {summary}")
    return 0


async def _send_reminders() -> dict:
    db = SessionLocal()
    try:
        return {
            "payment_reminders": await InvoiceService(db).send_payment_reminders(),
            "test_due_reminders": await send_test_due_reminders(db),
        }
    finally:
        db.close()


def cmd_send_reminders(args) -> int:
    print(json.dumps(asyncio.run(_send_reminders()), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="backflow-admin", description="Backflow Buddy operator commands")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all tables").set_defaults(func=cmd_init_db)
    sub.add_parser("apply-rls", help="install row-level security policies").set_defaults(func=cmd_apply_rls)
    sub.add_parser("verify-rls", help="report RLS coverage").set_defaults(func=cmd_verify_rls)

    run_sql = sub.add_parser("run-sql", help="execute a SQL file in one transaction")
    run_sql.add_argument("file")
    run_sql.set_defaults(func=cmd_run_sql)

    create_admin = sub.add_parser("create-admin", help="add an admin to an existing company")
    create_admin.add_argument("--company", required=True, help="company slug")
    create_admin.add_argument("--email", required=True)
    create_admin.add_argument("--password", help="prompted for when omitted")
    create_admin.add_argument("--first-name")
    create_admin.add_argument("--last-name")
    create_admin.set_defaults(func=cmd_create_admin)

    sub.add_parser("process-webhooks", help="deliver due webhooks once").set_defaults(func=cmd_process_webhooks)
    sub.add_parser("send-reminders", help="send payment and test-due reminders").set_defaults(
        func=cmd_send_reminders
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")
    try:
        return args.func(args)
    except Exception as e:
        logger.error(f"❌ {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
