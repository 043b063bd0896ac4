"""Invoice repository - Database operations for customer invoices"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Query, Session

from ...models_invoice import Invoice

REMINDER_STATUSES = ("sent", "partial", "overdue")
MAX_REMINDERS = 3


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def count_for_month(db: Session, company_id: int, year: int, month: int) -> int:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return (
            db.query(Invoice)
            .filter(Invoice.company_id == company_id, Invoice.issue_date >= start, Invoice.issue_date < end)
            .count()
        )

    @staticmethod
    def filtered_query(
        db: Session,
        company_id: int,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Query:
        query = db.query(Invoice).filter(Invoice.company_id == company_id)
        if status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if date_from:
            query = query.filter(Invoice.issue_date >= date_from)
        if date_to:
            query = query.filter(Invoice.issue_date <= date_to)
        return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc())

    @staticmethod
    def get_invoice(db: Session, invoice_id: int, company_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.company_id == company_id).first()

    @staticmethod
    def get_by_public_id(db: Session, public_id: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.public_id == public_id).first()

    @staticmethod
    def due_for_reminder(db: Session, today: date) -> list[Invoice]:
        """Overdue invoices across all companies that still get reminders"""
        return (
            db.query(Invoice)
            .filter(
                Invoice.status.in_(REMINDER_STATUSES),
                Invoice.due_date < today,
                Invoice.balance_due > 0,
                Invoice.reminder_count < MAX_REMINDERS,
            )
            .order_by(Invoice.due_date)
            .all()
        )

    @staticmethod
    def save(db: Session, invoice: Invoice) -> Invoice:
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice
