"""Test report repository - Database operations for completed tests"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Query, Session

from ...models import TestReport


class TestReportRepository:
    """Repository for test report database operations"""

    @staticmethod
    def count_for_month(db: Session, company_id: int, year: int, month: int) -> int:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return (
            db.query(TestReport)
            .filter(
                TestReport.company_id == company_id,
                TestReport.test_date >= start,
                TestReport.test_date < end,
            )
            .count()
        )

    @staticmethod
    def filtered_query(
        db: Session,
        company_id: int,
        customer_id: Optional[int] = None,
        device_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Query:
        query = db.query(TestReport).filter(TestReport.company_id == company_id)
        if customer_id:
            query = query.filter(TestReport.customer_id == customer_id)
        if device_id:
            query = query.filter(TestReport.device_id == device_id)
        if status:
            query = query.filter(TestReport.status == status)
        if date_from:
            query = query.filter(TestReport.test_date >= date_from)
        if date_to:
            query = query.filter(TestReport.test_date <= date_to)
        return query.order_by(TestReport.test_date.desc(), TestReport.id.desc())

    @staticmethod
    def get_report(db: Session, report_id: int, company_id: int) -> Optional[TestReport]:
        return db.query(TestReport).filter(TestReport.id == report_id, TestReport.company_id == company_id).first()
