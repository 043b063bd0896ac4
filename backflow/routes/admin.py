"""Admin dashboard - metrics, audit trail and security status"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..cache import cached, metrics_cache_key
from ..database import get_db
from ..models import Appointment, AuditLog, Customer, Device, TeamUser, TestReport
from ..models_invoice import Invoice, Payment
from ..rls import get_rls_status
from ..shared.pagination import Pagination, paginate
from ..shared.validators import parse_iso_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

METRICS_TTL = 300
DUE_SOON_DAYS = 30
PENDING_INVOICE_STATUSES = ("sent", "partial", "overdue")


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    user_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    event_metadata: Optional[dict] = None
    success: bool
    severity: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: Optional[datetime] = None


class AuditLogListResponse(BaseModel):
    data: list[AuditLogResponse]
    pagination: Pagination


@cached(key_prefix="admin_metrics", ttl=METRICS_TTL, key_builder=lambda db, company_id: metrics_cache_key(company_id))
def build_metrics(db: Session, company_id: int) -> dict:
    today = date.today()
    month_start = today.replace(day=1)

    by_status = dict(
        db.query(Customer.status, func.count(Customer.id))
        .filter(Customer.company_id == company_id)
        .group_by(Customer.status)
        .all()
    )
    devices_due = (
        db.query(Device)
        .filter(
            Device.company_id == company_id,
            Device.is_active.is_(True),
            Device.next_test_date.isnot(None),
            Device.next_test_date <= today + timedelta(days=DUE_SOON_DAYS),
        )
        .count()
    )
    upcoming = (
        db.query(Appointment)
        .filter(
            Appointment.company_id == company_id,
            Appointment.status.in_(("scheduled", "confirmed")),
            Appointment.scheduled_date >= today,
        )
        .count()
    )
    pending_total = (
        db.query(func.coalesce(func.sum(Invoice.balance_due), 0))
        .filter(Invoice.company_id == company_id, Invoice.status.in_(PENDING_INVOICE_STATUSES))
        .scalar()
    )
    revenue = (
        db.query(func.coalesce(func.sum(Payment.amount - Payment.refund_amount), 0))
        .filter(
            Payment.company_id == company_id,
            Payment.status.in_(("completed", "refunded")),
            Payment.processed_at >= datetime.combine(month_start, datetime.min.time()),
        )
        .scalar()
    )
    tests_total = db.query(TestReport).filter(TestReport.company_id == company_id).count()
    tests_passed = (
        db.query(TestReport).filter(TestReport.company_id == company_id, TestReport.status == "Passed").count()
    )

    return {
        "customers": {
            "total": sum(by_status.values()),
            "active": by_status.get("Active", 0),
            "inactive": by_status.get("Inactive", 0),
            "needs_service": by_status.get("Needs Service", 0),
        },
        "devices_due_30_days": devices_due,
        "upcoming_appointments": upcoming,
        "pending_invoice_total": round(float(pending_total or 0), 2),
        "revenue_this_month": round(float(revenue or 0), 2),
        "tests": {
            "total": tests_total,
            "passed": tests_passed,
            "pass_rate": round(tests_passed / tests_total * 100, 1) if tests_total else 0.0,
        },
        "generated_at": datetime.utcnow().isoformat(),
    }


@router.get("/metrics")
async def get_metrics(current_user: TeamUser = Depends(require_admin), db: Session = Depends(get_db)):
    """Dashboard numbers, cached for five minutes"""
    return build_metrics(db, current_user.company_id)


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    event_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    entity_type: Optional[str] = Query(None),
    success: Optional[bool] = Query(None),
    severity: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: TeamUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        start = parse_iso_date(date_from, "date_from")
        end = parse_iso_date(date_to, "date_to")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    query = db.query(AuditLog).filter(AuditLog.company_id == current_user.company_id)
    if event_type:
        # "auth." matches every auth event
        if event_type.endswith("."):
            query = query.filter(AuditLog.event_type.like(f"{event_type}%"))
        else:
            query = query.filter(AuditLog.event_type == event_type)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if success is not None:
        query = query.filter(AuditLog.success.is_(success))
    if severity:
        query = query.filter(AuditLog.severity == severity)
    if start:
        query = query.filter(AuditLog.created_at >= datetime.combine(start, datetime.min.time()))
    if end:
        query = query.filter(AuditLog.created_at < datetime.combine(end + timedelta(days=1), datetime.min.time()))

    items, pagination = paginate(query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()), page, limit)
    return {"data": items, "pagination": pagination}


@router.get("/security/rls-status")
async def rls_status(current_user: TeamUser = Depends(require_admin), db: Session = Depends(get_db)):
    logger.info(f"🛡️ RLS status requested by {current_user.email}")
    return get_rls_status(db)
