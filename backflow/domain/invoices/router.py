"""Invoice router - customer billing endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_admin, require_staff
from ...database import get_db
from ...models import TeamUser
from ...rate_limiter import create_rate_limiter
from .schemas import InvoiceCreate, InvoiceListResponse, InvoiceResponse, PublicInvoiceResponse
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])

public_rate_limit = create_rate_limiter(limit=60, window_seconds=60, key_prefix="public_invoice")


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    status: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: TeamUser = Depends(get_current_team_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.list_invoices(current_user.company_id, status, customer_id, date_from, date_to, page, limit)


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: TeamUser = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Create a draft invoice from manual line items"""
    return service.create_invoice(data, current_user)


@router.post("/send-reminders")
async def send_reminders(
    current_user: TeamUser = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Run the overdue reminder sweep now instead of waiting for the worker"""
    logger.info(f"📨 Manual reminder sweep by {current_user.email}")
    return await service.send_payment_reminders()


@router.get("/public/{public_id}", response_model=PublicInvoiceResponse)
async def get_public_invoice(
    public_id: str,
    _: None = Depends(public_rate_limit),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_public_invoice(public_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice(invoice_id, current_user.company_id)


@router.post("/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: int,
    current_user: TeamUser = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return await service.send_invoice(invoice_id, current_user)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: int,
    current_user: TeamUser = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.cancel_invoice(invoice_id, current_user)
