"""Payment router - office payments, refunds and subscription checkout"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_admin
from ...database import get_db
from ...models import TeamUser
from .schemas import (
    CheckoutRequest,
    CheckoutResponse,
    PaymentProcessRequest,
    PaymentResponse,
    ProcessPaymentResponse,
    RefundRequest,
)
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


@router.get("/payments", response_model=list[PaymentResponse])
async def list_payments(
    customer_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    current_user: TeamUser = Depends(get_current_team_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_payments(current_user.company_id, customer_id, status)


@router.post("/payments/process", response_model=ProcessPaymentResponse)
async def process_payment(
    data: PaymentProcessRequest,
    request: Request,
    current_user: TeamUser = Depends(get_current_team_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Take a card payment for a customer, optionally against an invoice"""
    return await service.process_payment(
        company_id=current_user.company_id,
        customer_id=data.customer_id,
        amount=data.amount,
        invoice_id=data.invoice_id,
        payment_method_id=data.payment_method_id,
        description=data.description,
        actor_user_id=current_user.id,
        request=request,
    )


@router.post("/payments/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: int,
    data: RefundRequest,
    request: Request,
    current_user: TeamUser = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return service.refund_payment(payment_id, current_user, data.amount, data.reason, request)


@router.post("/billing/checkout", response_model=CheckoutResponse)
async def create_checkout(
    data: CheckoutRequest,
    current_user: TeamUser = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service),
):
    """Start a Stripe Checkout session for the company subscription"""
    return service.create_checkout_session(data.plan, current_user)
