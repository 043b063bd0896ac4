"""Payment domain schemas"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentProcessRequest(BaseModel):
    customer_id: int
    invoice_id: Optional[int] = None
    amount: float = Field(..., gt=0)
    payment_method_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)


class PortalPaymentRequest(BaseModel):
    """Portal payments default to the full outstanding balance"""

    amount: Optional[float] = Field(None, gt=0)
    payment_method_id: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class CheckoutRequest(BaseModel):
    plan: Literal["starter", "professional", "enterprise"]


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    invoice_id: Optional[int] = None
    amount: float
    currency: Optional[str] = None
    status: str
    payment_method: Optional[str] = None
    description: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    receipt_url: Optional[str] = None
    processing_fee: Optional[float] = None
    net_amount: Optional[float] = None
    refund_amount: float = 0
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProcessPaymentResponse(BaseModel):
    success: bool
    status: str
    payment: PaymentResponse
    client_secret: Optional[str] = None
    requires_action: bool = False


class CheckoutResponse(BaseModel):
    session_id: str
    url: str
