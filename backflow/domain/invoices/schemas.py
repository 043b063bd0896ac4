"""Invoice domain schemas"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ...shared.pagination import Pagination

InvoiceStatus = Literal["draft", "sent", "paid", "partial", "overdue", "cancelled"]


class LineItem(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: float = Field(1, gt=0)
    unit_price: float = Field(..., ge=0)
    amount: Optional[float] = None
    taxable: bool = True

    @model_validator(mode="after")
    def fill_amount(self):
        if self.amount is None:
            self.amount = round(self.quantity * self.unit_price, 2)
        return self


class InvoiceCreate(BaseModel):
    customer_id: int
    appointment_id: Optional[int] = None
    test_report_id: Optional[int] = None
    line_items: list[LineItem] = Field(..., min_length=1)
    issue_date: Optional[date] = None
    payment_terms: Optional[int] = Field(None, ge=0, le=365)
    notes: Optional[str] = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    public_id: str
    invoice_number: str
    customer_id: int
    appointment_id: Optional[int] = None
    test_report_id: Optional[int] = None
    status: str
    line_items: list[dict] = []
    subtotal: float
    tax_rate: float
    tax_amount: float
    total_amount: float
    paid_amount: float
    balance_due: float
    currency: Optional[str] = None
    reminder_count: int
    last_reminder_date: Optional[datetime] = None
    issue_date: date
    due_date: date
    sent_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class InvoiceListResponse(BaseModel):
    data: list[InvoiceResponse]
    pagination: Pagination


class PublicInvoiceResponse(BaseModel):
    """What the customer sees on the pay link"""

    invoice_number: str
    status: str
    company_name: str
    customer_name: str
    line_items: list[dict]
    subtotal: float
    tax_amount: float
    total_amount: float
    paid_amount: float
    balance_due: float
    issue_date: date
    due_date: date
