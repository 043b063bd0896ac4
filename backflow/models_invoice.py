"""
Invoice and Payment Models for Customer Billing
"""

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class Invoice(Base):
    """Invoice billed to a customer for tests and repairs"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    # Public UUID for the customer pay link (prevents enumeration)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    test_report_id = Column(Integer, ForeignKey("test_reports.id"), nullable=True)

    invoice_number = Column(String(50), nullable=False, index=True)
    status = Column(String(20), default="draft", nullable=False)
    # draft, sent, paid, partial, overdue, cancelled

    # Line items: [{"description", "quantity", "unit_price", "amount", "taxable"}]
    line_items = Column(JSON, default=list)
    subtotal = Column(Float, default=0, nullable=False)
    tax_rate = Column(Float, default=0, nullable=False)
    tax_amount = Column(Float, default=0, nullable=False)
    total_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, default=0, nullable=False)
    balance_due = Column(Float, nullable=False)
    currency = Column(String(10), default="USD")
    payment_terms = Column(Integer, default=30)
    notes = Column(Text, nullable=True)

    # Reminders
    reminder_count = Column(Integer, default=0, nullable=False)
    last_reminder_date = Column(DateTime, nullable=True)

    # Dates
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    sent_date = Column(DateTime, nullable=True)
    paid_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    payments = relationship("Payment", back_populates="invoice")


class Payment(Base):
    """Customer payment, usually backed by a Stripe PaymentIntent"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="USD")
    status = Column(String(20), default="pending", nullable=False)
    # pending, processing, completed, failed, refunded, cancelled
    payment_method = Column(String(50), default="stripe")
    description = Column(String(500), nullable=True)
    payment_metadata = Column("metadata", JSON, default=dict)

    # Stripe
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    client_secret = Column(String(255), nullable=True)
    receipt_url = Column(String(500), nullable=True)

    # Fees & refunds
    processing_fee = Column(Float, default=0)
    net_amount = Column(Float, default=0)
    refund_amount = Column(Float, default=0, nullable=False)
    refund_reason = Column(String(500), nullable=True)
    refund_date = Column(DateTime, nullable=True)
    failure_reason = Column(String(500), nullable=True)

    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    invoice = relationship("Invoice", back_populates="payments")
    customer = relationship("Customer")


class BillingInvoice(Base):
    """Subscription charge billed to the company itself via Stripe"""

    __tablename__ = "billing_invoices"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    stripe_invoice_id = Column(String(255), unique=True, nullable=False, index=True)
    amount = Column(Float, nullable=True)  # major units
    status = Column(String(20), default="paid")
    description = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
