"""
Customer portal

Customers sign in with the account number printed on their invoices, then
see their devices, book or move appointments and pay invoices online.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..audit_logger import log_request_event
from ..auth import (
    PORTAL_COOKIE,
    clear_session_cookie,
    create_session,
    get_current_customer,
    revoke_session,
    security,
    session_token_from_request,
    set_session_cookie,
)
from ..database import get_db
from ..domain.appointments.schemas import AppointmentResponse, BookingRequest, BookingResponse, RescheduleRequest
from ..domain.appointments.service import AppointmentService
from ..domain.customers.schemas import CustomerResponse
from ..domain.devices.schemas import DeviceResponse
from ..domain.devices.service import DeviceService
from ..domain.invoices.schemas import InvoiceResponse
from ..domain.payments.schemas import PortalPaymentRequest, ProcessPaymentResponse
from ..domain.payments.service import PaymentService
from ..models import Company, Customer
from ..models_invoice import Invoice
from ..rate_limiter import create_rate_limiter
from ..security_utils import DUMMY_PASSWORD_HASH, check_password_strength, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["Customer Portal"])

portal_login_limit = create_rate_limiter(limit=5, window_seconds=300, key_prefix="portal_login")
portal_register_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="portal_register")

INVALID_CREDENTIALS = "Invalid credentials"


class PortalRegisterRequest(BaseModel):
    company_slug: str
    account_number: str
    email: str
    password: str

    @field_validator("email", "company_slug")
    @classmethod
    def normalize(cls, v):
        return v.strip().lower()

    @field_validator("account_number")
    @classmethod
    def normalize_account(cls, v):
        return v.strip().upper()


class PortalLoginRequest(BaseModel):
    company_slug: str
    email: str
    password: str

    @field_validator("email", "company_slug")
    @classmethod
    def normalize(cls, v):
        return v.strip().lower()


class PortalSessionResponse(BaseModel):
    customer: CustomerResponse
    company_name: str
    session_expires_at: datetime
    token: str


def _company_by_slug(db: Session, slug: str) -> Optional[Company]:
    return db.query(Company).filter(Company.slug == slug).first()


def _start_session(db: Session, customer: Customer, company: Company, request: Request, response: Response) -> dict:
    customer.portal_last_login = datetime.utcnow()
    db.commit()
    token, expires_at = create_session(db, "customer", customer.id, customer.company_id, request)
    set_session_cookie(response, PORTAL_COOKIE, token, expires_at)
    return {"customer": customer, "company_name": company.name, "session_expires_at": expires_at, "token": token}


# ============================================================================
# AUTH
# ============================================================================


@router.post("/auth/register", response_model=PortalSessionResponse, status_code=201)
async def register(
    data: PortalRegisterRequest,
    request: Request,
    response: Response,
    _: None = Depends(portal_register_limit),
    db: Session = Depends(get_db),
):
    """Set a portal password using the account number and the email on file"""
    company = _company_by_slug(db, data.company_slug)
    customer = None
    if company:
        customer = (
            db.query(Customer)
            .filter(Customer.company_id == company.id, Customer.account_number == data.account_number)
            .first()
        )
    if not customer or (customer.email or "").lower() != data.email:
        raise HTTPException(status_code=400, detail="Account number and email do not match our records")
    if customer.portal_password_hash:
        raise HTTPException(status_code=409, detail="Portal account already exists. Please sign in.")

    strength = check_password_strength(data.password)
    if not strength["is_valid"]:
        raise HTTPException(status_code=400, detail={"error": "Password is too weak", "feedback": strength["feedback"]})

    customer.portal_password_hash = hash_password(data.password)
    db.commit()
    log_request_event(
        db,
        request,
        "portal.registered",
        company_id=company.id,
        entity_type="customer",
        entity_id=customer.id,
    )
    logger.info(f"🏠 Portal account created for {customer.account_number}")
    return _start_session(db, customer, company, request, response)


@router.post("/auth/login", response_model=PortalSessionResponse)
async def login(
    data: PortalLoginRequest,
    request: Request,
    response: Response,
    _: None = Depends(portal_login_limit),
    db: Session = Depends(get_db),
):
    company = _company_by_slug(db, data.company_slug)
    customer = None
    if company:
        customer = (
            db.query(Customer)
            .filter(
                Customer.company_id == company.id,
                Customer.email == data.email,
                Customer.portal_password_hash.isnot(None),
            )
            .first()
        )
    if not customer:
        verify_password(data.password, DUMMY_PASSWORD_HASH)
    ok = customer is not None and customer.status != "Inactive" and verify_password(
        data.password, customer.portal_password_hash
    )
    if not ok:
        log_request_event(
            db,
            request,
            "portal.login.failure",
            company_id=company.id if company else None,
            entity_type="customer",
            entity_id=customer.id if customer else None,
            metadata={"email": data.email},
            success=False,
        )
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    log_request_event(
        db, request, "portal.login.success", company_id=company.id, entity_type="customer", entity_id=customer.id
    )
    return _start_session(db, customer, company, request, response)


@router.post("/auth/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
):
    revoke_session(db, session_token_from_request(request, PORTAL_COOKIE, credentials))
    clear_session_cookie(response, PORTAL_COOKIE)
    return {"success": True}


@router.get("/me", response_model=CustomerResponse)
async def me(customer: Customer = Depends(get_current_customer)):
    return customer


# ============================================================================
# DEVICES & APPOINTMENTS
# ============================================================================


@router.get("/devices", response_model=list[DeviceResponse])
async def my_devices(customer: Customer = Depends(get_current_customer), db: Session = Depends(get_db)):
    return DeviceService(db).list_devices(customer.company_id, customer_id=customer.id)


@router.get("/appointments", response_model=list[AppointmentResponse])
async def my_appointments(customer: Customer = Depends(get_current_customer), db: Session = Depends(get_db)):
    return AppointmentService(db).list_appointments(customer.company_id, customer_id=customer.id)


@router.post("/appointments", response_model=BookingResponse, status_code=201)
async def book_appointment(
    data: BookingRequest,
    request: Request,
    customer: Customer = Depends(get_current_customer),
    db: Session = Depends(get_db),
):
    """Book a test for one of the customer's own devices"""
    booking = data.model_copy(update={"customer_id": customer.id, "technician_id": None})
    return await AppointmentService(db).book(booking, customer.company_id, customer, None, request)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    request: Request,
    customer: Customer = Depends(get_current_customer),
    db: Session = Depends(get_db),
):
    service = AppointmentService(db)
    appointment = service.get_appointment(appointment_id, customer.company_id)
    if appointment.customer_id != customer.id:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return await service.reschedule(appointment, data, None, request)


# ============================================================================
# INVOICES & PAYMENTS
# ============================================================================


def _own_invoice(db: Session, invoice_id: int, customer: Customer) -> Invoice:
    invoice = (
        db.query(Invoice)
        .filter(
            Invoice.id == invoice_id,
            Invoice.company_id == customer.company_id,
            Invoice.customer_id == customer.id,
            Invoice.status != "draft",
        )
        .first()
    )
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.get("/invoices", response_model=list[InvoiceResponse])
async def my_invoices(customer: Customer = Depends(get_current_customer), db: Session = Depends(get_db)):
    return (
        db.query(Invoice)
        .filter(
            Invoice.company_id == customer.company_id,
            Invoice.customer_id == customer.id,
            Invoice.status != "draft",
        )
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )


@router.post("/invoices/{invoice_id}/pay", response_model=ProcessPaymentResponse)
async def pay_invoice(
    invoice_id: int,
    data: PortalPaymentRequest,
    request: Request,
    customer: Customer = Depends(get_current_customer),
    db: Session = Depends(get_db),
):
    """Pay an invoice by card; defaults to the full balance due"""
    invoice = _own_invoice(db, invoice_id, customer)
    return await PaymentService(db).process_payment(
        company_id=customer.company_id,
        customer_id=customer.id,
        amount=data.amount if data.amount is not None else invoice.balance_due,
        invoice_id=invoice.id,
        payment_method_id=data.payment_method_id,
        request=request,
    )
