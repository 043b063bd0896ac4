"""Invoice service - numbering, totals, sending and overdue reminders"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...audit_logger import log_event
from ...cache import invalidate_company_metrics
from ...email_service import EmailNotConfiguredError, send_invoice_email, send_payment_reminder
from ...models import Appointment, Company, Customer, Device, TeamUser, TestReport
from ...models_invoice import Invoice
from ...services.webhook_delivery import trigger_webhook
from ...shared.pagination import paginate
from ...shared.validators import parse_iso_date
from .repository import InvoiceRepository
from .schemas import InvoiceCreate, InvoiceResponse, LineItem

logger = logging.getLogger(__name__)


def invoice_payload(invoice: Invoice) -> dict:
    return InvoiceResponse.model_validate(invoice).model_dump(mode="json")


def compute_totals(line_items: list[dict], tax_rate: float) -> dict:
    """Subtotal over all lines, tax only on taxable ones"""
    subtotal = round(sum(float(item["amount"]) for item in line_items), 2)
    taxable = sum(float(item["amount"]) for item in line_items if item.get("taxable", True))
    tax_amount = round(taxable * tax_rate, 2)
    return {
        "subtotal": subtotal,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total_amount": round(subtotal + tax_amount, 2),
    }


def effective_tax_rate(company: Company, customer: Customer) -> float:
    if customer.tax_exempt:
        return 0.0
    return float(company.tax_rate or 0)


class InvoiceService:
    """Service layer for customer invoices"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    def next_invoice_number(self, company_id: int, issue_date: date) -> str:
        seq = self.repo.count_for_month(self.db, company_id, issue_date.year, issue_date.month) + 1
        return f"INV-{issue_date.year}{issue_date.month:02d}-{seq:04d}"

    def _build(
        self,
        company: Company,
        customer: Customer,
        line_items: list[dict],
        issue_date: Optional[date] = None,
        payment_terms: Optional[int] = None,
        **extra,
    ) -> Invoice:
        issue_date = issue_date or date.today()
        terms = payment_terms if payment_terms is not None else (company.payment_terms_days or 30)
        totals = compute_totals(line_items, effective_tax_rate(company, customer))
        invoice = Invoice(
            company_id=company.id,
            customer_id=customer.id,
            invoice_number=self.next_invoice_number(company.id, issue_date),
            status="draft",
            line_items=line_items,
            paid_amount=0,
            balance_due=totals["total_amount"],
            payment_terms=terms,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=terms),
            reminder_count=0,
            **totals,
            **extra,
        )
        customer.balance = round((customer.balance or 0) + invoice.total_amount, 2)
        invoice = self.repo.save(self.db, invoice)
        invalidate_company_metrics(company.id)
        trigger_webhook(self.db, company.id, "invoice.created", invoice_payload(invoice))
        return invoice

    def create_invoice(self, data: InvoiceCreate, user: TeamUser) -> Invoice:
        company = self.db.query(Company).filter(Company.id == user.company_id).first()
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == data.customer_id, Customer.company_id == user.company_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        invoice = self._build(
            company,
            customer,
            [item.model_dump() for item in data.line_items],
            issue_date=data.issue_date,
            payment_terms=data.payment_terms,
            appointment_id=data.appointment_id,
            test_report_id=data.test_report_id,
            notes=data.notes,
        )
        logger.info(f"🧾 Invoice {invoice.invoice_number} created for {customer.account_number}: ${invoice.total_amount}")
        log_event(
            self.db,
            "document.invoice.created",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="invoice",
            entity_id=invoice.id,
            metadata={"invoice_number": invoice.invoice_number, "total": invoice.total_amount},
        )
        return invoice

    def create_auto_invoice(
        self,
        company: Company,
        customer: Customer,
        appointment: Appointment,
        device: Device,
        report: TestReport,
    ) -> Invoice:
        """Bill the test that was just completed at the company's test price"""
        device_label = " ".join(p for p in (device.make, device.model, device.size) if p) or device.serial_number
        line_items = [
            LineItem(
                description=f"{appointment.service_type or 'Annual Test'} - {device_label}",
                quantity=1,
                unit_price=float(company.test_price or 0),
            ).model_dump()
        ]
        if report.repairs_needed:
            line_items.append(LineItem(description="Repair assessment", quantity=1, unit_price=0).model_dump())

        invoice = self._build(
            company,
            customer,
            line_items,
            issue_date=report.test_date,
            appointment_id=appointment.id,
            test_report_id=report.id,
            notes=f"Test completed on {report.test_date.isoformat()}. Result: {report.status}",
        )
        logger.info(f"🧾 Auto-invoice {invoice.invoice_number} for test report {report.id}")
        log_event(
            self.db,
            "document.invoice.created",
            company_id=company.id,
            entity_type="invoice",
            entity_id=invoice.id,
            metadata={"invoice_number": invoice.invoice_number, "test_report_id": report.id, "automatic": True},
        )
        return invoice

    def list_invoices(
        self,
        company_id: int,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        try:
            start = parse_iso_date(date_from, "date_from")
            end = parse_iso_date(date_to, "date_to")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        query = self.repo.filtered_query(self.db, company_id, status, customer_id, start, end)
        items, pagination = paginate(query, page, limit)
        return {"data": items, "pagination": pagination}

    def get_invoice(self, invoice_id: int, company_id: int) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id, company_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    async def send_invoice(self, invoice_id: int, user: TeamUser) -> Invoice:
        invoice = self.get_invoice(invoice_id, user.company_id)
        if invoice.status in ("paid", "cancelled"):
            raise HTTPException(status_code=400, detail=f"Cannot send a {invoice.status} invoice")
        customer = invoice.customer
        if not customer or not customer.email:
            raise HTTPException(status_code=400, detail="Customer has no email address")
        company = self.db.query(Company).filter(Company.id == invoice.company_id).first()

        try:
            await send_invoice_email(
                to=customer.email,
                customer_name=customer.display_name,
                company_name=company.name,
                invoice_number=invoice.invoice_number,
                amount=invoice.balance_due,
                due_date=invoice.due_date.strftime("%B %d, %Y"),
                invoice_public_id=invoice.public_id,
            )
        except EmailNotConfiguredError as e:
            raise HTTPException(status_code=503, detail="Email service is not configured") from e
        except Exception as e:
            logger.error(f"❌ Failed to send invoice {invoice.invoice_number}: {e}")
            raise HTTPException(status_code=502, detail="Failed to send invoice email") from e

        if invoice.status == "draft":
            invoice.status = "sent"
        invoice.sent_date = datetime.utcnow()
        invoice = self.repo.save(self.db, invoice)
        log_event(
            self.db,
            "document.invoice.sent",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="invoice",
            entity_id=invoice.id,
            metadata={"to": customer.email},
        )
        return invoice

    def cancel_invoice(self, invoice_id: int, user: TeamUser) -> Invoice:
        invoice = self.get_invoice(invoice_id, user.company_id)
        if invoice.status == "paid" or (invoice.paid_amount or 0) > 0:
            raise HTTPException(status_code=400, detail="Cannot cancel an invoice with payments applied")
        if invoice.status == "cancelled":
            return invoice
        customer = invoice.customer
        if customer:
            customer.balance = round((customer.balance or 0) - invoice.balance_due, 2)
        invoice.status = "cancelled"
        invoice.balance_due = 0
        invoice = self.repo.save(self.db, invoice)
        invalidate_company_metrics(invoice.company_id)
        log_event(
            self.db,
            "document.invoice.cancelled",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="invoice",
            entity_id=invoice.id,
        )
        return invoice

    def get_public_invoice(self, public_id: str) -> dict:
        invoice = self.repo.get_by_public_id(self.db, public_id)
        if not invoice or invoice.status in ("draft", "cancelled"):
            raise HTTPException(status_code=404, detail="Invoice not found")
        company = self.db.query(Company).filter(Company.id == invoice.company_id).first()
        return {
            "invoice_number": invoice.invoice_number,
            "status": invoice.status,
            "company_name": company.name if company else "",
            "customer_name": invoice.customer.display_name if invoice.customer else "",
            "line_items": invoice.line_items or [],
            "subtotal": invoice.subtotal,
            "tax_amount": invoice.tax_amount,
            "total_amount": invoice.total_amount,
            "paid_amount": invoice.paid_amount,
            "balance_due": invoice.balance_due,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
        }

    # ------------------------------------------------------------------
    # Payments applied against an invoice
    # ------------------------------------------------------------------

    def apply_payment(self, invoice: Invoice, amount: float) -> Invoice:
        """Record money received; caller commits"""
        invoice.paid_amount = round((invoice.paid_amount or 0) + amount, 2)
        invoice.balance_due = round(max(invoice.total_amount - invoice.paid_amount, 0), 2)
        if invoice.balance_due <= 0:
            invoice.status = "paid"
            invoice.paid_date = datetime.utcnow()
        else:
            invoice.status = "partial"
        return invoice

    def reverse_payment(self, invoice: Invoice, amount: float) -> Invoice:
        """Undo part of a payment after a refund; caller commits"""
        invoice.paid_amount = round(max((invoice.paid_amount or 0) - amount, 0), 2)
        invoice.balance_due = round(invoice.total_amount - invoice.paid_amount, 2)
        if invoice.paid_amount <= 0:
            invoice.status = "overdue" if invoice.due_date < date.today() else "sent"
        else:
            invoice.status = "partial"
        invoice.paid_date = None
        return invoice

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def send_payment_reminders(self, today: Optional[date] = None) -> dict:
        """Email every overdue invoice that has had fewer than three reminders"""
        today = today or date.today()
        invoices = self.repo.due_for_reminder(self.db, today)
        sent, skipped, failed = 0, 0, 0

        for invoice in invoices:
            customer = invoice.customer
            if not customer or not customer.email:
                skipped += 1
                continue
            company = self.db.query(Company).filter(Company.id == invoice.company_id).first()
            days_overdue = (today - invoice.due_date).days
            try:
                await send_payment_reminder(
                    to=customer.email,
                    customer_name=customer.display_name,
                    company_name=company.name,
                    invoice_number=invoice.invoice_number,
                    balance_due=invoice.balance_due,
                    days_overdue=days_overdue,
                    invoice_public_id=invoice.public_id,
                )
            except EmailNotConfiguredError:
                logger.warning("⚠️ Email not configured, payment reminders skipped")
                return {"checked": len(invoices), "sent": sent, "skipped": len(invoices) - sent, "failed": failed}
            except Exception as e:
                logger.error(f"❌ Reminder for {invoice.invoice_number} failed: {e}")
                failed += 1
                continue

            invoice.reminder_count = (invoice.reminder_count or 0) + 1
            invoice.last_reminder_date = datetime.utcnow()
            invoice.status = "overdue"
            self.db.commit()
            sent += 1
            logger.info(f"📧 Reminder {invoice.reminder_count} sent for {invoice.invoice_number} ({days_overdue} days overdue)")

        return {"checked": len(invoices), "sent": sent, "skipped": skipped, "failed": failed}
