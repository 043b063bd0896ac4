"""Test report service - completing tests and the follow-on automation"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...cache import invalidate_company_metrics
from ...email_service import EmailNotConfiguredError, send_district_submission, send_test_result_email
from ...models import Appointment, Company, Customer, Device, TeamUser, TestReport
from ...models_invoice import Invoice
from ...services.pdf_report import generate_test_report_pdf, report_filename
from ...services.webhook_delivery import trigger_webhook
from ...shared.dates import add_months
from ...shared.pagination import paginate
from ...shared.validators import parse_iso_date, validate_email
from ..appointments.service import appointment_payload
from ..invoices.service import InvoiceService
from . import evaluation
from .repository import TestReportRepository
from .schemas import DistrictSubmissionRequest, TestCompletionRequest, TestReportResponse

logger = logging.getLogger(__name__)

FOLLOW_UP_MONTHS = 3
OPEN_INVOICE_STATUSES = ("draft", "sent", "partial", "overdue")


class TestReportService:
    """Service layer for backflow test reports"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TestReportRepository()

    def next_certification_number(self, company_id: int, test_date: date) -> str:
        seq = self.repo.count_for_month(self.db, company_id, test_date.year, test_date.month) + 1
        return f"FB{test_date.year}{test_date.month:02d}{seq:04d}"

    def get_report(self, report_id: int, company_id: int) -> TestReport:
        report = self.repo.get_report(self.db, report_id, company_id)
        if not report:
            raise HTTPException(status_code=404, detail="Test report not found")
        return report

    def list_reports(
        self,
        company_id: int,
        customer_id: Optional[int] = None,
        device_id: Optional[int] = None,
        status: Optional[str] = None,
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
        query = self.repo.filtered_query(self.db, company_id, customer_id, device_id, status, start, end)
        items, pagination = paginate(query, page, limit)
        return {"data": items, "pagination": pagination}

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete_test(
        self, data: TestCompletionRequest, user: TeamUser, request: Optional[Request] = None
    ) -> dict:
        """
        Record a finished test and run everything that hangs off it.

        The report, appointment, device and customer updates commit together.
        Invoicing, webhooks and the customer email run afterwards and only
        log on failure.
        """
        if not data.appointment_id or not data.device_id:
            raise HTTPException(status_code=400, detail="Missing required fields")

        appointment = (
            self.db.query(Appointment)
            .filter(Appointment.id == data.appointment_id, Appointment.company_id == user.company_id)
            .first()
        )
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        device = (
            self.db.query(Device)
            .filter(Device.id == data.device_id, Device.company_id == user.company_id)
            .first()
        )
        if not device:
            raise HTTPException(status_code=404, detail="Device not found")
        if device.customer_id != appointment.customer_id:
            raise HTTPException(status_code=400, detail="Device does not belong to the appointment's customer")
        if appointment.status in ("completed", "cancelled"):
            raise HTTPException(status_code=400, detail=f"Appointment is already {appointment.status}")

        test_data = data.test_data.model_dump(exclude_none=True)
        pressure_drop = evaluation.resolve_pressure_drop(
            data.initial_pressure, data.final_pressure, data.pressure_drop
        )
        errors = evaluation.validate_test_data(
            device.device_type, data.initial_pressure, data.final_pressure, pressure_drop, test_data
        )
        if errors:
            raise HTTPException(status_code=400, detail={"error": "Invalid test data", "details": errors})

        status = data.test_result or evaluation.evaluate_result(test_data, pressure_drop)
        passed = status == "Passed"
        test_date = data.test_date or date.today()
        customer = self.db.query(Customer).filter(Customer.id == appointment.customer_id).first()
        company = self.db.query(Company).filter(Company.id == user.company_id).first()

        report = TestReport(
            company_id=user.company_id,
            customer_id=customer.id,
            device_id=device.id,
            appointment_id=appointment.id,
            technician_id=user.id,
            technician_name=user.full_name,
            test_date=test_date,
            test_type=data.test_type or appointment.service_type,
            initial_pressure=data.initial_pressure,
            final_pressure=data.final_pressure,
            pressure_drop=pressure_drop,
            test_duration=data.test_duration,
            test_data=test_data,
            status=status,
            repairs_needed=evaluation.repairs_needed(test_data, status),
            follow_up_required=not passed,
            follow_up_date=None if passed else add_months(test_date, FOLLOW_UP_MONTHS),
            certification_number=self.next_certification_number(user.company_id, test_date) if passed else None,
            notes=data.notes,
            water_district=data.water_district,
            submitted=False,
        )
        self.db.add(report)

        appointment.status = "completed"
        appointment.actual_end_time = datetime.utcnow()
        device.last_test_date = test_date
        device.status = status
        if passed:
            device.next_test_date = add_months(test_date, device.test_frequency_months or 12)
            customer.next_test_date = device.next_test_date
            customer.status = "Active"
        else:
            customer.status = "Needs Service"
        self.db.commit()
        self.db.refresh(report)
        logger.info(f"🧪 Test report {report.id} recorded: {status} (device {device.serial_number})")

        invoice = self._auto_invoice(company, customer, appointment, device, report)

        report_data = TestReportResponse.model_validate(report).model_dump(mode="json")
        trigger_webhook(self.db, user.company_id, "test.completed", report_data)
        trigger_webhook(self.db, user.company_id, "appointment.completed", appointment_payload(appointment))

        email_sent = await self._email_result(company, customer, device, report)

        log_request_event(
            self.db,
            request,
            "document.report.generated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="test_report",
            entity_id=report.id,
            metadata={"status": status, "device_id": device.id, "invoice_id": invoice.id if invoice else None},
        )
        invalidate_company_metrics(user.company_id)

        message = "Test completed successfully."
        message += " Invoice generated." if invoice else " Invoice could not be generated."
        return {
            "success": True,
            "test_report": report,
            "invoice": invoice,
            "message": message,
            "automation": {
                "appointment_updated": True,
                "device_updated": True,
                "customer_updated": True,
                "invoice_generated": invoice is not None,
                "email_sent": email_sent,
                "next_test_scheduled": passed,
            },
        }

    def _auto_invoice(
        self, company: Company, customer: Customer, appointment: Appointment, device: Device, report: TestReport
    ) -> Optional[Invoice]:
        try:
            return InvoiceService(self.db).create_auto_invoice(company, customer, appointment, device, report)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Auto-invoice failed for test report {report.id}: {e}")
            return None

    async def _email_result(self, company: Company, customer: Customer, device: Device, report: TestReport) -> bool:
        if not customer.email:
            return False
        try:
            await send_test_result_email(
                to=customer.email,
                customer_name=customer.display_name,
                company_name=company.name,
                device_label=device.description,
                test_date=report.test_date.strftime("%B %d, %Y"),
                status=report.status,
                certification_number=report.certification_number,
                next_test_date=device.next_test_date.strftime("%B %d, %Y")
                if report.status == "Passed" and device.next_test_date
                else None,
            )
            return True
        except EmailNotConfiguredError:
            logger.warning("⚠️ Email not configured, skipping test result email")
        except Exception as e:
            logger.error(f"❌ Test result email failed for report {report.id}: {e}")
        return False

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def render_pdf(self, report_id: int, company_id: int) -> tuple[bytes, str]:
        report = self.get_report(report_id, company_id)
        company = self.db.query(Company).filter(Company.id == company_id).first()
        pdf_bytes = generate_test_report_pdf(report, company, report.customer, report.device)
        return pdf_bytes, report_filename(report, report.customer)

    async def submit_to_district(
        self,
        report_id: int,
        data: DistrictSubmissionRequest,
        user: TeamUser,
        request: Optional[Request] = None,
    ) -> TestReport:
        """Email the PDF report to the water district and mark it submitted"""
        report = self.get_report(report_id, user.company_id)
        if report.submitted:
            raise HTTPException(status_code=400, detail="Report already submitted to the water district")

        company = self.db.query(Company).filter(Company.id == user.company_id).first()
        try:
            district_email = validate_email(data.district_email or company.water_district_email)
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Invalid water district email") from e
        if not district_email:
            raise HTTPException(status_code=400, detail="No water district email configured")

        pdf_bytes = generate_test_report_pdf(report, company, report.customer, report.device)
        try:
            await send_district_submission(
                to=district_email,
                company_name=company.name,
                customer_name=report.customer.display_name,
                device_label=report.device.description,
                test_date=report.test_date.isoformat(),
                status=report.status,
                pdf_bytes=pdf_bytes,
                filename=report_filename(report, report.customer),
                reply_to=company.email,
            )
        except EmailNotConfiguredError as e:
            raise HTTPException(status_code=503, detail="Email service is not configured") from e
        except Exception as e:
            logger.error(f"❌ District submission failed for report {report.id}: {e}")
            raise HTTPException(status_code=502, detail="Failed to submit report to the water district") from e

        report.submitted = True
        report.submitted_date = datetime.utcnow()
        report.water_district = report.water_district or district_email
        self.db.commit()
        self.db.refresh(report)
        logger.info(f"🏛️ Report {report.id} submitted to {district_email}")

        log_request_event(
            self.db,
            request,
            "document.report.submitted",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="test_report",
            entity_id=report.id,
            metadata={"district_email": district_email},
        )
        return report

    def automation_stats(self, company_id: int) -> dict:
        today = date.today()
        return {
            "completed_tests_today": self.db.query(TestReport)
            .filter(TestReport.company_id == company_id, TestReport.test_date == today)
            .count(),
            "pending_invoices": self.db.query(Invoice)
            .filter(Invoice.company_id == company_id, Invoice.status.in_(OPEN_INVOICE_STATUSES))
            .count(),
            "upcoming_appointments": self.db.query(Appointment)
            .filter(
                Appointment.company_id == company_id,
                Appointment.status.in_(("scheduled", "confirmed")),
                Appointment.scheduled_date >= today,
            )
            .count(),
            "customers_needing_service": self.db.query(Customer)
            .filter(Customer.company_id == company_id, Customer.status == "Needs Service")
            .count(),
        }
