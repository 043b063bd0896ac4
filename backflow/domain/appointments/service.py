"""Appointment service - booking, rescheduling and schedule maintenance"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...email_service import (
    EmailNotConfiguredError,
    send_appointment_confirmation,
    send_appointment_rescheduled,
)
from ...models import Appointment, Company, Customer, Device, TeamUser
from ...services import sms_service
from ...services.webhook_delivery import trigger_webhook
from ...shared.dates import format_date_label, format_time_label
from ...shared.validators import parse_iso_date
from ..companies.service import DEFAULT_WORKING_DAYS, DEFAULT_WORKING_HOURS
from . import slot_finder
from .repository import AppointmentRepository
from .schemas import (
    AppointmentResponse,
    AppointmentUpdate,
    BookingRequest,
    ConflictResolution,
    NextAvailableRequest,
    RescheduleRequest,
)

logger = logging.getLogger(__name__)

RESCHEDULE_NOTICE_HOURS = 24
DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _now() -> datetime:
    # Slot times are the company's wall clock
    return datetime.now()


def append_note(existing: Optional[str], line: str) -> str:
    return f"{existing or ''}\n{line}".strip()


def appointment_payload(appointment: Appointment) -> dict:
    return AppointmentResponse.model_validate(appointment).model_dump(mode="json")


def _parse_date(value: str, field: str = "date") -> date:
    try:
        parsed = parse_iso_date(value, field)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if not parsed:
        raise HTTPException(status_code=400, detail=f"{field.capitalize()} is required")
    return parsed


def _parse_time(value: str) -> str:
    try:
        return slot_finder.parse_time(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


class AppointmentService:
    """Service layer for the appointment schedule"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _company(self, company_id: int) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise HTTPException(status_code=404, detail="Company not found")
        return company

    def get_customer(self, customer_id: Optional[int], company_id: int) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.company_id == company_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def _technician(self, technician_id: int, company_id: int) -> TeamUser:
        technician = (
            self.db.query(TeamUser)
            .filter(
                TeamUser.id == technician_id,
                TeamUser.company_id == company_id,
                TeamUser.is_active.is_(True),
            )
            .first()
        )
        if not technician:
            raise HTTPException(status_code=400, detail="Technician must be an active team member")
        return technician

    def get_appointment(self, appointment_id: int, company_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id, company_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def list_appointments(
        self,
        company_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        status: Optional[str] = None,
        technician_id: Optional[int] = None,
        customer_id: Optional[int] = None,
    ) -> list[Appointment]:
        start = _parse_date(date_from, "date_from") if date_from else None
        end = _parse_date(date_to, "date_to") if date_to else None
        return self.repo.list_appointments(self.db, company_id, start, end, status, technician_id, customer_id)

    def _booked(self, company_id: int, start: date, end: date) -> list[slot_finder.BookedSlot]:
        return [
            slot_finder.BookedSlot.from_appointment(a)
            for a in self.repo.active_between(self.db, company_id, start, end)
        ]

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def book(
        self,
        data: BookingRequest,
        company_id: int,
        customer: Customer,
        actor_user_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> dict:
        """Create an appointment in a free 60-minute window and notify the customer"""
        scheduled_date = _parse_date(data.date)
        if scheduled_date < date.today():
            raise HTTPException(status_code=400, detail="Cannot book appointments in the past")
        scheduled_time = _parse_time(data.time)

        device = None
        if data.device_id:
            device = (
                self.db.query(Device)
                .filter(
                    Device.id == data.device_id,
                    Device.company_id == company_id,
                    Device.customer_id == customer.id,
                )
                .first()
            )
            if not device:
                raise HTTPException(status_code=404, detail="Device not found")
        if data.technician_id:
            self._technician(data.technician_id, company_id)

        booked = self._booked(company_id, scheduled_date, scheduled_date)
        if slot_finder.has_conflict(scheduled_date, scheduled_time, booked):
            raise HTTPException(status_code=409, detail="Time slot is no longer available")

        notes = data.notes
        if device:
            label = " ".join(p for p in (device.make, device.model) if p) or device.serial_number
            notes = append_note(notes, f"Device: {label} at {device.location}" if device.location else f"Device: {label}")

        appointment = self.repo.create_appointment(
            self.db,
            company_id,
            customer_id=customer.id,
            device_id=device.id if device else None,
            technician_id=data.technician_id,
            service_type=data.service_type,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            estimated_duration=slot_finder.SLOT_MINUTES,
            status="scheduled",
            priority=data.priority,
            notes=notes,
        )
        logger.info(
            f"📅 Appointment {appointment.id} booked for customer {customer.account_number} "
            f"on {scheduled_date} {scheduled_time}"
        )

        log_request_event(
            self.db,
            request,
            "appointment.scheduled",
            company_id=company_id,
            user_id=actor_user_id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={"customer_id": customer.id, "date": scheduled_date.isoformat(), "time": scheduled_time},
        )
        trigger_webhook(self.db, company_id, "appointment.scheduled", appointment_payload(appointment))

        notifications = await self._notify_booking(appointment, customer, device)
        return {"success": True, "appointment": appointment, "notifications": notifications}

    async def _notify_booking(self, appointment: Appointment, customer: Customer, device: Optional[Device]) -> dict:
        """Email and SMS confirmations; failures are reported, never raised"""
        company = self._company(appointment.company_id)
        date_label = format_date_label(appointment.scheduled_date)
        time_label = format_time_label(appointment.scheduled_time)
        result = {"email": "skipped", "sms": "skipped"}

        if customer.email:
            try:
                await send_appointment_confirmation(
                    to=customer.email,
                    customer_name=customer.display_name,
                    company_name=company.name,
                    date_label=date_label,
                    time_label=time_label,
                    service_type=appointment.service_type,
                    device_label=device.description if device else None,
                    reply_to=company.email,
                )
                result["email"] = "sent"
            except EmailNotConfiguredError:
                logger.warning("⚠️ Email not configured, skipping appointment confirmation")
            except Exception as e:
                logger.error(f"❌ Confirmation email failed for appointment {appointment.id}: {e}")
                result["email"] = "failed"

        if customer.phone and sms_service.is_configured():
            ok, error = await sms_service.send_sms(
                customer.phone,
                sms_service.appointment_confirmation_sms(company.name, date_label, time_label),
            )
            result["sms"] = "sent" if ok else "failed"
            if not ok:
                logger.warning(f"⚠️ Confirmation SMS failed for appointment {appointment.id}: {error}")
        return result

    # ------------------------------------------------------------------
    # Reschedule / cancel / update
    # ------------------------------------------------------------------

    async def reschedule(
        self,
        appointment: Appointment,
        data: RescheduleRequest,
        actor_user_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> Appointment:
        if appointment.status in ("cancelled", "completed"):
            raise HTTPException(
                status_code=400, detail=f"{appointment.status.capitalize()} appointments cannot be rescheduled"
            )

        now = _now()
        current_start = slot_finder.slot_datetime(appointment.scheduled_date, appointment.scheduled_time)
        hours_remaining = (current_start - now).total_seconds() / 3600
        if hours_remaining < RESCHEDULE_NOTICE_HOURS:
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Appointments can only be rescheduled at least 24 hours in advance",
                    "can_reschedule": False,
                    "hours_remaining": round(hours_remaining),
                },
            )

        new_date = _parse_date(data.new_date, "new_date")
        new_time = _parse_time(data.new_time)
        if slot_finder.slot_datetime(new_date, new_time) <= now:
            raise HTTPException(status_code=400, detail="New appointment time must be in the future")

        company = self._company(appointment.company_id)
        working_hours = company.working_hours or DEFAULT_WORKING_HOURS
        working_days = company.working_days if company.working_days is not None else DEFAULT_WORKING_DAYS
        duration = appointment.estimated_duration or slot_finder.DEFAULT_DURATION
        if not slot_finder.within_working_hours(new_date, new_time, working_hours, working_days, duration):
            raise HTTPException(
                status_code=400,
                detail={
                    "error": (
                        f"Selected time is not available. Service hours are "
                        f"{working_hours['start']} - {working_hours['end']}"
                    ),
                    "working_hours": working_hours,
                    "working_days": [DAY_NAMES[d] for d in working_days],
                },
            )

        booked = self._booked(appointment.company_id, new_date, new_date)
        if slot_finder.has_conflict(new_date, new_time, booked, duration, exclude_id=appointment.id):
            raise HTTPException(status_code=409, detail="The selected time slot is no longer available")

        old_date, old_time = appointment.scheduled_date, appointment.scheduled_time
        note = f"Rescheduled from {old_date.isoformat()} {old_time}"
        if data.reason:
            note += f". Reason: {data.reason}"
        appointment.scheduled_date = new_date
        appointment.scheduled_time = new_time
        appointment.status = "scheduled"
        appointment.notes = append_note(appointment.notes, note)
        appointment = self.repo.save(self.db, appointment)
        logger.info(f"🔁 Appointment {appointment.id} moved {old_date} {old_time} -> {new_date} {new_time}")

        log_request_event(
            self.db,
            request,
            "appointment.rescheduled",
            company_id=appointment.company_id,
            user_id=actor_user_id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={
                "old": {"date": old_date.isoformat(), "time": old_time},
                "new": {"date": new_date.isoformat(), "time": new_time},
                "reason": data.reason,
            },
        )

        customer = appointment.customer
        if customer and customer.email:
            try:
                await send_appointment_rescheduled(
                    to=customer.email,
                    customer_name=customer.display_name,
                    company_name=company.name,
                    old_label=f"{format_date_label(old_date)} at {format_time_label(old_time)}",
                    new_label=f"{format_date_label(new_date)} at {format_time_label(new_time)}",
                    reason=data.reason,
                )
            except EmailNotConfiguredError:
                logger.warning("⚠️ Email not configured, skipping reschedule notice")
            except Exception as e:
                logger.error(f"❌ Reschedule email failed for appointment {appointment.id}: {e}")
        return appointment

    def cancel(
        self,
        appointment: Appointment,
        reason: Optional[str] = None,
        actor_user_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> Appointment:
        if appointment.status in ("cancelled", "completed"):
            raise HTTPException(status_code=400, detail=f"Appointment is already {appointment.status}")
        appointment.status = "cancelled"
        appointment.notes = append_note(appointment.notes, f"Cancelled: {reason}" if reason else "Cancelled")
        appointment = self.repo.save(self.db, appointment)

        log_request_event(
            self.db,
            request,
            "appointment.cancelled",
            company_id=appointment.company_id,
            user_id=actor_user_id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={"reason": reason},
        )
        trigger_webhook(self.db, appointment.company_id, "appointment.cancelled", appointment_payload(appointment))
        return appointment

    def update(self, appointment_id: int, data: AppointmentUpdate, user: TeamUser) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.company_id)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("technician_id"):
            self._technician(updates["technician_id"], user.company_id)
        for key, value in updates.items():
            if value is not None:
                setattr(appointment, key, value)
        appointment = self.repo.save(self.db, appointment)
        log_request_event(
            self.db,
            None,
            "appointment.updated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="appointment",
            entity_id=appointment.id,
            metadata={"fields": sorted(updates)},
        )
        return appointment

    # ------------------------------------------------------------------
    # Next available
    # ------------------------------------------------------------------

    async def next_available(self, data: NextAvailableRequest, company_id: int, actor_user_id: Optional[int] = None) -> dict:
        if not data.customer_id:
            raise HTTPException(status_code=400, detail="Customer ID is required")
        customer = self.get_customer(data.customer_id, company_id)

        today = date.today()
        booked = self._booked(
            company_id, today + timedelta(days=1), today + timedelta(days=slot_finder.SEARCH_DAYS)
        )
        slot = slot_finder.find_next_available(
            today, booked, customer.preferred_time_slots or [], data.priority
        )
        if not slot:
            raise HTTPException(
                status_code=404,
                detail={
                    "error": f"No available slots found in the next {slot_finder.SEARCH_DAYS} days",
                    "suggestions": slot_finder.no_slot_suggestions(),
                },
            )

        result = {
            "success": True,
            "next_available": slot.as_dict(),
            "customer": {"id": customer.id, "name": customer.display_name},
            "booked": False,
            "appointment": None,
        }
        if data.auto_book:
            booking = await self.book(
                BookingRequest(
                    customer_id=customer.id,
                    device_id=data.device_id,
                    date=slot.date.isoformat(),
                    time=slot.time,
                    service_type=data.service_type,
                    priority=data.priority,
                    notes=f"Quick-booked via next available slot ({data.priority} priority)",
                ),
                company_id,
                customer,
                actor_user_id,
            )
            result["booked"] = True
            result["appointment"] = booking["appointment"]
        return result

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def detect_conflicts(self, company_id: int, on_date: Optional[str] = None) -> dict:
        if on_date:
            start = end = _parse_date(on_date)
        else:
            start, end = date.today(), date.today() + timedelta(days=7)
        conflicts = slot_finder.detect_conflicts(self._booked(company_id, start, end))
        return {
            "conflicts": conflicts,
            "summary": {
                "total_conflicts": len(conflicts),
                "high_severity": sum(1 for c in conflicts if c["severity"] == "high"),
                "medium_severity": sum(1 for c in conflicts if c["severity"] == "medium"),
            },
        }

    def _resolve_one(self, resolution: ConflictResolution, company_id: int) -> dict:
        """Apply one resolution; raises ValueError with the failure reason"""
        appointment = self.repo.get_appointment(self.db, resolution.appointment_id, company_id)
        if not appointment:
            raise ValueError("Appointment not found")

        if resolution.action == "reschedule":
            if not resolution.new_date or not resolution.new_time:
                raise ValueError("New date and time are required")
            new_date = parse_iso_date(resolution.new_date, "new_date")
            new_time = slot_finder.parse_time(resolution.new_time)
            booked = self._booked(company_id, new_date, new_date)
            duration = appointment.estimated_duration or slot_finder.DEFAULT_DURATION
            if slot_finder.has_conflict(new_date, new_time, booked, duration, exclude_id=appointment.id):
                raise ValueError("New time slot is not available")
            resolved = {
                "action": "rescheduled",
                "old_date": appointment.scheduled_date.isoformat(),
                "old_time": appointment.scheduled_time,
                "new_date": new_date.isoformat(),
                "new_time": new_time,
            }
            appointment.scheduled_date = new_date
            appointment.scheduled_time = new_time
            appointment.notes = append_note(appointment.notes, f"Rescheduled: {resolution.reason}")
        elif resolution.action == "shorten":
            if not resolution.new_duration:
                raise ValueError("New duration is required")
            resolved = {
                "action": "shortened",
                "old_duration": appointment.estimated_duration,
                "new_duration": resolution.new_duration,
            }
            appointment.estimated_duration = resolution.new_duration
            appointment.notes = append_note(appointment.notes, f"Duration shortened: {resolution.reason}")
        elif resolution.action == "notify":
            resolved = {"action": "notified"}
            appointment.notes = append_note(appointment.notes, f"CONFLICT NOTICE: {resolution.reason}")
        else:
            resolved = {"action": "cancelled"}
            appointment.status = "cancelled"
            appointment.notes = append_note(appointment.notes, f"Cancelled due to conflict: {resolution.reason}")

        self.repo.save(self.db, appointment)
        if resolution.action == "cancel":
            trigger_webhook(self.db, company_id, "appointment.cancelled", appointment_payload(appointment))
        return {"appointment_id": appointment.id, **resolved, "reason": resolution.reason}

    def resolve_conflicts(self, resolutions: list[ConflictResolution], user: TeamUser) -> dict:
        """Apply each resolution independently and report which ones stuck"""
        resolved, failed = [], []
        for resolution in resolutions:
            try:
                resolved.append(self._resolve_one(resolution, user.company_id))
            except ValueError as e:
                self.db.rollback()
                failed.append(
                    {
                        "appointment_id": resolution.appointment_id,
                        "error": str(e),
                        "resolution": resolution.model_dump(),
                    }
                )

        total = len(resolutions)
        all_resolved = not failed
        partial = bool(resolved) and bool(failed)
        log_request_event(
            self.db,
            None,
            "appointment.conflicts.resolved",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="appointment",
            metadata={"total": total, "resolved": len(resolved), "failed": len(failed)},
            success=all_resolved,
        )
        if all_resolved:
            message = f"Successfully resolved all {len(resolved)} conflicts"
        elif partial:
            message = f"Resolved {len(resolved)} of {total} conflicts"
        else:
            message = "Failed to resolve conflicts"
        return {
            "success": all_resolved,
            "partial_success": partial,
            "resolved": resolved,
            "failed": failed,
            "summary": {
                "total": total,
                "resolved": len(resolved),
                "failed": len(failed),
                "success_rate": round(len(resolved) / total * 100, 1) if total else 0,
            },
            "message": message,
        }

    # ------------------------------------------------------------------
    # Field app
    # ------------------------------------------------------------------

    def today_for_technician(self, user: TeamUser) -> list[Appointment]:
        today = date.today()
        return [
            a
            for a in self.repo.list_appointments(self.db, user.company_id, today, today, technician_id=user.id)
            if a.status != "cancelled"
        ]

    def start(self, appointment_id: int, user: TeamUser) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.company_id)
        if user.role == "technician" and appointment.technician_id != user.id:
            raise HTTPException(status_code=403, detail="Appointment is assigned to another technician")
        if appointment.status in ("cancelled", "completed"):
            raise HTTPException(status_code=400, detail=f"Appointment is already {appointment.status}")
        appointment.status = "in_progress"
        appointment.actual_start_time = datetime.utcnow()
        if not appointment.technician_id:
            appointment.technician_id = user.id
        appointment = self.repo.save(self.db, appointment)
        logger.info(f"🚚 {user.email} started appointment {appointment.id}")
        return appointment
