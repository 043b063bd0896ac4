"""Appointment repository - Database operations for the schedule"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, company_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
            .first()
        )

    @staticmethod
    def active_between(db: Session, company_id: int, start: date, end: date) -> list[Appointment]:
        """Non-cancelled appointments with start <= scheduled_date <= end"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.company_id == company_id,
                Appointment.status != "cancelled",
                Appointment.scheduled_date >= start,
                Appointment.scheduled_date <= end,
            )
            .all()
        )

    @staticmethod
    def list_appointments(
        db: Session,
        company_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        status: Optional[str] = None,
        technician_id: Optional[int] = None,
        customer_id: Optional[int] = None,
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.company_id == company_id)
        if date_from:
            query = query.filter(Appointment.scheduled_date >= date_from)
        if date_to:
            query = query.filter(Appointment.scheduled_date <= date_to)
        if status:
            query = query.filter(Appointment.status == status)
        if technician_id:
            query = query.filter(Appointment.technician_id == technician_id)
        if customer_id:
            query = query.filter(Appointment.customer_id == customer_id)
        return query.order_by(Appointment.scheduled_date, Appointment.scheduled_time).all()

    @staticmethod
    def create_appointment(db: Session, company_id: int, **values) -> Appointment:
        appointment = Appointment(company_id=company_id, **values)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.commit()
        db.refresh(appointment)
        return appointment
