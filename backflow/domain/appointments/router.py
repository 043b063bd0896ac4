"""Appointment router - scheduling endpoints for the office"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_staff
from ...database import get_db
from ...models import TeamUser
from .schemas import (
    AppointmentResponse,
    AppointmentUpdate,
    BookingRequest,
    BookingResponse,
    CancelRequest,
    NextAvailableRequest,
    RescheduleRequest,
    ResolveConflictsRequest,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    return AppointmentService(db)


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    technician_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(
        current_user.company_id, date_from, date_to, status, technician_id, customer_id
    )


@router.post("/book", response_model=BookingResponse, status_code=201)
async def book_appointment(
    data: BookingRequest,
    request: Request,
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a 60-minute slot for a customer"""
    if not data.customer_id:
        raise HTTPException(status_code=400, detail="Customer ID is required")
    customer = service.get_customer(data.customer_id, current_user.company_id)
    return await service.book(data, current_user.company_id, customer, current_user.id, request)


@router.post("/next-available")
async def next_available(
    data: NextAvailableRequest,
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Find (and optionally book) the first open weekday slot"""
    result = await service.next_available(data, current_user.company_id, current_user.id)
    if result["appointment"] is not None:
        result["appointment"] = AppointmentResponse.model_validate(result["appointment"])
    return result


@router.get("/conflicts")
async def detect_conflicts(
    date: Optional[str] = Query(None),
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.detect_conflicts(current_user.company_id, date)


@router.post("/resolve-conflicts")
async def resolve_conflicts(
    data: ResolveConflictsRequest,
    current_user: TeamUser = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.resolve_conflicts(data.resolutions, current_user)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(appointment_id, current_user.company_id)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    current_user: TeamUser = Depends(require_staff),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Assign a technician or adjust status, duration and notes"""
    return service.update(appointment_id, data, current_user)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    request: Request,
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_appointment(appointment_id, current_user.company_id)
    return await service.reschedule(appointment, data, current_user.id, request)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: CancelRequest,
    request: Request,
    current_user: TeamUser = Depends(get_current_team_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_appointment(appointment_id, current_user.company_id)
    return service.cancel(appointment, data.reason, current_user.id, request)
