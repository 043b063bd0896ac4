"""Field app routes - the technician's day"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_team_user
from ..database import get_db
from ..domain.appointments.schemas import AppointmentResponse
from ..domain.appointments.service import AppointmentService
from ..models import TeamUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/field", tags=["Field"])


@router.get("/appointments/today", response_model=list[AppointmentResponse])
async def todays_appointments(
    current_user: TeamUser = Depends(get_current_team_user),
    db: Session = Depends(get_db),
):
    """The signed-in technician's appointments for today, earliest first"""
    return AppointmentService(db).today_for_technician(current_user)


@router.post("/appointments/{appointment_id}/start", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    db: Session = Depends(get_db),
):
    return AppointmentService(db).start(appointment_id, current_user)
