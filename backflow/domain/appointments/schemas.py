"""Appointment domain schemas"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AppointmentStatus = Literal["scheduled", "confirmed", "in_progress", "completed", "cancelled"]
Priority = Literal["low", "medium", "high"]
ResolutionAction = Literal["reschedule", "shorten", "notify", "cancel"]


class BookingRequest(BaseModel):
    """Book a slot; ``customer_id`` is ignored on the portal, which books for the signed-in customer"""

    customer_id: Optional[int] = None
    device_id: Optional[int] = None
    technician_id: Optional[int] = None
    date: str
    time: str
    service_type: str = "Annual Test"
    priority: Priority = "medium"
    notes: Optional[str] = None


class RescheduleRequest(BaseModel):
    new_date: str
    new_time: str
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentUpdate(BaseModel):
    status: Optional[AppointmentStatus] = None
    technician_id: Optional[int] = None
    estimated_duration: Optional[int] = Field(None, ge=15, le=480)
    priority: Optional[Priority] = None
    notes: Optional[str] = None


class NextAvailableRequest(BaseModel):
    customer_id: Optional[int] = None
    device_id: Optional[int] = None
    priority: Priority = "medium"
    service_type: str = "Annual Test"
    auto_book: bool = False


class ConflictResolution(BaseModel):
    appointment_id: int
    action: ResolutionAction
    new_date: Optional[str] = None
    new_time: Optional[str] = None
    new_duration: Optional[int] = Field(None, ge=15, le=480)
    reason: str = ""


class ResolveConflictsRequest(BaseModel):
    resolutions: list[ConflictResolution] = Field(..., min_length=1)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    device_id: Optional[int] = None
    technician_id: Optional[int] = None
    service_type: Optional[str] = None
    scheduled_date: date
    scheduled_time: str
    estimated_duration: Optional[int] = None
    status: str
    priority: Optional[str] = None
    notes: Optional[str] = None
    payment_status: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BookingResponse(BaseModel):
    success: bool = True
    appointment: AppointmentResponse
    notifications: dict = {}
