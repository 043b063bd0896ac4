"""Customer domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.pagination import Pagination
from ...shared.validators import validate_email, validate_us_phone, validate_zip
from ..devices.schemas import DeviceResponse

CustomerStatus = Literal["Active", "Inactive", "Needs Service"]


def _check_slots(slots: Optional[list[str]]) -> Optional[list[str]]:
    if slots is None:
        return slots
    cleaned = [s.strip() for s in slots if s and s.strip()]
    for slot in cleaned:
        if len(slot) > 5 or not slot.replace(":", "").isdigit():
            raise ValueError("Preferred time slots must look like HH or HH:MM")
    return cleaned


class CustomerCreate(BaseModel):
    """Schema for creating a new customer"""

    first_name: str
    last_name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    preferred_time_slots: Optional[list[str]] = None
    tax_exempt: bool = False
    notes: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("zip_code")
    @classmethod
    def check_zip(cls, v):
        return validate_zip(v)

    @field_validator("preferred_time_slots")
    @classmethod
    def check_slots(cls, v):
        return _check_slots(v)


class CustomerUpdate(BaseModel):
    """Schema for updating an existing customer"""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    status: Optional[CustomerStatus] = None
    next_test_date: Optional[date] = None
    preferred_time_slots: Optional[list[str]] = None
    tax_exempt: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("zip_code")
    @classmethod
    def check_zip(cls, v):
        return validate_zip(v)

    @field_validator("preferred_time_slots")
    @classmethod
    def check_slots(cls, v):
        return _check_slots(v)


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_number: str
    first_name: str
    last_name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    status: str
    balance: float
    next_test_date: Optional[date] = None
    preferred_time_slots: Optional[list[str]] = None
    tax_exempt: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class CustomerDetailResponse(CustomerResponse):
    devices: list[DeviceResponse] = []


class CustomerListResponse(BaseModel):
    data: list[CustomerResponse]
    pagination: Pagination
