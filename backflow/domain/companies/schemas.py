"""Company domain schemas - tenant registration and settings"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ...shared.validators import validate_email
from ..team.schemas import TeamUserResponse

BUSINESS_TYPES = ("testing_service", "plumbing", "municipal", "contractor", "other")


class CompanyRegisterRequest(BaseModel):
    """Sign-up form; accepts camelCase keys from the web client.

    Fields are optional at the schema level so the service can report every
    missing field at once.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    business_type: Optional[str] = "testing_service"
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    certification_level: Optional[str] = None
    admin_first_name: Optional[str] = None
    admin_last_name: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    plan_type: Optional[str] = "professional"


class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    email: str
    phone: Optional[str] = None
    website: Optional[str] = None
    business_type: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    plan: Optional[str] = None
    max_users: Optional[int] = None
    subscription_status: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    tax_rate: Optional[float] = None
    test_price: Optional[float] = None
    payment_terms_days: Optional[int] = None
    working_hours: Optional[dict] = None
    working_days: Optional[list[int]] = None
    water_district_email: Optional[str] = None
    created_at: Optional[datetime] = None


class CompanyRegisterResponse(BaseModel):
    success: bool = True
    company: CompanyResponse
    user: TeamUserResponse
    session_expires_at: datetime
    token: str


class CompanySettingsUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    tax_rate: Optional[float] = None
    test_price: Optional[float] = None
    payment_terms_days: Optional[int] = None
    working_hours: Optional[dict] = None
    working_days: Optional[list[int]] = None
    water_district_email: Optional[str] = None

    @field_validator("tax_rate")
    @classmethod
    def check_tax_rate(cls, v):
        if v is not None and not 0 <= v < 1:
            raise ValueError("tax_rate is a fraction between 0 and 1")
        return v

    @field_validator("working_hours")
    @classmethod
    def check_hours(cls, v):
        if v is None:
            return v
        start, end = v.get("start"), v.get("end")
        if not start or not end or start >= end:
            raise ValueError('working_hours needs "start" before "end" as HH:MM')
        return {"start": start, "end": end}

    @field_validator("working_days")
    @classmethod
    def check_days(cls, v):
        if v is not None and any(d < 0 or d > 6 for d in v):
            raise ValueError("working_days are weekday numbers 0 (Monday) to 6 (Sunday)")
        return v

    @field_validator("water_district_email")
    @classmethod
    def check_district_email(cls, v):
        return validate_email(v)
