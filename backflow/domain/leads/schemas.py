"""Lead domain schemas"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.pagination import Pagination
from ...shared.validators import validate_email, validate_us_phone, validate_zip

LeadStatus = Literal["new", "contacted", "qualified", "converted", "lost"]


class LeadCreate(BaseModel):
    """Public quote/test request form"""

    company_slug: str = Field(..., min_length=1, max_length=60)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    company_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    message: Optional[str] = Field(None, max_length=5000)
    source: str = Field("website", max_length=50)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v


class LeadStatusUpdate(BaseModel):
    status: LeadStatus


class LeadConvertRequest(BaseModel):
    """Fields the lead form does not collect"""

    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("zip_code")
    @classmethod
    def check_zip(cls, v):
        return validate_zip(v)


class LeadSubmitResponse(BaseModel):
    success: bool
    message: str


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    message: Optional[str] = None
    source: Optional[str] = None
    status: str
    converted_customer_id: Optional[int] = None
    created_at: Optional[datetime] = None


class LeadListResponse(BaseModel):
    data: list[LeadResponse]
    pagination: Pagination
