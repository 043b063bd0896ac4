"""Team domain schemas - staff accounts, login and invitations"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.validators import validate_email, validate_us_phone

TeamRole = Literal["admin", "manager", "technician"]


class TeamUserResponse(BaseModel):
    """Team member without password or lockout fields"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class LoginResponse(BaseModel):
    user: TeamUserResponse
    company_id: int
    company_name: str
    session_expires_at: datetime
    token: str


class TeamUserUpdate(BaseModel):
    role: Optional[TeamRole] = None
    is_active: Optional[bool] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v


class InvitationCreate(BaseModel):
    email: str
    role: TeamRole = "technician"

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str
    status: str
    expires_at: datetime
    created_at: Optional[datetime] = None


class InvitationAccept(BaseModel):
    token: str
    password: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
