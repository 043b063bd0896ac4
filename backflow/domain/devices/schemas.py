"""Device domain schemas - backflow assemblies"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

DeviceType = Literal["rpz", "dc", "pvb", "svb", "vba", "air_gap"]
DeviceStatus = Literal["Passed", "Failed", "Needs Repair", "Untested"]
HazardLevel = Literal["high", "moderate", "low"]


class DeviceBase(BaseModel):
    serial_number: str
    make: Optional[str] = None
    model: Optional[str] = None
    size: Optional[str] = None
    device_type: DeviceType = "dc"
    location: Optional[str] = None
    install_date: Optional[date] = None
    water_meter_number: Optional[str] = None
    hazard_level: Optional[HazardLevel] = None
    test_frequency_months: int = 12

    @field_validator("serial_number")
    @classmethod
    def serial_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Serial number is required")
        return v

    @field_validator("test_frequency_months")
    @classmethod
    def positive_frequency(cls, v):
        if v < 1 or v > 60:
            raise ValueError("Test frequency must be between 1 and 60 months")
        return v


class DeviceCreate(DeviceBase):
    customer_id: int
    last_test_date: Optional[date] = None
    next_test_date: Optional[date] = None


class DeviceUpdate(BaseModel):
    serial_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    size: Optional[str] = None
    device_type: Optional[DeviceType] = None
    location: Optional[str] = None
    install_date: Optional[date] = None
    water_meter_number: Optional[str] = None
    hazard_level: Optional[HazardLevel] = None
    test_frequency_months: Optional[int] = None
    next_test_date: Optional[date] = None
    status: Optional[DeviceStatus] = None
    is_active: Optional[bool] = None


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    serial_number: str
    make: Optional[str] = None
    model: Optional[str] = None
    size: Optional[str] = None
    device_type: Optional[str] = None
    location: Optional[str] = None
    install_date: Optional[date] = None
    water_meter_number: Optional[str] = None
    hazard_level: Optional[str] = None
    test_frequency_months: int
    last_test_date: Optional[date] = None
    next_test_date: Optional[date] = None
    status: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
