"""Test report domain schemas"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...shared.pagination import Pagination
from ..invoices.schemas import InvoiceResponse

Condition = Literal["good", "fair", "poor", "failed"]
TestResult = Literal["Passed", "Failed", "Needs Repair"]


class ComponentReading(BaseModel):
    condition: Condition
    reading_psi: Optional[float] = None
    notes: Optional[str] = None


class TestData(BaseModel):
    check_valve_1: Optional[ComponentReading] = None
    check_valve_2: Optional[ComponentReading] = None
    relief_valve: Optional[ComponentReading] = None
    shutoff_valve_inlet: Optional[ComponentReading] = None
    shutoff_valve_outlet: Optional[ComponentReading] = None


class TestCompletionRequest(BaseModel):
    appointment_id: Optional[int] = None
    device_id: Optional[int] = None
    test_date: Optional[date] = None
    test_type: Optional[str] = None
    initial_pressure: float
    final_pressure: float
    pressure_drop: Optional[float] = None
    test_duration: Optional[int] = Field(None, ge=0)
    test_data: TestData = TestData()
    test_result: Optional[TestResult] = None
    notes: Optional[str] = None
    water_district: Optional[str] = None


class DistrictSubmissionRequest(BaseModel):
    district_email: Optional[str] = None


class TestReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    device_id: int
    appointment_id: Optional[int] = None
    technician_id: Optional[int] = None
    technician_name: Optional[str] = None
    test_date: date
    test_type: Optional[str] = None
    initial_pressure: Optional[float] = None
    final_pressure: Optional[float] = None
    pressure_drop: Optional[float] = None
    test_duration: Optional[int] = None
    test_data: Optional[dict] = None
    status: str
    repairs_needed: bool
    follow_up_required: bool
    follow_up_date: Optional[date] = None
    certification_number: Optional[str] = None
    notes: Optional[str] = None
    water_district: Optional[str] = None
    submitted: bool
    submitted_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TestReportListResponse(BaseModel):
    data: list[TestReportResponse]
    pagination: Pagination


class TestCompletionResponse(BaseModel):
    success: bool = True
    test_report: TestReportResponse
    invoice: Optional[InvoiceResponse] = None
    message: str
    automation: dict
