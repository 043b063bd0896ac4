"""Test report router - completion, PDFs and district submission"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_staff
from ...database import get_db
from ...models import TeamUser
from .schemas import (
    DistrictSubmissionRequest,
    TestCompletionRequest,
    TestCompletionResponse,
    TestReportListResponse,
    TestReportResponse,
)
from .service import TestReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/test-reports", tags=["Test Reports"])


def get_test_report_service(db: Session = Depends(get_db)) -> TestReportService:
    return TestReportService(db)


@router.get("", response_model=TestReportListResponse)
async def list_reports(
    customer_id: Optional[int] = Query(None),
    device_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: TeamUser = Depends(get_current_team_user),
    service: TestReportService = Depends(get_test_report_service),
):
    return service.list_reports(
        current_user.company_id, customer_id, device_id, status, date_from, date_to, page, limit
    )


@router.post("/complete", response_model=TestCompletionResponse, status_code=201)
async def complete_test(
    data: TestCompletionRequest,
    request: Request,
    current_user: TeamUser = Depends(get_current_team_user),
    service: TestReportService = Depends(get_test_report_service),
):
    """Record test readings, update the device and invoice the customer"""
    return await service.complete_test(data, current_user, request)


@router.get("/automation-stats")
async def automation_stats(
    current_user: TeamUser = Depends(get_current_team_user),
    service: TestReportService = Depends(get_test_report_service),
):
    return {"success": True, "automation": service.automation_stats(current_user.company_id)}


@router.get("/{report_id}", response_model=TestReportResponse)
async def get_report(
    report_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: TestReportService = Depends(get_test_report_service),
):
    return service.get_report(report_id, current_user.company_id)


@router.get("/{report_id}/pdf")
async def download_pdf(
    report_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: TestReportService = Depends(get_test_report_service),
):
    pdf_bytes, filename = service.render_pdf(report_id, current_user.company_id)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{report_id}/submit-district", response_model=TestReportResponse)
async def submit_to_district(
    report_id: int,
    request: Request,
    data: DistrictSubmissionRequest = DistrictSubmissionRequest(),
    current_user: TeamUser = Depends(require_staff),
    service: TestReportService = Depends(get_test_report_service),
):
    """Email the report PDF to the water district"""
    return await service.submit_to_district(report_id, data, current_user, request)
