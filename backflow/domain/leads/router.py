"""Lead router - public lead capture and team follow-up"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_staff
from ...database import get_db
from ...models import TeamUser
from ...rate_limiter import create_rate_limiter
from ..customers.schemas import CustomerResponse
from .schemas import (
    LeadConvertRequest,
    LeadCreate,
    LeadListResponse,
    LeadResponse,
    LeadStatus,
    LeadStatusUpdate,
    LeadSubmitResponse,
)
from .service import LeadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])

lead_rate_limit = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="lead_submit")


def get_lead_service(db: Session = Depends(get_db)) -> LeadService:
    return LeadService(db)


@router.post("", response_model=LeadSubmitResponse, status_code=201)
async def submit_lead(
    data: LeadCreate,
    request: Request,
    _: None = Depends(lead_rate_limit),
    service: LeadService = Depends(get_lead_service),
):
    """Public test/quote request form"""
    service.submit(data, request)
    return {"success": True, "message": "Thanks! We'll be in touch shortly."}


@router.get("", response_model=LeadListResponse)
async def list_leads(
    status: Optional[LeadStatus] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: TeamUser = Depends(get_current_team_user),
    service: LeadService = Depends(get_lead_service),
):
    return service.list_leads(current_user.company_id, status, search, page, limit)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: LeadService = Depends(get_lead_service),
):
    return service.get_lead(lead_id, current_user.company_id)


@router.patch("/{lead_id}", response_model=LeadResponse)
async def update_lead_status(
    lead_id: int,
    data: LeadStatusUpdate,
    current_user: TeamUser = Depends(get_current_team_user),
    service: LeadService = Depends(get_lead_service),
):
    return service.update_status(lead_id, data.status, current_user)


@router.post("/{lead_id}/convert", response_model=CustomerResponse, status_code=201)
async def convert_lead(
    lead_id: int,
    data: Optional[LeadConvertRequest] = None,
    current_user: TeamUser = Depends(require_staff),
    service: LeadService = Depends(get_lead_service),
):
    """Turn a lead into a customer account"""
    return service.convert(lead_id, data or LeadConvertRequest(), current_user)
