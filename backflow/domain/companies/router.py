"""Company router - tenant sign-up and settings"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ...auth import TEAM_COOKIE, get_current_team_user, require_admin, set_session_cookie
from ...cache import invalidate_company_metrics
from ...database import get_db
from ...models import TeamUser
from ...rate_limiter import create_rate_limiter
from .schemas import (
    CompanyRegisterRequest,
    CompanyRegisterResponse,
    CompanyResponse,
    CompanySettingsUpdate,
)
from .service import CompanyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team/company", tags=["Company"])

register_rate_limit = create_rate_limiter(limit=3, window_seconds=3600, key_prefix="company_register")


def get_company_service(db: Session = Depends(get_db)) -> CompanyService:
    return CompanyService(db)


@router.post("/register", response_model=CompanyRegisterResponse, status_code=201)
async def register_company(
    data: CompanyRegisterRequest,
    request: Request,
    response: Response,
    _: None = Depends(register_rate_limit),
    service: CompanyService = Depends(get_company_service),
):
    """Sign up a testing company with its first admin"""
    result = service.register(data, request)
    set_session_cookie(response, TEAM_COOKIE, result["token"], result["session_expires_at"])
    return result


@router.get("", response_model=CompanyResponse)
async def get_company(
    current_user: TeamUser = Depends(get_current_team_user),
    service: CompanyService = Depends(get_company_service),
):
    return service.get_company(current_user.company_id)


@router.patch("", response_model=CompanyResponse)
async def update_company(
    data: CompanySettingsUpdate,
    current_user: TeamUser = Depends(require_admin),
    service: CompanyService = Depends(get_company_service),
):
    """Update billing defaults, working hours and district settings"""
    company = service.update_settings(current_user.company_id, data)
    invalidate_company_metrics(company.id)
    return company
