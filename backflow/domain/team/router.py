"""Team router - staff authentication, user management and invitations"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...auth import (
    TEAM_COOKIE,
    clear_session_cookie,
    get_current_team_user,
    require_admin,
    revoke_session,
    security,
    session_token_from_request,
    set_session_cookie,
)
from ...database import get_db
from ...models import TeamUser
from ...rate_limiter import create_rate_limiter
from .schemas import (
    InvitationAccept,
    InvitationCreate,
    InvitationResponse,
    LoginRequest,
    LoginResponse,
    TeamUserResponse,
    TeamUserUpdate,
)
from .service import TeamService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team", tags=["Team"])

login_rate_limit = create_rate_limiter(limit=5, window_seconds=300, key_prefix="team_login")
accept_rate_limit = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="invite_accept")


def get_team_service(db: Session = Depends(get_db)) -> TeamService:
    return TeamService(db)


# ============================================================================
# AUTH
# ============================================================================


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    _: None = Depends(login_rate_limit),
    service: TeamService = Depends(get_team_service),
):
    result = service.login(data, request)
    set_session_cookie(response, TEAM_COOKIE, result["token"], result["session_expires_at"])
    return result


@router.post("/auth/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
):
    token = session_token_from_request(request, TEAM_COOKIE, credentials)
    if revoke_session(db, token):
        log_request_event(db, request, "auth.logout")
    clear_session_cookie(response, TEAM_COOKIE)
    return {"success": True}


@router.get("/auth/me", response_model=TeamUserResponse)
async def me(current_user: TeamUser = Depends(get_current_team_user)):
    return current_user


# ============================================================================
# USERS
# ============================================================================


@router.get("/users", response_model=list[TeamUserResponse])
async def list_users(
    current_user: TeamUser = Depends(get_current_team_user),
    service: TeamService = Depends(get_team_service),
):
    return service.list_users(current_user)


@router.patch("/users/{user_id}", response_model=TeamUserResponse)
async def update_user(
    user_id: int,
    data: TeamUserUpdate,
    current_user: TeamUser = Depends(require_admin),
    service: TeamService = Depends(get_team_service),
):
    """Change a member's role, contact details or activation"""
    return service.update_user(user_id, data, current_user)


# ============================================================================
# INVITATIONS
# ============================================================================


@router.get("/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    current_user: TeamUser = Depends(require_admin),
    service: TeamService = Depends(get_team_service),
):
    return service.list_invitations(current_user)


@router.post("/invitations", response_model=InvitationResponse, status_code=201)
@router.post("/users", response_model=InvitationResponse, status_code=201, include_in_schema=False)
async def invite_user(
    data: InvitationCreate,
    current_user: TeamUser = Depends(require_admin),
    service: TeamService = Depends(get_team_service),
):
    """Email a 7-day invitation to join the company"""
    return await service.invite(data, current_user)


@router.post("/invitations/accept", response_model=LoginResponse)
async def accept_invitation(
    data: InvitationAccept,
    request: Request,
    response: Response,
    _: None = Depends(accept_rate_limit),
    service: TeamService = Depends(get_team_service),
):
    result = service.accept_invitation(data, request)
    set_session_cookie(response, TEAM_COOKIE, result["token"], result["session_expires_at"])
    return result
