"""
Session and API key authentication

Team users and portal customers sign in with a password and receive an opaque
session token. Only its SHA-256 hash is stored; the token travels in an
httponly cookie or an ``Authorization: Bearer`` header.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import SESSION_COOKIE_DOMAIN, SESSION_COOKIE_SECURE, SESSION_DURATION_HOURS
from .database import get_db
from .models import AuthSession, Company, Customer, TeamUser
from .models_webhook import ApiKey, ApiUsageLog
from .rate_limiter import get_client_ip
from .security_middleware import set_rls_context
from .security_utils import generate_secure_token, hash_token

logger = logging.getLogger(__name__)

TEAM_COOKIE = "team_session"
PORTAL_COOKIE = "portal_session"
ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")

security = HTTPBearer(auto_error=False)


# ============================================================================
# SESSIONS
# ============================================================================


def create_session(
    db: Session,
    subject_type: str,
    subject_id: int,
    company_id: int,
    request: Optional[Request] = None,
) -> tuple[str, datetime]:
    """Persist a new session and return (plaintext token, expires_at)"""
    token = generate_secure_token(32)
    expires_at = datetime.utcnow() + timedelta(hours=SESSION_DURATION_HOURS)
    session = AuthSession(
        token_hash=hash_token(token),
        subject_type=subject_type,
        subject_id=subject_id,
        company_id=company_id,
        ip_address=get_client_ip(request) if request else None,
        user_agent=(request.headers.get("user-agent") or "")[:500] if request else None,
        expires_at=expires_at,
    )
    db.add(session)
    db.commit()
    logger.debug(f"🔑 Session created for {subject_type}:{subject_id}")
    return token, expires_at


def set_session_cookie(response: Response, cookie_name: str, token: str, expires_at: datetime):
    response.set_cookie(
        key=cookie_name,
        value=token,
        max_age=int((expires_at - datetime.utcnow()).total_seconds()),
        httponly=True,
        secure=SESSION_COOKIE_SECURE,
        samesite="strict",
        domain=SESSION_COOKIE_DOMAIN,
        path="/",
    )


def clear_session_cookie(response: Response, cookie_name: str):
    response.delete_cookie(key=cookie_name, domain=SESSION_COOKIE_DOMAIN, path="/")


def session_token_from_request(
    request: Request, cookie_name: str, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name)


def resolve_session(db: Session, token: str, subject_type: str) -> Optional[AuthSession]:
    session = (
        db.query(AuthSession)
        .filter(
            AuthSession.token_hash == hash_token(token),
            AuthSession.subject_type == subject_type,
            AuthSession.revoked.is_(False),
        )
        .first()
    )
    if not session:
        return None
    if session.expires_at <= datetime.utcnow():
        logger.info(f"ℹ️ Expired {subject_type} session used (id={session.id})")
        return None
    return session


def revoke_session(db: Session, token: Optional[str]) -> bool:
    if not token:
        return False
    session = db.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).first()
    if not session:
        return False
    session.revoked = True
    db.commit()
    return True


def cleanup_expired_sessions(db: Session) -> int:
    """Delete expired and revoked sessions, returns rows removed"""
    removed = (
        db.query(AuthSession)
        .filter((AuthSession.expires_at <= datetime.utcnow()) | (AuthSession.revoked.is_(True)))
        .delete(synchronize_session=False)
    )
    db.commit()
    return removed


# ============================================================================
# DEPENDENCIES
# ============================================================================


async def get_current_team_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> TeamUser:
    """Resolve the signed-in team member from the session cookie or bearer token"""
    token = session_token_from_request(request, TEAM_COOKIE, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = resolve_session(db, token, "team_user")
    if not session:
        raise HTTPException(status_code=401, detail="Session expired or invalid")

    user = db.query(TeamUser).filter(TeamUser.id == session.subject_id).first()
    if not user or not user.is_active:
        logger.warning(f"⚠️ Session {session.id} points at missing or disabled user")
        raise HTTPException(status_code=401, detail="Account is disabled")

    set_rls_context(db, user.company_id, user.id, user.role)
    request.state.company_id = user.company_id
    return user


def require_roles(*roles: str):
    """
    Dependency factory restricting a route to the given team roles

    Example:
        @router.delete("/{customer_id}")
        async def delete_customer(user: TeamUser = Depends(require_roles("admin"))): ...
    """

    async def checker(user: TeamUser = Depends(get_current_team_user)) -> TeamUser:
        if user.role not in roles:
            logger.warning(f"🚫 {user.email} ({user.role}) denied, requires {roles}")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


require_admin = require_roles("admin")
require_staff = require_roles("admin", "manager")


async def get_current_customer(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Customer:
    """Resolve the signed-in portal customer"""
    token = session_token_from_request(request, PORTAL_COOKIE, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = resolve_session(db, token, "customer")
    if not session:
        raise HTTPException(status_code=401, detail="Session expired or invalid")

    customer = db.query(Customer).filter(Customer.id == session.subject_id).first()
    if not customer or customer.status == "Inactive":
        raise HTTPException(status_code=401, detail="Account is disabled")

    set_rls_context(db, customer.company_id, customer.id, "customer")
    return customer


@dataclass
class ApiKeyContext:
    api_key: ApiKey
    company: Company

    @property
    def company_id(self) -> int:
        return self.company.id


def log_api_usage(db: Session, api_key: ApiKey, request: Request, status_code: int) -> None:
    """Record one public API call, never raises"""
    try:
        db.add(
            ApiUsageLog(
                api_key_id=api_key.id,
                company_id=api_key.company_id,
                endpoint=request.url.path,
                method=request.method,
                status_code=status_code,
                ip_address=get_client_ip(request),
                user_agent=(request.headers.get("user-agent") or "")[:500],
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to log API usage for key {api_key.id}: {e}")


async def get_api_key_context(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> ApiKeyContext:
    """Authenticate a public API call by its X-API-Key header"""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    api_key = db.query(ApiKey).filter(ApiKey.key_hash == hash_token(x_api_key)).first()
    if not api_key or not api_key.is_active:
        logger.warning(f"🚫 Invalid API key presented from {get_client_ip(request)}")
        raise HTTPException(status_code=401, detail="Invalid API key")

    company = db.query(Company).filter(Company.id == api_key.company_id).first()
    if not company or company.subscription_status not in ACTIVE_SUBSCRIPTION_STATUSES:
        log_api_usage(db, api_key, request, 403)
        raise HTTPException(status_code=403, detail="Subscription inactive")

    api_key.last_used_at = datetime.utcnow()
    db.commit()

    set_rls_context(db, company.id, None, "api")
    return ApiKeyContext(api_key=api_key, company=company)
