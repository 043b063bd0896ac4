"""
Security middleware and Row-Level Security session context
"""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from .database import is_postgres

logger = logging.getLogger(__name__)

RLS_SETTINGS = ("app.current_company_id", "app.current_user_id", "app.current_role")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        return response


def set_rls_context(
    db: Session, company_id: int, user_id: Optional[int] = None, role: Optional[str] = None
) -> None:
    """
    Set the RLS context for a database session.

    Policies created by ``backflow.rls`` read these settings through
    ``auth.current_company_id()``, ``auth.is_team_member()`` and ``auth.is_admin()``.
    No-op on databases without RLS (SQLite in tests).

    Example:
        @router.get("/customers")
        async def list_customers(user: TeamUser = Depends(get_current_team_user), db: Session = Depends(get_db)):
            # already called by get_current_team_user
            return db.query(Customer).all()
    """
    if not is_postgres(db):
        return

    settings = {
        "app.current_company_id": str(company_id),
        "app.current_user_id": str(user_id or ""),
        "app.current_role": role or "",
    }
    try:
        for name, value in settings.items():
            db.execute(
                text("SELECT set_config(:name, :value, false)"), {"name": name, "value": value}
            )
        logger.debug(f"RLS context set for company_id={company_id} user_id={user_id} role={role}")
    except Exception as e:
        logger.error(f"Failed to set RLS context for company_id={company_id}: {e}")
        raise


def clear_rls_context(db: Session) -> None:
    """
    Clear the RLS context before the connection goes back to the pool.

    ``set_config(..., false)`` outlives the transaction, so the reset is committed
    on its own. A connection that cannot be reset is invalidated instead of reused.
    """
    if not is_postgres(db):
        return
    try:
        db.rollback()
        for name in RLS_SETTINGS:
            db.execute(text("SELECT set_config(:name, '', false)"), {"name": name})
        db.commit()
        logger.debug("RLS context cleared")
    except Exception as e:
        logger.error(f"❌ Failed to clear RLS context, discarding connection: {e}")
        db.invalidate()
