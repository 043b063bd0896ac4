"""
Audit trail for security and business events

Event types are dotted names grouped by area, e.g. ``auth.login.success``,
``customer.created``, ``payment.completed``, ``document.invoice.created``.
Writing an audit entry must never break the request that triggered it.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from .models import AuditLog
from .rate_limiter import get_client_ip

logger = logging.getLogger(__name__)

HIGH_SEVERITY_EVENTS = {
    "auth.account.locked",
    "payment.refunded",
    "customer.deleted",
    "api_key.created",
    "api_key.revoked",
    "security.rls.applied",
}


def _default_severity(event_type: str, success: bool) -> str:
    if event_type in HIGH_SEVERITY_EVENTS:
        return "high"
    if not success:
        return "medium"
    return "low"


def log_event(
    db: Session,
    event_type: str,
    company_id: Optional[int] = None,
    user_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Any = None,
    metadata: Optional[dict] = None,
    success: bool = True,
    severity: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[AuditLog]:
    """Persist one audit entry and mirror it to the application log"""
    severity = severity or _default_severity(event_type, success)
    log_line = (
        f"AUDIT {event_type} company={company_id} user={user_id} "
        f"entity={entity_type}:{entity_id} success={success}"
    )
    if severity in ("high", "critical"):
        logger.warning(f"🛡️ {log_line}")
    else:
        logger.info(f"📝 {log_line}")

    try:
        entry = AuditLog(
            company_id=company_id,
            user_id=user_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            event_metadata=metadata or {},
            success=success,
            severity=severity,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to write audit log {event_type}: {e}")
        return None


def log_request_event(
    db: Session, request: Optional[Request], event_type: str, **kwargs
) -> Optional[AuditLog]:
    """log_event with IP and user agent taken from the request"""
    if request is not None:
        kwargs.setdefault("ip_address", get_client_ip(request))
        kwargs.setdefault("user_agent", request.headers.get("user-agent"))
    return log_event(db, event_type, **kwargs)
