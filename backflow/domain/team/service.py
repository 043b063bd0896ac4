"""Team service - staff login with lockout, user management and invitations"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...auth import create_session
from ...config import LOCKOUT_MINUTES, MAX_FAILED_LOGIN_ATTEMPTS, PASSWORD_MIN_LENGTH
from ...email_service import send_team_invitation
from ...models import Company, TeamInvitation, TeamUser
from ...plan_limits import can_add_team_user
from ...security_utils import (
    DUMMY_PASSWORD_HASH,
    generate_secure_token,
    generate_timed_token,
    hash_password,
    hash_token,
    verify_password,
    verify_timed_token,
)
from .repository import TeamRepository
from .schemas import InvitationAccept, InvitationCreate, LoginRequest, TeamUserUpdate

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INVITATION_DAYS = 7
INVALID_CREDENTIALS = "Invalid credentials"


class TeamService:
    """Service layer for team authentication and administration"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TeamRepository()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def _fail(self, request, email: str, reason: str, user: Optional[TeamUser] = None, detail=INVALID_CREDENTIALS):
        log_request_event(
            self.db,
            request,
            "auth.login.failure",
            company_id=user.company_id if user else None,
            user_id=user.id if user else None,
            entity_type="team_user",
            entity_id=user.id if user else None,
            metadata={"email": email, "reason": reason},
            success=False,
        )
        raise HTTPException(status_code=401, detail=detail)

    def login(self, data: LoginRequest, request: Optional[Request] = None) -> dict:
        """
        Authenticate a team member.

        Unknown emails still pay for one bcrypt verification so response time
        does not reveal which addresses exist.
        """
        email = data.email
        if len(data.password) < PASSWORD_MIN_LENGTH or not EMAIL_RE.match(email):
            self._fail(request, email, "malformed")

        user = self.repo.get_user_by_email(self.db, email)
        if not user:
            verify_password(data.password, DUMMY_PASSWORD_HASH)
            self._fail(request, email, "unknown_user")

        if not user.is_active:
            self._fail(request, email, "disabled", user, "Account is disabled")

        now = datetime.utcnow()
        if user.account_locked_until:
            if user.account_locked_until > now:
                self._fail(
                    request, email, "locked", user,
                    "Account is temporarily locked. Please contact administrator.",
                )
            # Lock served; start counting again
            user.account_locked_until = None
            user.failed_login_attempts = 0
            self.db.commit()

        if (user.failed_login_attempts or 0) >= MAX_FAILED_LOGIN_ATTEMPTS:
            self.repo.lock_account(self.db, user, now + timedelta(minutes=LOCKOUT_MINUTES))
            log_request_event(
                self.db,
                request,
                "auth.account.locked",
                company_id=user.company_id,
                user_id=user.id,
                entity_type="team_user",
                entity_id=user.id,
                metadata={"failed_attempts": user.failed_login_attempts},
                success=False,
            )
            raise HTTPException(status_code=401, detail="Account locked due to multiple failed attempts")

        if not user.password_hash:
            self._fail(
                request, email, "no_password", user,
                "Account not properly configured. Please contact administrator.",
            )

        if not verify_password(data.password, user.password_hash):
            self.repo.record_failed_login(self.db, user)
            self._fail(request, email, "bad_password", user)

        user = self.repo.record_successful_login(self.db, user)
        token, expires_at = create_session(self.db, "team_user", user.id, user.company_id, request)
        company = self.db.query(Company).filter(Company.id == user.company_id).first()

        log_request_event(
            self.db,
            request,
            "auth.login.success",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="team_user",
            entity_id=user.id,
        )
        logger.info(f"✅ Team login: {user.email} ({user.role})")
        return {
            "user": user,
            "company_id": user.company_id,
            "company_name": company.name if company else "",
            "session_expires_at": expires_at,
            "token": token,
        }

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self, current_user: TeamUser) -> list[TeamUser]:
        return self.repo.list_users(self.db, current_user.company_id)

    def update_user(self, user_id: int, data: TeamUserUpdate, current_user: TeamUser) -> TeamUser:
        user = self.repo.get_user(self.db, user_id, current_user.company_id)
        if not user:
            raise HTTPException(status_code=404, detail="Team member not found")
        if user.id == current_user.id and (data.role not in (None, "admin") or data.is_active is False):
            raise HTTPException(status_code=400, detail="You cannot demote or disable your own account")

        updates = data.model_dump(exclude_unset=True)
        if updates.get("is_active") is True and not user.is_active:
            company = self.db.query(Company).filter(Company.id == user.company_id).first()
            can_add, message = can_add_team_user(company, self.db)
            if not can_add:
                raise HTTPException(status_code=403, detail=message)

        user = self.repo.update_user(self.db, user, **updates)
        log_request_event(
            self.db,
            None,
            "team_user.updated",
            company_id=user.company_id,
            user_id=current_user.id,
            entity_type="team_user",
            entity_id=user.id,
            metadata=updates,
        )
        return user

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def invite(self, data: InvitationCreate, current_user: TeamUser) -> TeamInvitation:
        company = self.db.query(Company).filter(Company.id == current_user.company_id).first()

        if self.repo.get_user_by_email(self.db, data.email):
            raise HTTPException(status_code=409, detail="A user with this email already exists")
        if self.repo.pending_invitation_for(self.db, company.id, data.email):
            raise HTTPException(status_code=409, detail="An invitation is already pending for this email")

        can_add, message = can_add_team_user(company, self.db)
        if not can_add:
            raise HTTPException(status_code=403, detail=message)

        invitation = TeamInvitation(
            company_id=company.id,
            email=data.email,
            role=data.role,
            token_hash=hash_token(generate_secure_token()),
            invited_by_id=current_user.id,
            status="pending",
            expires_at=datetime.utcnow() + timedelta(days=INVITATION_DAYS),
        )
        self.db.add(invitation)
        self.db.flush()
        token = generate_timed_token({"invitation_id": invitation.id, "email": data.email})
        invitation.token_hash = hash_token(token)
        self.db.commit()
        self.db.refresh(invitation)

        try:
            await send_team_invitation(
                to=data.email,
                company_name=company.name,
                inviter_name=current_user.full_name,
                role=data.role,
                token=token,
            )
        except Exception as e:
            logger.error(f"❌ Failed to email invitation {invitation.id}: {e}")

        log_request_event(
            self.db,
            None,
            "team_user.invited",
            company_id=company.id,
            user_id=current_user.id,
            entity_type="team_invitation",
            entity_id=invitation.id,
            metadata={"email": data.email, "role": data.role},
        )
        return invitation

    def list_invitations(self, current_user: TeamUser) -> list[TeamInvitation]:
        return self.repo.list_invitations(self.db, current_user.company_id)

    def accept_invitation(self, data: InvitationAccept, request: Optional[Request] = None) -> dict:
        payload = verify_timed_token(data.token, max_age=INVITATION_DAYS * 86400)
        invitation = self.repo.get_invitation_by_hash(self.db, hash_token(data.token))
        if not payload or not invitation or invitation.id != payload.get("invitation_id"):
            raise HTTPException(status_code=400, detail="Invalid or expired invitation")
        if invitation.status != "pending" or invitation.expires_at <= datetime.utcnow():
            raise HTTPException(status_code=400, detail="Invitation is no longer valid")
        if len(data.password) < PASSWORD_MIN_LENGTH:
            raise HTTPException(
                status_code=400, detail=f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
            )
        if self.repo.get_user_by_email(self.db, invitation.email):
            raise HTTPException(status_code=409, detail="A user with this email already exists")

        user = TeamUser(
            company_id=invitation.company_id,
            email=invitation.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            phone=data.phone,
            role=invitation.role,
            is_active=True,
            failed_login_attempts=0,
        )
        self.db.add(user)
        invitation.status = "accepted"
        invitation.accepted_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)

        token, expires_at = create_session(self.db, "team_user", user.id, user.company_id, request)
        log_request_event(
            self.db,
            request,
            "team_user.joined",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="team_user",
            entity_id=user.id,
        )
        company = self.db.query(Company).filter(Company.id == user.company_id).first()
        return {
            "user": user,
            "company_id": user.company_id,
            "company_name": company.name if company else "",
            "session_expires_at": expires_at,
            "token": token,
        }
