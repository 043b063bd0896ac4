"""Team repository - Database operations for staff accounts and invitations"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import TeamInvitation, TeamUser


class TeamRepository:
    """Repository for team database operations"""

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[TeamUser]:
        return db.query(TeamUser).filter(TeamUser.email == email).first()

    @staticmethod
    def get_user(db: Session, user_id: int, company_id: int) -> Optional[TeamUser]:
        return (
            db.query(TeamUser)
            .filter(TeamUser.id == user_id, TeamUser.company_id == company_id)
            .first()
        )

    @staticmethod
    def list_users(db: Session, company_id: int, include_inactive: bool = True) -> list[TeamUser]:
        query = db.query(TeamUser).filter(TeamUser.company_id == company_id)
        if not include_inactive:
            query = query.filter(TeamUser.is_active.is_(True))
        return query.order_by(TeamUser.last_name, TeamUser.first_name).all()

    @staticmethod
    def record_failed_login(db: Session, user: TeamUser) -> TeamUser:
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        user.last_failed_login = datetime.utcnow()
        db.commit()
        return user

    @staticmethod
    def lock_account(db: Session, user: TeamUser, until: datetime) -> TeamUser:
        user.account_locked_until = until
        user.last_failed_login = datetime.utcnow()
        db.commit()
        return user

    @staticmethod
    def record_successful_login(db: Session, user: TeamUser) -> TeamUser:
        user.failed_login_attempts = 0
        user.account_locked_until = None
        user.last_login = datetime.utcnow()
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update_user(db: Session, user: TeamUser, **updates) -> TeamUser:
        for key, value in updates.items():
            if value is not None and hasattr(user, key):
                setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def pending_invitation_for(db: Session, company_id: int, email: str) -> Optional[TeamInvitation]:
        return (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.company_id == company_id,
                TeamInvitation.email == email,
                TeamInvitation.status == "pending",
            )
            .first()
        )

    @staticmethod
    def get_invitation_by_hash(db: Session, token_hash: str) -> Optional[TeamInvitation]:
        return db.query(TeamInvitation).filter(TeamInvitation.token_hash == token_hash).first()

    @staticmethod
    def list_invitations(db: Session, company_id: int) -> list[TeamInvitation]:
        return (
            db.query(TeamInvitation)
            .filter(TeamInvitation.company_id == company_id)
            .order_by(TeamInvitation.created_at.desc())
            .all()
        )
