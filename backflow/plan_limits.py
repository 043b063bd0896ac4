"""
Subscription plans and the team-size limit each one carries
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Company, TeamInvitation, TeamUser

# Monthly price in cents
PLANS = {
    "starter": {"name": "Starter", "max_users": 3, "price": 2900},
    "professional": {"name": "Professional", "max_users": 15, "price": 7900},
    "enterprise": {"name": "Enterprise", "max_users": 100, "price": 19900},
}

DEFAULT_PLAN = "professional"
TRIAL_DAYS = 14


def get_plan(plan: Optional[str]) -> dict:
    return PLANS.get((plan or DEFAULT_PLAN).lower(), PLANS[DEFAULT_PLAN])


def get_max_users(plan: Optional[str]) -> int:
    return get_plan(plan)["max_users"]


def can_add_team_user(company: Company, db: Session) -> tuple[bool, Optional[str]]:
    """
    Active users plus pending invitations must stay within the plan.
    Returns (can_add, error_message).
    """
    limit = company.max_users or get_max_users(company.plan)
    active_users = (
        db.query(func.count(TeamUser.id))
        .filter(TeamUser.company_id == company.id, TeamUser.is_active.is_(True))
        .scalar()
    )
    pending_invites = (
        db.query(func.count(TeamInvitation.id))
        .filter(TeamInvitation.company_id == company.id, TeamInvitation.status == "pending")
        .scalar()
    )
    if active_users + pending_invites >= limit:
        return (
            False,
            f"Your {get_plan(company.plan)['name']} plan allows {limit} team members. "
            "Upgrade your plan to add more.",
        )
    return True, None
