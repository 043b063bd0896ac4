"""Company service - tenant sign-up and settings"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...auth import create_session
from ...config import (
    DEFAULT_PAYMENT_TERMS_DAYS,
    DEFAULT_TAX_RATE,
    DEFAULT_TEST_PRICE,
    PASSWORD_MIN_LENGTH,
)
from ...models import Company, TeamUser
from ...plan_limits import PLANS, TRIAL_DAYS, get_plan
from ...security_utils import hash_password
from .repository import CompanyRepository
from .schemas import BUSINESS_TYPES, CompanyRegisterRequest, CompanySettingsUpdate

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SLUG_MAX_LENGTH = 50

DEFAULT_WORKING_HOURS = {"start": "08:00", "end": "17:00"}
DEFAULT_WORKING_DAYS = [0, 1, 2, 3, 4]

REQUIRED_FIELDS = [
    ("name", "Company name is required"),
    ("email", "Company email is required"),
    ("phone", "Phone number is required"),
    ("address_line1", "Address is required"),
    ("city", "City is required"),
    ("state", "State is required"),
    ("zip_code", "ZIP code is required"),
    ("admin_first_name", "Admin first name is required"),
    ("admin_last_name", "Admin last name is required"),
    ("admin_email", "Admin email is required"),
    ("admin_password", "Admin password is required"),
]


def generate_slug(name: str) -> str:
    """Lower-case, drop punctuation, hyphenate whitespace, cap at 50 chars"""
    slug = name.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:SLUG_MAX_LENGTH]


def validate_registration(data: CompanyRegisterRequest) -> list[str]:
    """Collect every problem with the sign-up form"""
    errors = []
    for field, message in REQUIRED_FIELDS:
        value = getattr(data, field)
        if not value or not value.strip():
            errors.append(message)

    if data.email and not EMAIL_RE.match(data.email.strip()):
        errors.append("Invalid company email format")
    if data.admin_email and not EMAIL_RE.match(data.admin_email.strip()):
        errors.append("Invalid admin email format")
    if data.admin_password and len(data.admin_password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if data.business_type and data.business_type not in BUSINESS_TYPES:
        errors.append("Invalid business type")
    if data.plan_type and data.plan_type not in PLANS:
        errors.append("Invalid plan type")
    return errors


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class CompanyService:
    """Service layer for company business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CompanyRepository()

    def unique_slug(self, name: str) -> str:
        base = generate_slug(name) or "company"
        slug = base
        suffix = 1
        while self.repo.get_by_slug(self.db, slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    def register(self, data: CompanyRegisterRequest, request: Optional[Request] = None) -> dict:
        """Create a trialing company, its admin user and a first session"""
        errors = validate_registration(data)
        if errors:
            raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": errors})

        company_email = data.email.strip().lower()
        admin_email = data.admin_email.strip().lower()

        if self.repo.get_by_email(self.db, company_email):
            raise HTTPException(status_code=409, detail="A company with this email already exists")
        if self.repo.team_user_email_exists(self.db, admin_email):
            raise HTTPException(status_code=409, detail="A user with this admin email already exists")

        plan_key = data.plan_type or "professional"
        plan = get_plan(plan_key)
        company = Company(
            name=data.name.strip(),
            slug=self.unique_slug(data.name),
            email=company_email,
            phone=data.phone.strip(),
            website=_clean(data.website),
            business_type=data.business_type or "testing_service",
            address_line1=data.address_line1.strip(),
            address_line2=_clean(data.address_line2),
            city=data.city.strip(),
            state=data.state.strip(),
            zip_code=data.zip_code.strip(),
            license_number=_clean(data.license_number),
            certification_level=_clean(data.certification_level),
            plan=plan_key,
            max_users=plan["max_users"],
            subscription_status="trialing",
            trial_ends_at=datetime.utcnow() + timedelta(days=TRIAL_DAYS),
            tax_rate=DEFAULT_TAX_RATE,
            test_price=DEFAULT_TEST_PRICE,
            payment_terms_days=DEFAULT_PAYMENT_TERMS_DAYS,
            working_hours=dict(DEFAULT_WORKING_HOURS),
            working_days=list(DEFAULT_WORKING_DAYS),
        )
        admin = TeamUser(
            email=admin_email,
            password_hash=hash_password(data.admin_password),
            first_name=data.admin_first_name.strip(),
            last_name=data.admin_last_name.strip(),
            role="admin",
            is_active=True,
            failed_login_attempts=0,
        )

        try:
            company, admin = self.repo.create_with_admin(self.db, company, admin)
        except IntegrityError as e:
            logger.error(f"❌ Company registration race for {company_email}: {e}")
            raise HTTPException(status_code=409, detail="Company or admin email already registered") from e

        token, expires_at = create_session(self.db, "team_user", admin.id, company.id, request)
        logger.info(f"🏢 Company registered: {company.name} ({company.slug}) on {plan_key}")
        log_request_event(
            self.db,
            request,
            "company.registered",
            company_id=company.id,
            user_id=admin.id,
            entity_type="company",
            entity_id=company.id,
            metadata={"plan": plan_key},
        )
        return {
            "success": True,
            "company": company,
            "user": admin,
            "session_expires_at": expires_at,
            "token": token,
        }

    def get_company(self, company_id: int) -> Company:
        company = self.repo.get_by_id(self.db, company_id)
        if not company:
            raise HTTPException(status_code=404, detail="Company not found")
        return company

    def update_settings(self, company_id: int, data: CompanySettingsUpdate) -> Company:
        company = self.get_company(company_id)
        return self.repo.update(self.db, company, **data.model_dump(exclude_unset=True))
