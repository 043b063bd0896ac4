"""
Pytest configuration and fixtures.

Provides fixtures for:
- Database session (in-memory SQLite)
- Test client
- Company, team users, customers and devices
- Session tokens
"""

import os

# Configure the app before any backflow module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
for key in ("RESEND_API_KEY", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "TWILIO_ACCOUNT_SID"):
    os.environ.pop(key, None)

from datetime import date, timedelta  # noqa: E402
from typing import AsyncGenerator, Generator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backflow.auth import create_session  # noqa: E402
from backflow.database import Base, SessionLocal, engine, get_db  # noqa: E402
from backflow.main import app  # noqa: E402
from backflow.models import Company, Customer, Device, TeamUser  # noqa: E402
from backflow.models_invoice import Invoice  # noqa: E402
from backflow.rate_limiter import reset_rate_limits  # noqa: E402
from backflow.security_utils import hash_password  # noqa: E402

TEST_PASSWORD = "Correct-Horse-42"


@pytest.fixture(autouse=True)
def _fresh_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create all tables, hand out a session, drop everything afterwards."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest_asyncio.fixture
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database session override."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def make_company(db: Session, name: str = "Fisher Backflows", slug: str = "fisher-backflows", **overrides) -> Company:
    values = {
        "name": name,
        "slug": slug,
        "email": f"office@{slug}.com",
        "phone": "+12535550100",
        "plan": "professional",
        "max_users": 15,
        "subscription_status": "trialing",
        "tax_rate": 0.1025,
        "test_price": 150.0,
        "payment_terms_days": 30,
    }
    values.update(overrides)
    company = Company(**values)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def make_user(db: Session, company: Company, email: str, role: str = "admin", **overrides) -> TeamUser:
    values = {
        "company_id": company.id,
        "email": email,
        "password_hash": hash_password(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": role.capitalize(),
        "role": role,
        "is_active": True,
        "failed_login_attempts": 0,
    }
    values.update(overrides)
    user = TeamUser(**values)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(db: Session, user: TeamUser) -> dict:
    token, _ = create_session(db, "team_user", user.id, user.company_id)
    return {"Authorization": f"Bearer {token}"}


def make_customer(db: Session, company: Company, account_number: str = "BF-100001", **overrides) -> Customer:
    values = {
        "company_id": company.id,
        "account_number": account_number,
        "first_name": "Jane",
        "last_name": "Homeowner",
        "email": "jane@example.com",
        "phone": "+12535550199",
        "address_line1": "12 Cedar St",
        "city": "Tacoma",
        "state": "WA",
        "zip_code": "98402",
        "status": "Active",
        "balance": 0,
        "preferred_time_slots": [],
    }
    values.update(overrides)
    customer = Customer(**values)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def make_device(db: Session, customer: Customer, **overrides) -> Device:
    values = {
        "company_id": customer.company_id,
        "customer_id": customer.id,
        "serial_number": "RP-55120",
        "make": "Watts",
        "model": "909",
        "size": '3/4"',
        "device_type": "rpz",
        "location": "Front yard",
        "test_frequency_months": 12,
        "next_test_date": date.today() + timedelta(days=20),
        "status": "Untested",
        "is_active": True,
    }
    values.update(overrides)
    device = Device(**values)
    db.add(device)
    db.commit()
    db.refresh(device)
    return device


def make_invoice(db: Session, customer: Customer, total: float = 220.5, **overrides) -> Invoice:
    """An already-sent, untaxed invoice; adds its total to the customer balance"""
    values = {
        "company_id": customer.company_id,
        "customer_id": customer.id,
        "invoice_number": "INV-202501-0099",
        "status": "sent",
        "line_items": [
            {"description": "Annual Test", "quantity": 1, "unit_price": total, "amount": total, "taxable": False}
        ],
        "subtotal": total,
        "tax_rate": 0,
        "tax_amount": 0,
        "total_amount": total,
        "paid_amount": 0,
        "balance_due": total,
        "issue_date": date.today() - timedelta(days=5),
        "due_date": date.today() + timedelta(days=25),
        "reminder_count": 0,
    }
    values.update(overrides)
    invoice = Invoice(**values)
    db.add(invoice)
    customer.balance = round((customer.balance or 0) + total, 2)
    db.commit()
    db.refresh(invoice)
    return invoice


@pytest.fixture
def company(db: Session) -> Company:
    return make_company(db)


@pytest.fixture
def admin_user(db: Session, company: Company) -> TeamUser:
    return make_user(db, company, "admin@fisherbackflows.com", "admin")


@pytest.fixture
def technician(db: Session, company: Company) -> TeamUser:
    return make_user(db, company, "tech@fisherbackflows.com", "technician")


@pytest.fixture
def admin_headers(db: Session, admin_user: TeamUser) -> dict:
    return bearer(db, admin_user)


@pytest.fixture
def tech_headers(db: Session, technician: TeamUser) -> dict:
    return bearer(db, technician)


@pytest.fixture
def customer(db: Session, company: Company) -> Customer:
    return make_customer(db, company)


@pytest.fixture
def device(db: Session, customer: Customer) -> Device:
    return make_device(db, customer)


@pytest.fixture
def other_company(db: Session) -> Company:
    return make_company(db, name="Rival Testing", slug="rival-testing")


def next_weekday(start: date, days_ahead: int = 3) -> date:
    day = start + timedelta(days=days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day
