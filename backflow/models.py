import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class Company(Base):
    """A testing company - the tenant every other row hangs off"""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(60), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    website = Column(String(255), nullable=True)
    business_type = Column(String(50), default="testing_service")
    # Address
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    # Licensing
    license_number = Column(String(100), nullable=True)
    certification_level = Column(String(100), nullable=True)

    # Plan & subscription
    plan = Column(String(50), default="professional")  # starter, professional, enterprise
    max_users = Column(Integer, default=15)
    subscription_status = Column(String(50), default="trialing")  # trialing, active, past_due, canceled
    trial_ends_at = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)

    # Billing defaults
    tax_rate = Column(Float, default=0.1025)
    test_price = Column(Float, default=150.0)
    payment_terms_days = Column(Integer, default=30)

    # Scheduling
    working_hours = Column(JSON, nullable=True)  # {"start": "08:00", "end": "17:00"}
    working_days = Column(JSON, nullable=True)  # [0, 1, 2, 3, 4] - Monday is 0
    water_district_email = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    team_users = relationship("TeamUser", back_populates="company")
    customers = relationship("Customer", back_populates="company")


class TeamUser(Base):
    """Staff member of a company (admin, office manager, field technician)"""

    __tablename__ = "team_users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default="technician", nullable=False)  # admin, manager, technician
    is_active = Column(Boolean, default=True, nullable=False)
    # Lockout tracking
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    last_failed_login = Column(DateTime, nullable=True)
    account_locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="team_users")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or self.email


class AuthSession(Base):
    """Server-side session for team users and portal customers"""

    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    subject_type = Column(String(20), nullable=False)  # team_user, customer
    subject_id = Column(Integer, nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class TeamInvitation(Base):
    __tablename__ = "team_invitations"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    role = Column(String(20), default="technician", nullable=False)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    invited_by_id = Column(Integer, ForeignKey("team_users.id"), nullable=True)
    status = Column(String(20), default="pending")  # pending, accepted, revoked
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("company_id", "account_number", name="uq_customer_account"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    account_number = Column(String(20), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    company_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    address_line1 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    status = Column(String(20), default="Active", nullable=False)  # Active, Inactive, Needs Service
    balance = Column(Float, default=0, nullable=False)
    next_test_date = Column(Date, nullable=True)
    preferred_time_slots = Column(JSON, default=list)  # ["09:00", "14"]
    tax_exempt = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    # Stripe linkage (non-PCI metadata only)
    stripe_customer_id = Column(String(255), nullable=True)
    # Customer portal
    portal_password_hash = Column(String(255), nullable=True)
    portal_last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="customers")
    devices = relationship("Device", back_populates="customer", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="customer", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.company_name or f"{self.first_name} {self.last_name}"


class Device(Base):
    """Backflow prevention assembly installed at a customer site"""

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    serial_number = Column(String(100), nullable=False)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    size = Column(String(20), nullable=True)  # e.g. 3/4", 1", 2"
    device_type = Column(String(20), default="dc")  # rpz, dc, pvb, svb, vba, air_gap
    location = Column(String(255), nullable=True)
    install_date = Column(Date, nullable=True)
    water_meter_number = Column(String(100), nullable=True)
    hazard_level = Column(String(20), nullable=True)  # high, moderate, low
    test_frequency_months = Column(Integer, default=12, nullable=False)
    last_test_date = Column(Date, nullable=True)
    next_test_date = Column(Date, nullable=True, index=True)
    status = Column(String(20), default="Untested")  # Passed, Failed, Needs Repair, Untested
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="devices")

    @property
    def description(self) -> str:
        parts = [p for p in (self.make, self.model, self.size) if p]
        return " ".join(parts) or self.serial_number


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)
    technician_id = Column(Integer, ForeignKey("team_users.id"), nullable=True)
    service_type = Column(String(100), default="Annual Test")
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(8), nullable=False)  # HH:MM:SS
    estimated_duration = Column(Integer, default=60)  # minutes
    status = Column(String(20), default="scheduled", nullable=False)
    # scheduled, confirmed, in_progress, completed, cancelled
    priority = Column(String(10), default="medium")
    notes = Column(Text, nullable=True)
    payment_status = Column(String(20), nullable=True)  # paid, failed
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="appointments")
    device = relationship("Device")
    technician = relationship("TeamUser")


class TestReport(Base):
    __tablename__ = "test_reports"
    __test__ = False  # not a pytest test class

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    technician_id = Column(Integer, ForeignKey("team_users.id"), nullable=True)
    technician_name = Column(String(255), nullable=True)
    test_date = Column(Date, nullable=False)
    test_type = Column(String(100), nullable=True)
    initial_pressure = Column(Float, nullable=True)
    final_pressure = Column(Float, nullable=True)
    pressure_drop = Column(Float, nullable=True)
    test_duration = Column(Integer, nullable=True)  # minutes
    test_data = Column(JSON, default=dict)  # per-component conditions
    status = Column(String(20), nullable=False)  # Passed, Failed, Needs Repair
    repairs_needed = Column(Boolean, default=False, nullable=False)
    follow_up_required = Column(Boolean, default=False, nullable=False)
    follow_up_date = Column(Date, nullable=True)
    certification_number = Column(String(20), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    water_district = Column(String(255), nullable=True)
    submitted = Column(Boolean, default=False, nullable=False)
    submitted_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    device = relationship("Device")
    appointment = relationship("Appointment")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    company_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    message = Column(Text, nullable=True)
    source = Column(String(50), default="website")
    status = Column(String(20), default="new", nullable=False)  # new, contacted, qualified, converted, lost
    converted_customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    user_id = Column(Integer, nullable=True)
    event_type = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    event_metadata = Column("metadata", JSON, default=dict)
    success = Column(Boolean, default=True, nullable=False)
    severity = Column(String(20), default="low")  # low, medium, high, critical
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)
