"""
Integration tests for the customer portal: account setup, sign-in and self-service.
"""

from datetime import date, timedelta

import pytest
import pytest_asyncio
from fastapi import HTTPException
from httpx import AsyncClient

from backflow.models import Appointment, AuditLog
from conftest import TEST_PASSWORD, make_customer, make_device, make_invoice, next_weekday

pytestmark = pytest.mark.integration


def _appointment(db, customer, day, time="10:00:00", **overrides) -> Appointment:
    values = dict(
        company_id=customer.company_id,
        customer_id=customer.id,
        scheduled_date=day,
        scheduled_time=time,
        estimated_duration=60,
        status="scheduled",
    )
    values.update(overrides)
    appointment = Appointment(**values)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


async def _register(client: AsyncClient, **overrides):
    payload = {
        "company_slug": "Fisher-Backflows",
        "account_number": "bf-100001",
        "email": "JANE@example.com",
        "password": TEST_PASSWORD,
    }
    payload.update(overrides)
    return await client.post("/api/portal/auth/register", json=payload)


@pytest_asyncio.fixture
async def portal_headers(client: AsyncClient, customer) -> dict:
    response = await _register(client)
    assert response.status_code == 201, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.mark.asyncio
class TestPortalAuth:
    async def test_register(self, client: AsyncClient, customer, db):
        response = await _register(client)

        assert response.status_code == 201
        data = response.json()
        assert data["customer"]["account_number"] == "BF-100001"
        assert data["company_name"] == "Fisher Backflows"
        assert data["token"]
        assert "portal_session" in response.cookies
        db.refresh(customer)
        assert customer.portal_password_hash
        assert customer.portal_password_hash != TEST_PASSWORD

    async def test_register_email_mismatch(self, client: AsyncClient, customer):
        response = await _register(client, email="someone.else@example.com")
        assert response.status_code == 400

    async def test_register_wrong_company(self, client: AsyncClient, customer, other_company):
        response = await _register(client, company_slug="rival-testing")
        assert response.status_code == 400

    async def test_register_twice(self, client: AsyncClient, customer):
        await _register(client)
        response = await _register(client)
        assert response.status_code == 409

    async def test_register_weak_password(self, client: AsyncClient, customer):
        response = await _register(client, password="short")

        assert response.status_code == 400
        assert response.json()["detail"]["feedback"]

    async def test_login(self, client: AsyncClient, customer, db):
        await _register(client)
        client.cookies.clear()

        response = await client.post(
            "/api/portal/auth/login",
            json={"company_slug": "fisher-backflows", "email": "jane@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        assert response.json()["customer"]["id"] == customer.id
        assert db.query(AuditLog).filter(AuditLog.event_type == "portal.login.success").count() == 1

    async def test_login_wrong_password(self, client: AsyncClient, customer, db):
        await _register(client)

        response = await client.post(
            "/api/portal/auth/login",
            json={"company_slug": "fisher-backflows", "email": "jane@example.com", "password": "Wrong-Horse-42"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        failure = db.query(AuditLog).filter(AuditLog.event_type == "portal.login.failure").one()
        assert failure.success is False

    async def test_login_without_portal_account(self, client: AsyncClient, customer):
        response = await client.post(
            "/api/portal/auth/login",
            json={"company_slug": "fisher-backflows", "email": "jane@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401

    async def test_inactive_customer_cannot_login(self, client: AsyncClient, customer, db):
        await _register(client)
        customer.status = "Inactive"
        db.commit()

        response = await client.post(
            "/api/portal/auth/login",
            json={"company_slug": "fisher-backflows", "email": "jane@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 401

    async def test_team_session_is_not_a_portal_session(self, client: AsyncClient, admin_headers):
        response = await client.get("/api/portal/me", headers=admin_headers)
        assert response.status_code == 401

    async def test_me_and_logout(self, client: AsyncClient, portal_headers):
        me = await client.get("/api/portal/me", headers=portal_headers)
        assert me.status_code == 200
        assert me.json()["email"] == "jane@example.com"

        logout = await client.post("/api/portal/auth/logout", headers=portal_headers)
        assert logout.status_code == 200

        after = await client.get("/api/portal/me", headers=portal_headers)
        assert after.status_code == 401


@pytest.mark.asyncio
class TestPortalSelfService:
    async def test_devices_are_own_only(self, client: AsyncClient, portal_headers, db, company, customer):
        make_device(db, customer)
        neighbour = make_customer(db, company, account_number="BF-100002", email="neighbour@example.com")
        make_device(db, neighbour, serial_number="DC-1")

        response = await client.get("/api/portal/devices", headers=portal_headers)

        assert response.status_code == 200
        assert [d["serial_number"] for d in response.json()] == ["RP-55120"]

    async def test_book_appointment_for_self(self, client: AsyncClient, portal_headers, db, company, customer):
        device = make_device(db, customer)
        neighbour = make_customer(db, company, account_number="BF-100002", email="neighbour@example.com")
        day = next_weekday(date.today())

        response = await client.post(
            "/api/portal/appointments",
            json={"customer_id": neighbour.id, "device_id": device.id, "date": day.isoformat(), "time": "1:00 PM"},
            headers=portal_headers,
        )

        assert response.status_code == 201
        appointment = db.query(Appointment).one()
        assert appointment.customer_id == customer.id
        assert appointment.technician_id is None

        listed = await client.get("/api/portal/appointments", headers=portal_headers)
        assert [a["id"] for a in listed.json()] == [appointment.id]

    async def test_cannot_book_neighbours_device(self, client: AsyncClient, portal_headers, db, company):
        neighbour = make_customer(db, company, account_number="BF-100002", email="neighbour@example.com")
        device = make_device(db, neighbour, serial_number="DC-1")
        day = next_weekday(date.today())

        response = await client.post(
            "/api/portal/appointments",
            json={"device_id": device.id, "date": day.isoformat(), "time": "1:00 PM"},
            headers=portal_headers,
        )

        assert response.status_code == 404

    async def test_reschedule_own_appointment(self, client: AsyncClient, portal_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10))
        new_day = next_weekday(date.today(), 14)

        response = await client.post(
            f"/api/portal/appointments/{appointment.id}/reschedule",
            json={"new_date": new_day.isoformat(), "new_time": "9:00 AM", "reason": "Out of town"},
            headers=portal_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["scheduled_date"] == new_day.isoformat()
        assert data["scheduled_time"] == "09:00:00"
        assert "Reason: Out of town" in data["notes"]

    async def test_cannot_reschedule_neighbours_appointment(
        self, client: AsyncClient, portal_headers, db, company
    ):
        neighbour = make_customer(db, company, account_number="BF-100002", email="neighbour@example.com")
        appointment = _appointment(db, neighbour, date.today() + timedelta(days=10))

        response = await client.post(
            f"/api/portal/appointments/{appointment.id}/reschedule",
            json={"new_date": next_weekday(date.today(), 14).isoformat(), "new_time": "9:00 AM"},
            headers=portal_headers,
        )

        assert response.status_code == 404
        db.refresh(appointment)
        assert appointment.scheduled_date == date.today() + timedelta(days=10)

    async def test_reschedule_needs_a_day_notice(self, client: AsyncClient, portal_headers, db, customer):
        appointment = _appointment(db, customer, date.today(), "23:00:00")

        response = await client.post(
            f"/api/portal/appointments/{appointment.id}/reschedule",
            json={"new_date": next_weekday(date.today(), 5).isoformat(), "new_time": "10:00 AM"},
            headers=portal_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["can_reschedule"] is False

    async def test_invoices_hide_drafts(self, client: AsyncClient, portal_headers, db, customer):
        make_invoice(db, customer)
        make_invoice(db, customer, invoice_number="INV-202501-0100", status="draft")

        response = await client.get("/api/portal/invoices", headers=portal_headers)

        assert response.status_code == 200
        assert [inv["invoice_number"] for inv in response.json()] == ["INV-202501-0099"]

    async def test_pay_draft_invoice_not_found(self, client: AsyncClient, portal_headers, db, customer):
        draft = make_invoice(db, customer, status="draft")

        response = await client.post(f"/api/portal/invoices/{draft.id}/pay", json={}, headers=portal_headers)

        assert response.status_code == 404

    async def test_pay_without_stripe(self, client: AsyncClient, portal_headers, db, customer):
        invoice = make_invoice(db, customer)

        response = await client.post(f"/api/portal/invoices/{invoice.id}/pay", json={}, headers=portal_headers)

        assert response.status_code == 503

    async def test_pay_defaults_to_full_balance(self, client: AsyncClient, portal_headers, db, customer, monkeypatch):
        captured = {}

        async def fake_process(self, **kwargs):
            captured.update(kwargs)
            raise HTTPException(status_code=418, detail="stop")

        monkeypatch.setattr("backflow.domain.payments.service.PaymentService.process_payment", fake_process)
        invoice = make_invoice(db, customer, total=180.0)

        response = await client.post(f"/api/portal/invoices/{invoice.id}/pay", json={}, headers=portal_headers)

        assert response.status_code == 418
        assert captured["amount"] == 180.0
        assert captured["customer_id"] == customer.id
