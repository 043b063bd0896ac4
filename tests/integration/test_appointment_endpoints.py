"""
Integration tests for booking, rescheduling and the field app.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from backflow.models import Appointment
from backflow.models_webhook import WebhookDelivery, WebhookEndpoint
from conftest import next_weekday

pytestmark = pytest.mark.integration


def _appointment(db, customer, day, time="10:00:00", **overrides):
    values = {
        "company_id": customer.company_id,
        "customer_id": customer.id,
        "scheduled_date": day,
        "scheduled_time": time,
        "estimated_duration": 60,
        "status": "scheduled",
        "service_type": "Annual Test",
        "priority": "medium",
    }
    values.update(overrides)
    appointment = Appointment(**values)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def _next_saturday(start: date) -> date:
    return start + timedelta(days=(5 - start.weekday()) % 7 + 7)


@pytest.mark.asyncio
class TestBooking:
    async def test_book_slot(self, client: AsyncClient, tech_headers, customer, device):
        day = next_weekday(date.today())
        response = await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "device_id": device.id, "date": day.isoformat(), "time": "10:00 AM"},
            headers=tech_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["appointment"]["scheduled_time"] == "10:00:00"
        assert data["appointment"]["estimated_duration"] == 60
        assert data["appointment"]["status"] == "scheduled"
        assert "Device: Watts 909 at Front yard" in data["appointment"]["notes"]
        assert data["notifications"] == {"email": "skipped", "sms": "skipped"}

    async def test_overlapping_slot_conflicts(self, client: AsyncClient, tech_headers, db, customer):
        day = next_weekday(date.today())
        _appointment(db, customer, day, "10:00:00")

        response = await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "date": day.isoformat(), "time": "10:30 AM"},
            headers=tech_headers,
        )
        assert response.status_code == 409

    async def test_cancelled_appointment_frees_slot(self, client: AsyncClient, tech_headers, db, customer):
        day = next_weekday(date.today())
        _appointment(db, customer, day, "10:00:00", status="cancelled")

        response = await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "date": day.isoformat(), "time": "10:00 AM"},
            headers=tech_headers,
        )
        assert response.status_code == 201

    async def test_past_date(self, client: AsyncClient, tech_headers, customer):
        response = await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "date": (date.today() - timedelta(days=1)).isoformat(), "time": "10:00 AM"},
            headers=tech_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot book appointments in the past"

    @pytest.mark.parametrize("bad_time", ["10:15 AM", "25:00", "soon"])
    async def test_bad_time(self, client: AsyncClient, tech_headers, customer, bad_time):
        response = await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "date": next_weekday(date.today()).isoformat(), "time": bad_time},
            headers=tech_headers,
        )
        assert response.status_code == 400

    async def test_customer_required(self, client: AsyncClient, tech_headers):
        response = await client.post(
            "/api/appointments/book",
            json={"date": next_weekday(date.today()).isoformat(), "time": "10:00 AM"},
            headers=tech_headers,
        )
        assert response.status_code == 400

    async def test_booking_queues_webhook(self, client: AsyncClient, tech_headers, db, company, customer):
        db.add(
            WebhookEndpoint(
                company_id=company.id,
                url="https://crm.example.com/hooks",
                events=["appointment.scheduled"],
                secret="whsec_test",
                is_active=True,
            )
        )
        db.commit()

        await client.post(
            "/api/appointments/book",
            json={"customer_id": customer.id, "date": next_weekday(date.today()).isoformat(), "time": "2:00 PM"},
            headers=tech_headers,
        )

        delivery = db.query(WebhookDelivery).one()
        assert delivery.event_type == "appointment.scheduled"
        assert delivery.payload["data"]["scheduled_time"] == "14:00:00"


@pytest.mark.asyncio
class TestNextAvailable:
    async def test_suggests_slot_without_booking(self, client: AsyncClient, tech_headers, customer, db):
        response = await client.post(
            "/api/appointments/next-available", json={"customer_id": customer.id}, headers=tech_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["booked"] is False
        suggested = date.fromisoformat(data["next_available"]["date"])
        assert suggested > date.today()
        assert suggested.weekday() < 5
        assert db.query(Appointment).count() == 0

    async def test_auto_book(self, client: AsyncClient, tech_headers, customer, db):
        response = await client.post(
            "/api/appointments/next-available",
            json={"customer_id": customer.id, "priority": "high", "auto_book": True},
            headers=tech_headers,
        )

        data = response.json()
        assert data["booked"] is True
        assert data["next_available"]["time"] == "09:00:00"
        assert data["appointment"]["scheduled_time"] == "09:00:00"
        assert db.query(Appointment).count() == 1

    async def test_fully_booked_month(self, client: AsyncClient, tech_headers, customer, db):
        for offset in range(1, 31):
            day = date.today() + timedelta(days=offset)
            if day.weekday() >= 5:
                continue
            for hour in range(8, 16):
                db.add(
                    Appointment(
                        company_id=customer.company_id,
                        customer_id=customer.id,
                        scheduled_date=day,
                        scheduled_time=f"{hour:02d}:00:00",
                        status="scheduled",
                    )
                )
        db.commit()

        response = await client.post(
            "/api/appointments/next-available", json={"customer_id": customer.id}, headers=tech_headers
        )

        assert response.status_code == 404
        assert response.json()["detail"]["suggestions"] == [
            "Check for cancellations",
            "Consider expanding business hours",
            "Add additional service days",
        ]


@pytest.mark.asyncio
class TestReschedule:
    async def test_reschedule(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10))
        new_day = next_weekday(date.today(), 14)

        response = await client.post(
            f"/api/appointments/{appointment.id}/reschedule",
            json={"new_date": new_day.isoformat(), "new_time": "2:00 PM", "reason": "Customer traveling"},
            headers=tech_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["scheduled_date"] == new_day.isoformat()
        assert data["scheduled_time"] == "14:00:00"
        assert "Reason: Customer traveling" in data["notes"]

    async def test_less_than_a_day_notice(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today(), "23:00:00")

        response = await client.post(
            f"/api/appointments/{appointment.id}/reschedule",
            json={"new_date": next_weekday(date.today(), 5).isoformat(), "new_time": "10:00 AM"},
            headers=tech_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["can_reschedule"] is False

    async def test_outside_working_days(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10))

        response = await client.post(
            f"/api/appointments/{appointment.id}/reschedule",
            json={"new_date": _next_saturday(date.today()).isoformat(), "new_time": "10:00 AM"},
            headers=tech_headers,
        )

        assert response.status_code == 400
        assert "Saturday" not in response.json()["detail"]["working_days"]

    async def test_visit_must_end_before_close(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10))

        response = await client.post(
            f"/api/appointments/{appointment.id}/reschedule",
            json={"new_date": next_weekday(date.today(), 14).isoformat(), "new_time": "4:30 PM"},
            headers=tech_headers,
        )
        assert response.status_code == 400

    async def test_cancelled_cannot_be_rescheduled(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10), status="cancelled")

        response = await client.post(
            f"/api/appointments/{appointment.id}/reschedule",
            json={"new_date": next_weekday(date.today(), 14).isoformat(), "new_time": "10:00 AM"},
            headers=tech_headers,
        )
        assert response.status_code == 400

    async def test_cancel(self, client: AsyncClient, tech_headers, db, customer):
        appointment = _appointment(db, customer, date.today() + timedelta(days=10))

        response = await client.post(
            f"/api/appointments/{appointment.id}/cancel", json={"reason": "Sold the house"}, headers=tech_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert "Cancelled: Sold the house" in response.json()["notes"]

        again = await client.post(f"/api/appointments/{appointment.id}/cancel", json={}, headers=tech_headers)
        assert again.status_code == 400


@pytest.mark.asyncio
class TestConflicts:
    async def test_detect_and_resolve(self, client: AsyncClient, admin_headers, db, customer):
        day = next_weekday(date.today())
        first = _appointment(db, customer, day, "09:00:00")
        second = _appointment(db, customer, day, "09:30:00")

        detected = await client.get(
            "/api/appointments/conflicts", params={"date": day.isoformat()}, headers=admin_headers
        )
        assert detected.status_code == 200
        body = detected.json()
        assert body["summary"]["high_severity"] == 1
        assert body["conflicts"][0]["appointment_ids"] == [first.id, second.id]

        resolved = await client.post(
            "/api/appointments/resolve-conflicts",
            json={
                "resolutions": [
                    {"appointment_id": second.id, "action": "reschedule", "new_date": day.isoformat(), "new_time": "11:00", "reason": "overlap"},
                    {"appointment_id": 9999, "action": "notify", "reason": "missing"},
                ]
            },
            headers=admin_headers,
        )
        result = resolved.json()
        assert result["partial_success"] is True
        assert result["resolved"][0]["new_time"] == "11:00:00"
        assert result["failed"][0]["error"] == "Appointment not found"

        after = await client.get("/api/appointments/conflicts", params={"date": day.isoformat()}, headers=admin_headers)
        assert after.json()["conflicts"] == []

    async def test_technician_cannot_resolve(self, client: AsyncClient, tech_headers):
        response = await client.post(
            "/api/appointments/resolve-conflicts",
            json={"resolutions": [{"appointment_id": 1, "action": "notify"}]},
            headers=tech_headers,
        )
        assert response.status_code == 403


@pytest.mark.asyncio
class TestFieldApp:
    async def test_todays_route_and_start(self, client: AsyncClient, tech_headers, db, customer, technician, admin_user):
        mine = _appointment(db, customer, date.today(), "09:00:00", technician_id=technician.id)
        _appointment(db, customer, date.today(), "11:00:00", technician_id=admin_user.id)
        _appointment(db, customer, date.today(), "13:00:00", technician_id=technician.id, status="cancelled")

        today = await client.get("/api/field/appointments/today", headers=tech_headers)
        assert [a["id"] for a in today.json()] == [mine.id]

        started = await client.post(f"/api/field/appointments/{mine.id}/start", headers=tech_headers)
        assert started.status_code == 200
        assert started.json()["status"] == "in_progress"
        assert started.json()["actual_start_time"] is not None

    async def test_cannot_start_someone_elses_visit(self, client: AsyncClient, tech_headers, db, customer, admin_user):
        theirs = _appointment(db, customer, date.today(), "11:00:00", technician_id=admin_user.id)
        response = await client.post(f"/api/field/appointments/{theirs.id}/start", headers=tech_headers)
        assert response.status_code == 403
