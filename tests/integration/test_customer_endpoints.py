"""
Integration tests for customers and their backflow devices.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from backflow.models import AuditLog, Customer
from backflow.models_webhook import WebhookDelivery, WebhookEndpoint
from conftest import make_customer, make_device

pytestmark = pytest.mark.integration

NEW_CUSTOMER = {
    "first_name": "  Marcus ",
    "last_name": "Lee",
    "email": "Marcus.Lee@Example.com",
    "phone": "(253) 555-0142",
    "address_line1": "88 Harbor View Dr",
    "city": "Gig Harbor",
    "state": "WA",
    "zip_code": "98335",
    "preferred_time_slots": ["09", "14"],
}


@pytest.mark.asyncio
class TestCustomerCrud:
    async def test_create_customer(self, client: AsyncClient, tech_headers, db):
        response = await client.post("/api/customers", json=NEW_CUSTOMER, headers=tech_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["account_number"].startswith("BF-")
        assert len(data["account_number"]) == 9
        assert data["first_name"] == "Marcus"
        assert data["email"] == "marcus.lee@example.com"
        assert data["phone"] == "+12535550142"
        assert data["status"] == "Active"
        assert data["balance"] == 0
        assert db.query(AuditLog).filter(AuditLog.event_type == "customer.created").count() == 1

    async def test_create_customer_queues_webhook(self, client: AsyncClient, tech_headers, db, company):
        db.add(
            WebhookEndpoint(
                company_id=company.id,
                url="https://crm.example.com/hooks",
                events=["customer.created"],
                secret="whsec_test",
                is_active=True,
            )
        )
        db.commit()

        response = await client.post("/api/customers", json=NEW_CUSTOMER, headers=tech_headers)

        assert response.status_code == 201
        delivery = db.query(WebhookDelivery).one()
        assert delivery.event_type == "customer.created"
        assert delivery.payload["data"]["account_number"] == response.json()["account_number"]

    @pytest.mark.parametrize(
        "field,value",
        [("email", "not-an-email"), ("phone", "555-0142"), ("zip_code", "9833"), ("first_name", "   ")],
    )
    async def test_invalid_fields(self, client: AsyncClient, tech_headers, field, value):
        response = await client.post("/api/customers", json=dict(NEW_CUSTOMER, **{field: value}), headers=tech_headers)
        assert response.status_code == 422

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/customers", json=NEW_CUSTOMER)
        assert response.status_code == 401

    async def test_get_customer_with_devices(self, client: AsyncClient, tech_headers, customer, device):
        response = await client.get(f"/api/customers/{customer.id}", headers=tech_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["account_number"] == "BF-100001"
        assert [d["serial_number"] for d in data["devices"]] == ["RP-55120"]

    async def test_other_company_customer_is_hidden(self, client: AsyncClient, tech_headers, db, other_company):
        rival = make_customer(db, other_company, account_number="BF-999999")
        response = await client.get(f"/api/customers/{rival.id}", headers=tech_headers)
        assert response.status_code == 404

    async def test_update_customer(self, client: AsyncClient, tech_headers, customer):
        response = await client.patch(
            f"/api/customers/{customer.id}", json={"status": "Needs Service", "notes": "Gate code 4412"}, headers=tech_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Needs Service"
        assert response.json()["notes"] == "Gate code 4412"

    async def test_delete_requires_admin(self, client: AsyncClient, tech_headers, customer):
        response = await client.delete(f"/api/customers/{customer.id}", headers=tech_headers)
        assert response.status_code == 403

    async def test_admin_deletes_customer(self, client: AsyncClient, admin_headers, customer, db):
        customer_id = customer.id
        response = await client.delete(f"/api/customers/{customer_id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "id": customer_id}
        assert db.query(Customer).filter(Customer.id == customer_id).first() is None


@pytest.mark.asyncio
class TestCustomerSearch:
    async def test_search_and_paginate(self, client: AsyncClient, tech_headers, db, company):
        make_customer(db, company, "BF-000001", first_name="Alice", last_name="Nguyen", email="alice@example.com")
        make_customer(db, company, "BF-000002", first_name="Bob", last_name="Nguyen", email="bob@example.com")
        make_customer(db, company, "BF-000003", first_name="Carol", last_name="Smith", email="carol@example.com")

        response = await client.get("/api/customers", params={"search": "nguyen"}, headers=tech_headers)
        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 2

        response = await client.get("/api/customers", params={"search": "BF-000003"}, headers=tech_headers)
        assert [c["first_name"] for c in response.json()["data"]] == ["Carol"]

        response = await client.get("/api/customers", params={"limit": 2, "page": 2}, headers=tech_headers)
        body = response.json()
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert len(body["data"]) == 1

    async def test_status_filter(self, client: AsyncClient, tech_headers, db, company):
        make_customer(db, company, "BF-000001", status="Inactive")
        make_customer(db, company, "BF-000002")

        response = await client.get("/api/customers", params={"status": "Inactive"}, headers=tech_headers)
        assert [c["account_number"] for c in response.json()["data"]] == ["BF-000001"]

    async def test_csv_export(self, client: AsyncClient, tech_headers, customer):
        response = await client.get("/api/customers/export", headers=tech_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Account Number,First Name,Last Name")
        assert lines[1].startswith("BF-100001,Jane,Homeowner")


@pytest.mark.asyncio
class TestDevices:
    async def test_create_device_computes_next_test_date(self, client: AsyncClient, tech_headers, customer):
        response = await client.post(
            "/api/devices",
            json={
                "customer_id": customer.id,
                "serial_number": " DC-7781 ",
                "make": "Febco",
                "model": "850",
                "device_type": "dc",
                "last_test_date": "2024-06-30",
                "test_frequency_months": 12,
            },
            headers=tech_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["serial_number"] == "DC-7781"
        assert data["status"] == "Untested"
        assert data["next_test_date"] == "2025-06-30"

    async def test_create_device_for_unknown_customer(self, client: AsyncClient, tech_headers):
        response = await client.post(
            "/api/devices", json={"customer_id": 9999, "serial_number": "X-1"}, headers=tech_headers
        )
        assert response.status_code == 404

    async def test_unknown_device_type(self, client: AsyncClient, tech_headers, customer):
        response = await client.post(
            "/api/devices",
            json={"customer_id": customer.id, "serial_number": "X-1", "device_type": "hose"},
            headers=tech_headers,
        )
        assert response.status_code == 422

    async def test_due_within_days(self, client: AsyncClient, tech_headers, db, customer):
        make_device(db, customer, serial_number="SOON", next_test_date=date.today() + timedelta(days=10))
        make_device(db, customer, serial_number="LATER", next_test_date=date.today() + timedelta(days=200))

        response = await client.get("/api/devices", params={"due_within_days": 30}, headers=tech_headers)

        assert response.status_code == 200
        assert [d["serial_number"] for d in response.json()] == ["SOON"]

    async def test_deactivate_hides_device(self, client: AsyncClient, admin_headers, device):
        response = await client.delete(f"/api/devices/{device.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        listed = await client.get("/api/devices", headers=admin_headers)
        assert listed.json() == []

        included = await client.get("/api/devices", params={"include_inactive": True}, headers=admin_headers)
        assert len(included.json()) == 1
