"""
Integration tests for invoices: creation, sending, cancellation and the public pay link.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from backflow.models_webhook import WebhookDelivery, WebhookEndpoint
from conftest import make_customer, make_invoice

pytestmark = pytest.mark.integration


def _invoice_payload(customer_id: int) -> dict:
    return {
        "customer_id": customer_id,
        "line_items": [
            {"description": "Annual Test - Watts 909", "quantity": 1, "unit_price": 200},
            {"description": "Permit filing", "quantity": 1, "unit_price": 45.5, "taxable": False},
        ],
        "notes": "Thanks for your business",
    }


@pytest.mark.asyncio
class TestInvoiceCreation:
    async def test_create_invoice_totals(self, client: AsyncClient, admin_headers, customer, db):
        response = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        today = date.today()
        assert data["invoice_number"] == f"INV-{today.year}{today.month:02d}-0001"
        assert data["status"] == "draft"
        assert data["subtotal"] == 245.5
        assert data["tax_amount"] == 20.5
        assert data["total_amount"] == 266.0
        assert data["balance_due"] == 266.0
        assert data["due_date"] == (today + timedelta(days=30)).isoformat()
        assert data["public_id"]
        assert [item["amount"] for item in data["line_items"]] == [200.0, 45.5]

        db.refresh(customer)
        assert customer.balance == 266.0

    async def test_invoice_numbers_increment(self, client: AsyncClient, admin_headers, customer):
        first = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)
        second = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        assert first.json()["invoice_number"].endswith("-0001")
        assert second.json()["invoice_number"].endswith("-0002")

    async def test_tax_exempt_customer(self, client: AsyncClient, admin_headers, db, company):
        exempt = make_customer(db, company, account_number="BF-100002", tax_exempt=True)

        response = await client.post("/api/invoices", json=_invoice_payload(exempt.id), headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["tax_amount"] == 0
        assert response.json()["total_amount"] == 245.5

    async def test_create_requires_staff(self, client: AsyncClient, tech_headers, customer):
        response = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=tech_headers)
        assert response.status_code == 403

    async def test_create_requires_line_items(self, client: AsyncClient, admin_headers, customer):
        payload = dict(_invoice_payload(customer.id), line_items=[])
        response = await client.post("/api/invoices", json=payload, headers=admin_headers)
        assert response.status_code == 422

    async def test_customer_from_other_company(self, client: AsyncClient, admin_headers, db, other_company):
        stranger = make_customer(db, other_company, account_number="BF-900001")

        response = await client.post("/api/invoices", json=_invoice_payload(stranger.id), headers=admin_headers)

        assert response.status_code == 404

    async def test_create_queues_webhook(self, client: AsyncClient, admin_headers, customer, db, company):
        db.add(
            WebhookEndpoint(
                company_id=company.id,
                url="https://books.example.com/hooks",
                events=["invoice.created"],
                secret="whsec_test",
                is_active=True,
            )
        )
        db.commit()

        response = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        delivery = db.query(WebhookDelivery).one()
        assert delivery.event_type == "invoice.created"
        assert delivery.payload["data"]["invoice_number"] == response.json()["invoice_number"]


@pytest.mark.asyncio
class TestInvoiceLifecycle:
    async def test_list_filters_by_status(self, client: AsyncClient, tech_headers, db, customer):
        make_invoice(db, customer)
        make_invoice(db, customer, invoice_number="INV-202501-0100", status="paid", paid_amount=220.5, balance_due=0)

        response = await client.get("/api/invoices", params={"status": "sent"}, headers=tech_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 1
        assert data["data"][0]["invoice_number"] == "INV-202501-0099"

    async def test_list_rejects_bad_date(self, client: AsyncClient, tech_headers):
        response = await client.get("/api/invoices", params={"date_from": "01/02/2025"}, headers=tech_headers)
        assert response.status_code == 400

    async def test_get_invoice_other_company(self, client: AsyncClient, admin_headers, db, other_company):
        stranger = make_customer(db, other_company, account_number="BF-900001")
        invoice = make_invoice(db, stranger)

        response = await client.get(f"/api/invoices/{invoice.id}", headers=admin_headers)

        assert response.status_code == 404

    async def test_send_without_email_service(self, client: AsyncClient, admin_headers, customer):
        created = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        response = await client.post(f"/api/invoices/{created.json()['id']}/send", headers=admin_headers)

        assert response.status_code == 503

    async def test_send_marks_draft_sent(self, client: AsyncClient, admin_headers, customer, monkeypatch):
        sent = []

        async def fake_send(**kwargs):
            sent.append(kwargs)

        monkeypatch.setattr("backflow.domain.invoices.service.send_invoice_email", fake_send)
        created = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        response = await client.post(f"/api/invoices/{created.json()['id']}/send", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "sent"
        assert response.json()["sent_date"] is not None
        assert sent[0]["to"] == "jane@example.com"
        assert sent[0]["invoice_public_id"] == created.json()["public_id"]

    async def test_cancel_removes_balance(self, client: AsyncClient, admin_headers, customer, db):
        created = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)
        invoice_id = created.json()["id"]

        response = await client.post(f"/api/invoices/{invoice_id}/cancel", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["balance_due"] == 0
        db.refresh(customer)
        assert customer.balance == 0

        again = await client.post(f"/api/invoices/{invoice_id}/cancel", headers=admin_headers)
        assert again.status_code == 200
        db.refresh(customer)
        assert customer.balance == 0

    async def test_cancel_with_payment_rejected(self, client: AsyncClient, admin_headers, customer, db):
        invoice = make_invoice(db, customer, status="partial", paid_amount=100, balance_due=120.5)

        response = await client.post(f"/api/invoices/{invoice.id}/cancel", headers=admin_headers)

        assert response.status_code == 400


@pytest.mark.asyncio
class TestPublicInvoice:
    async def test_draft_is_hidden(self, client: AsyncClient, admin_headers, customer):
        created = await client.post("/api/invoices", json=_invoice_payload(customer.id), headers=admin_headers)

        response = await client.get(f"/api/invoices/public/{created.json()['public_id']}")

        assert response.status_code == 404

    async def test_sent_invoice_visible_without_auth(self, client: AsyncClient, db, customer):
        invoice = make_invoice(db, customer)

        response = await client.get(f"/api/invoices/public/{invoice.public_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["invoice_number"] == "INV-202501-0099"
        assert data["company_name"] == "Fisher Backflows"
        assert data["customer_name"] == "Jane Homeowner"
        assert data["balance_due"] == 220.5
        assert "id" not in data
        assert "customer_id" not in data

    async def test_unknown_public_id(self, client: AsyncClient):
        response = await client.get("/api/invoices/public/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestPaymentReminders:
    async def test_requires_admin(self, client: AsyncClient, tech_headers):
        response = await client.post("/api/invoices/send-reminders", headers=tech_headers)
        assert response.status_code == 403

    async def test_reminder_sweep(self, client: AsyncClient, admin_headers, db, customer, monkeypatch):
        reminders = []

        async def fake_reminder(**kwargs):
            reminders.append(kwargs)

        monkeypatch.setattr("backflow.domain.invoices.service.send_payment_reminder", fake_reminder)
        overdue = make_invoice(db, customer, due_date=date.today() - timedelta(days=10))
        make_invoice(db, customer, invoice_number="INV-202501-0100")
        make_invoice(
            db,
            customer,
            invoice_number="INV-202501-0101",
            due_date=date.today() - timedelta(days=40),
            reminder_count=3,
        )

        response = await client.post("/api/invoices/send-reminders", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"checked": 1, "sent": 1, "skipped": 0, "failed": 0}
        assert reminders[0]["days_overdue"] == 10
        db.refresh(overdue)
        assert overdue.reminder_count == 1
        assert overdue.status == "overdue"
        assert overdue.last_reminder_date is not None

    async def test_reminders_without_email_service(self, client: AsyncClient, admin_headers, db, customer):
        make_invoice(db, customer, due_date=date.today() - timedelta(days=3))

        response = await client.post("/api/invoices/send-reminders", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["sent"] == 0
        assert response.json()["skipped"] == 1
