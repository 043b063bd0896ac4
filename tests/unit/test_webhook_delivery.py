"""
Unit tests for the outbound webhook queue: endpoint validation, queueing,
signing and retry bookkeeping.
"""

import json
from datetime import datetime, timedelta

import httpx
import pytest
from pydantic import ValidationError

from backflow.domain.webhooks.schemas import WebhookEndpointCreate, check_events, check_webhook_url
from backflow.models_webhook import WebhookDelivery, WebhookEndpoint
from backflow.security_utils import sign_webhook_payload
from backflow.services.webhook_delivery import (
    DeliveryJob,
    DeliveryResult,
    apply_result,
    process_pending_webhooks,
    signed_headers,
    trigger_webhook,
)

pytestmark = pytest.mark.unit

NOW = datetime(2025, 3, 10, 12, 0, 0)


def _endpoint(db, company, events, url="https://hooks.example.com/backflow", is_active=True):
    endpoint = WebhookEndpoint(
        company_id=company.id,
        url=url,
        events=events,
        secret="whsec_test",
        is_active=is_active,
        timeout_seconds=5,
    )
    db.add(endpoint)
    db.commit()
    db.refresh(endpoint)
    return endpoint


class TestEndpointValidation:
    def test_https_required(self):
        with pytest.raises(ValueError, match="https"):
            check_webhook_url("http://hooks.example.com/backflow")

    def test_localhost_http_allowed(self):
        assert check_webhook_url("http://localhost:8080/hook") == "http://localhost:8080/hook"
        assert check_webhook_url(" https://hooks.example.com/x ") == "https://hooks.example.com/x"

    def test_relative_url_rejected(self):
        with pytest.raises(ValueError, match="absolute"):
            check_webhook_url("/hooks")

    def test_events_canonical_order_without_duplicates(self):
        assert check_events(["invoice.paid", "customer.created", "invoice.paid"]) == [
            "customer.created",
            "invoice.paid",
        ]

    def test_unknown_event(self):
        with pytest.raises(ValueError, match="customer.exploded"):
            check_events(["customer.exploded"])

    def test_create_schema_needs_an_event(self):
        with pytest.raises(ValidationError):
            WebhookEndpointCreate(url="https://hooks.example.com/x", events=[])


class TestSigning:
    def test_headers(self):
        job = DeliveryJob(
            delivery_id=42,
            event_type="invoice.paid",
            url="https://hooks.example.com/x",
            secret="whsec_test",
            timeout=5,
            body=b'{"event":"invoice.paid"}',
        )
        headers = signed_headers(job)
        assert headers["X-Webhook-Signature"] == sign_webhook_payload("whsec_test", job.body)
        assert headers["X-Webhook-Event"] == "invoice.paid"
        assert headers["X-Webhook-Delivery"] == "42"
        assert headers["Content-Type"] == "application/json"


class TestApplyResult:
    def test_success(self):
        delivery = WebhookDelivery(id=1, status="pending", attempt_count=0)
        apply_result(delivery, DeliveryResult(1, True, 200, "ok"), NOW)
        assert delivery.status == "delivered"
        assert delivery.delivered_at == NOW
        assert delivery.next_retry_at is None
        assert delivery.http_status_code == 200

    def test_failures_back_off_exponentially(self):
        delivery = WebhookDelivery(id=1, status="pending", attempt_count=0)
        apply_result(delivery, DeliveryResult(1, False, 500, "boom"), NOW)
        assert delivery.status == "pending"
        assert delivery.attempt_count == 1
        assert delivery.next_retry_at == NOW + timedelta(minutes=1)

        apply_result(delivery, DeliveryResult(1, False, 500, "boom"), NOW)
        assert delivery.next_retry_at == NOW + timedelta(minutes=2)

    def test_third_failure_is_permanent(self):
        delivery = WebhookDelivery(id=1, status="pending", attempt_count=2)
        apply_result(delivery, DeliveryResult(1, False, None, "ConnectError"), NOW)
        assert delivery.status == "failed"
        assert delivery.attempt_count == 3
        assert delivery.next_retry_at is None
        assert delivery.http_status_code is None


class TestQueue:
    def test_trigger_queues_for_subscribed_endpoints_only(self, db, company):
        subscribed = _endpoint(db, company, ["customer.created"])
        _endpoint(db, company, ["invoice.paid"])
        _endpoint(db, company, ["customer.created"], is_active=False)

        assert trigger_webhook(db, company.id, "customer.created", {"id": 1}) == 1

        delivery = db.query(WebhookDelivery).one()
        assert delivery.webhook_endpoint_id == subscribed.id
        assert delivery.status == "pending"
        assert delivery.payload["event"] == "customer.created"
        assert delivery.payload["data"] == {"id": 1}
        assert delivery.payload["webhook_id"] == subscribed.id

    def test_trigger_without_endpoints(self, db, company):
        assert trigger_webhook(db, company.id, "invoice.paid", {"id": 1}) == 0

    async def test_process_pending_signs_and_records(self, db, company):
        _endpoint(db, company, ["invoice.paid", "customer.created"])
        trigger_webhook(db, company.id, "invoice.paid", {"id": 9})
        trigger_webhook(db, company.id, "customer.created", {"id": 3})
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.headers["X-Webhook-Event"] == "customer.created":
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, text="ok")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            summary = await process_pending_webhooks(db, client)

        assert summary == {"processed": 2, "delivered": 1, "failed": 1}
        for request in seen:
            body = request.content
            assert request.headers["X-Webhook-Signature"] == sign_webhook_payload("whsec_test", body)
            assert json.loads(body)["event"] == request.headers["X-Webhook-Event"]

        statuses = {d.event_type: d for d in db.query(WebhookDelivery).all()}
        assert statuses["invoice.paid"].status == "delivered"
        assert statuses["customer.created"].status == "pending"
        assert statuses["customer.created"].attempt_count == 1
        assert statuses["customer.created"].response_body == "unavailable"

    async def test_nothing_due(self, db, company):
        assert await process_pending_webhooks(db) == {"processed": 0, "delivered": 0, "failed": 0}
