"""
Outbound webhook queue

Business events are queued as ``webhook_deliveries`` rows and pushed to the
company's endpoints by the worker. Each request is signed with the endpoint
secret (``X-Webhook-Signature: sha256=<hex>``). Failed deliveries back off
exponentially and give up after WEBHOOK_MAX_ATTEMPTS attempts.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ..config import (
    WEBHOOK_BATCH_LIMIT,
    WEBHOOK_CONCURRENCY,
    WEBHOOK_MAX_ATTEMPTS,
    WEBHOOK_USER_AGENT,
)
from ..models_webhook import WebhookDelivery, WebhookEndpoint
from ..security_utils import sign_webhook_payload

logger = logging.getLogger(__name__)

RESPONSE_BODY_LIMIT = 1000

WEBHOOK_EVENTS = (
    "customer.created",
    "customer.updated",
    "customer.deleted",
    "appointment.scheduled",
    "appointment.completed",
    "appointment.cancelled",
    "test.completed",
    "invoice.created",
    "invoice.paid",
    "subscription.updated",
)


@dataclass
class DeliveryJob:
    """Everything needed to send one delivery without touching the session"""

    delivery_id: int
    event_type: str
    url: str
    secret: str
    timeout: int
    body: bytes


@dataclass
class DeliveryResult:
    delivery_id: int
    ok: bool
    status_code: Optional[int] = None
    response_body: Optional[str] = None


def trigger_webhook(db: Session, company_id: int, event: str, data: Any) -> int:
    """
    Queue ``event`` for every active endpoint of the company subscribed to it.

    Returns the number of deliveries queued. Never raises: a webhook problem
    must not fail the operation that produced the event.
    """
    try:
        endpoints = (
            db.query(WebhookEndpoint)
            .filter(WebhookEndpoint.company_id == company_id, WebhookEndpoint.is_active.is_(True))
            .all()
        )
        subscribed = [e for e in endpoints if event in (e.events or [])]
        if not subscribed:
            logger.debug(f"No webhook endpoints for company {company_id} and event {event}")
            return 0

        now = datetime.utcnow()
        encoded = jsonable_encoder(data)
        for endpoint in subscribed:
            db.add(
                WebhookDelivery(
                    webhook_endpoint_id=endpoint.id,
                    event_type=event,
                    payload={
                        "event": event,
                        "timestamp": now.isoformat() + "Z",
                        "data": encoded,
                        "webhook_id": endpoint.id,
                    },
                    status="pending",
                    attempt_count=0,
                    next_retry_at=now,
                )
            )
        db.commit()
        logger.info(f"📬 Queued {event} for {len(subscribed)} endpoint(s) of company {company_id}")
        return len(subscribed)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error queueing webhook {event} for company {company_id}: {e}")
        return 0


def build_job(delivery: WebhookDelivery) -> DeliveryJob:
    endpoint = delivery.endpoint
    return DeliveryJob(
        delivery_id=delivery.id,
        event_type=delivery.event_type,
        url=endpoint.url,
        secret=endpoint.secret,
        timeout=endpoint.timeout_seconds or 30,
        body=json.dumps(delivery.payload, separators=(",", ":")).encode("utf-8"),
    )


def signed_headers(job: DeliveryJob) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign_webhook_payload(job.secret, job.body),
        "X-Webhook-Event": job.event_type,
        "X-Webhook-Delivery": str(job.delivery_id),
        "User-Agent": WEBHOOK_USER_AGENT,
    }


async def send_job(client: httpx.AsyncClient, job: DeliveryJob) -> DeliveryResult:
    """POST one signed payload; network errors become a failed result"""
    try:
        response = await client.post(
            job.url, content=job.body, headers=signed_headers(job), timeout=job.timeout
        )
        return DeliveryResult(
            delivery_id=job.delivery_id,
            ok=200 <= response.status_code < 300,
            status_code=response.status_code,
            response_body=response.text[:RESPONSE_BODY_LIMIT],
        )
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Webhook delivery {job.delivery_id} network error: {e}")
        return DeliveryResult(
            delivery_id=job.delivery_id,
            ok=False,
            response_body=(str(e) or type(e).__name__)[:RESPONSE_BODY_LIMIT],
        )


def apply_result(delivery: WebhookDelivery, result: DeliveryResult, now: datetime) -> None:
    """Record the outcome of one attempt on the delivery row"""
    previous_attempts = delivery.attempt_count or 0
    delivery.attempt_count = previous_attempts + 1
    delivery.response_body = result.response_body
    if result.status_code is not None:
        delivery.http_status_code = result.status_code

    if result.ok:
        delivery.status = "delivered"
        delivery.delivered_at = now
        delivery.next_retry_at = None
        logger.info(f"✅ Webhook delivered: {delivery.id} (HTTP {result.status_code})")
        return

    if previous_attempts >= WEBHOOK_MAX_ATTEMPTS - 1:
        delivery.status = "failed"
        delivery.next_retry_at = None
        logger.warning(f"❌ Webhook {delivery.id} failed permanently after {delivery.attempt_count} attempts")
    else:
        delivery.status = "pending"
        delivery.next_retry_at = now + timedelta(minutes=2**previous_attempts)
        logger.info(f"🔁 Webhook {delivery.id} retry scheduled at {delivery.next_retry_at}")


async def deliver_webhook(
    db: Session, delivery_id: int, client: Optional[httpx.AsyncClient] = None
) -> bool:
    """Attempt one delivery now; True when the endpoint answered 2xx"""
    delivery = db.query(WebhookDelivery).filter(WebhookDelivery.id == delivery_id).first()
    if not delivery or not delivery.endpoint:
        logger.error(f"Webhook delivery not found: {delivery_id}")
        return False

    job = build_job(delivery)
    if client is None:
        async with httpx.AsyncClient() as own_client:
            result = await send_job(own_client, job)
    else:
        result = await send_job(client, job)

    apply_result(delivery, result, datetime.utcnow())
    db.commit()
    return result.ok


async def process_pending_webhooks(db: Session, client: Optional[httpx.AsyncClient] = None) -> dict:
    """
    Deliver due pending rows: at most WEBHOOK_BATCH_LIMIT per run,
    WEBHOOK_CONCURRENCY requests in flight at a time.
    """
    now = datetime.utcnow()
    due = (
        db.query(WebhookDelivery)
        .filter(WebhookDelivery.status == "pending", WebhookDelivery.next_retry_at <= now)
        .order_by(WebhookDelivery.next_retry_at)
        .limit(WEBHOOK_BATCH_LIMIT)
        .all()
    )
    if not due:
        return {"processed": 0, "delivered": 0, "failed": 0}

    logger.info(f"📤 Processing {len(due)} pending webhook deliveries")
    jobs = [build_job(d) for d in due if d.endpoint is not None]
    semaphore = asyncio.Semaphore(WEBHOOK_CONCURRENCY)

    async def bounded(http: httpx.AsyncClient, job: DeliveryJob) -> DeliveryResult:
        async with semaphore:
            return await send_job(http, job)

    if client is None:
        async with httpx.AsyncClient() as own_client:
            results = await asyncio.gather(*(bounded(own_client, j) for j in jobs))
    else:
        results = await asyncio.gather(*(bounded(client, j) for j in jobs))

    by_id = {d.id: d for d in due}
    finished_at = datetime.utcnow()
    for result in results:
        apply_result(by_id[result.delivery_id], result, finished_at)
    db.commit()

    delivered = len([r for r in results if r.ok])
    return {"processed": len(results), "delivered": delivered, "failed": len(results) - delivered}


def redeliver(db: Session, delivery: WebhookDelivery) -> WebhookDelivery:
    """Put a delivery back in the queue for an immediate fresh series of attempts"""
    delivery.status = "pending"
    delivery.attempt_count = 0
    delivery.next_retry_at = datetime.utcnow()
    db.commit()
    db.refresh(delivery)
    return delivery
