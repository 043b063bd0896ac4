"""Webhook endpoint management"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...audit_logger import log_event
from ...models import TeamUser
from ...models_webhook import WebhookDelivery, WebhookEndpoint
from ...security_utils import generate_webhook_secret
from ...services.webhook_delivery import deliver_webhook, redeliver
from .schemas import WebhookEndpointCreate, WebhookEndpointUpdate

logger = logging.getLogger(__name__)

TEST_EVENT = "webhook.test"


class WebhookService:
    def __init__(self, db: Session):
        self.db = db

    def list_endpoints(self, company_id: int) -> list[WebhookEndpoint]:
        return (
            self.db.query(WebhookEndpoint)
            .filter(WebhookEndpoint.company_id == company_id)
            .order_by(WebhookEndpoint.id)
            .all()
        )

    def get_endpoint(self, endpoint_id: int, company_id: int) -> WebhookEndpoint:
        endpoint = (
            self.db.query(WebhookEndpoint)
            .filter(WebhookEndpoint.id == endpoint_id, WebhookEndpoint.company_id == company_id)
            .first()
        )
        if not endpoint:
            raise HTTPException(status_code=404, detail="Webhook endpoint not found")
        return endpoint

    def create_endpoint(self, data: WebhookEndpointCreate, user: TeamUser) -> WebhookEndpoint:
        endpoint = WebhookEndpoint(
            company_id=user.company_id,
            secret=generate_webhook_secret(),
            **data.model_dump(),
        )
        self.db.add(endpoint)
        self.db.commit()
        self.db.refresh(endpoint)
        logger.info(f"🔗 Webhook endpoint {endpoint.id} created for company {user.company_id}")
        log_event(
            self.db,
            "webhook.endpoint.created",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="webhook_endpoint",
            entity_id=endpoint.id,
            metadata={"url": endpoint.url, "events": endpoint.events},
        )
        return endpoint

    def update_endpoint(self, endpoint_id: int, data: WebhookEndpointUpdate, user: TeamUser) -> WebhookEndpoint:
        endpoint = self.get_endpoint(endpoint_id, user.company_id)
        updates = data.model_dump(exclude_unset=True)
        for field, value in updates.items():
            setattr(endpoint, field, value)
        self.db.commit()
        self.db.refresh(endpoint)
        log_event(
            self.db,
            "webhook.endpoint.updated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="webhook_endpoint",
            entity_id=endpoint.id,
            metadata={"fields": sorted(updates)},
        )
        return endpoint

    def delete_endpoint(self, endpoint_id: int, user: TeamUser) -> None:
        endpoint = self.get_endpoint(endpoint_id, user.company_id)
        self.db.delete(endpoint)
        self.db.commit()
        logger.info(f"🗑️ Webhook endpoint {endpoint_id} deleted")
        log_event(
            self.db,
            "webhook.endpoint.deleted",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="webhook_endpoint",
            entity_id=endpoint_id,
        )

    def list_deliveries(
        self, company_id: int, endpoint_id: Optional[int] = None, status: Optional[str] = None, limit: int = 50
    ) -> list[WebhookDelivery]:
        query = (
            self.db.query(WebhookDelivery)
            .join(WebhookEndpoint)
            .filter(WebhookEndpoint.company_id == company_id)
        )
        if endpoint_id:
            query = query.filter(WebhookDelivery.webhook_endpoint_id == endpoint_id)
        if status:
            query = query.filter(WebhookDelivery.status == status)
        return query.order_by(WebhookDelivery.id.desc()).limit(limit).all()

    def get_delivery(self, delivery_id: int, company_id: int) -> WebhookDelivery:
        delivery = (
            self.db.query(WebhookDelivery)
            .join(WebhookEndpoint)
            .filter(WebhookDelivery.id == delivery_id, WebhookEndpoint.company_id == company_id)
            .first()
        )
        if not delivery:
            raise HTTPException(status_code=404, detail="Webhook delivery not found")
        return delivery

    def redeliver(self, delivery_id: int, company_id: int) -> WebhookDelivery:
        delivery = self.get_delivery(delivery_id, company_id)
        logger.info(f"🔁 Redelivery requested for webhook {delivery.id}")
        return redeliver(self.db, delivery)

    async def send_test_event(self, endpoint_id: int, user: TeamUser) -> dict:
        """Queue a test event for one endpoint and attempt it right away"""
        endpoint = self.get_endpoint(endpoint_id, user.company_id)
        now = datetime.utcnow()
        delivery = WebhookDelivery(
            webhook_endpoint_id=endpoint.id,
            event_type=TEST_EVENT,
            payload={
                "event": TEST_EVENT,
                "timestamp": now.isoformat() + "Z",
                "data": {"message": "Test event", "company_id": user.company_id},
                "webhook_id": endpoint.id,
            },
            status="pending",
            attempt_count=0,
            next_retry_at=now,
        )
        self.db.add(delivery)
        self.db.commit()
        self.db.refresh(delivery)

        ok = await deliver_webhook(self.db, delivery.id)
        self.db.refresh(delivery)
        return {"success": ok, "delivery": delivery}
