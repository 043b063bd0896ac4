"""Webhook router - endpoint management and delivery history for admins"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import TeamUser
from .schemas import (
    WebhookDeliveryResponse,
    WebhookEndpointCreate,
    WebhookEndpointCreated,
    WebhookEndpointResponse,
    WebhookEndpointUpdate,
    WebhookTestResponse,
)
from .service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    return WebhookService(db)


@router.get("/endpoints", response_model=list[WebhookEndpointResponse])
async def list_endpoints(
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return service.list_endpoints(current_user.company_id)


@router.post("/endpoints", response_model=WebhookEndpointCreated, status_code=201)
async def create_endpoint(
    data: WebhookEndpointCreate,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    """Register an endpoint; the signing secret is only shown in this response"""
    return service.create_endpoint(data, current_user)


@router.get("/endpoints/{endpoint_id}", response_model=WebhookEndpointResponse)
async def get_endpoint(
    endpoint_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return service.get_endpoint(endpoint_id, current_user.company_id)


@router.patch("/endpoints/{endpoint_id}", response_model=WebhookEndpointResponse)
async def update_endpoint(
    endpoint_id: int,
    data: WebhookEndpointUpdate,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return service.update_endpoint(endpoint_id, data, current_user)


@router.delete("/endpoints/{endpoint_id}", status_code=204)
async def delete_endpoint(
    endpoint_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    service.delete_endpoint(endpoint_id, current_user)


@router.post("/endpoints/{endpoint_id}/test", response_model=WebhookTestResponse)
async def send_test_event(
    endpoint_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return await service.send_test_event(endpoint_id, current_user)


@router.get("/deliveries", response_model=list[WebhookDeliveryResponse])
async def list_deliveries(
    endpoint_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return service.list_deliveries(current_user.company_id, endpoint_id, status, limit)


@router.post("/deliveries/{delivery_id}/redeliver", response_model=WebhookDeliveryResponse)
async def redeliver(
    delivery_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: WebhookService = Depends(get_webhook_service),
):
    return service.redeliver(delivery_id, current_user.company_id)
