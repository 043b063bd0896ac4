"""Outbound webhook schemas"""

from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...services.webhook_delivery import WEBHOOK_EVENTS

LOCAL_HOSTS = ("localhost", "127.0.0.1")


def check_webhook_url(url: str) -> str:
    url = url.strip()
    parsed = urlparse(url)
    if not parsed.netloc:
        raise ValueError("Webhook URL must be absolute")
    if parsed.scheme == "https":
        return url
    if parsed.scheme == "http" and parsed.hostname in LOCAL_HOSTS:
        return url
    raise ValueError("Webhook URL must use https")


def check_events(events: list[str]) -> list[str]:
    unknown = sorted(set(events) - set(WEBHOOK_EVENTS))
    if unknown:
        raise ValueError(f"Unknown webhook events: {', '.join(unknown)}")
    # keep subscription order stable and drop duplicates
    return [e for e in WEBHOOK_EVENTS if e in events]


class WebhookEndpointCreate(BaseModel):
    url: str = Field(..., max_length=500)
    description: Optional[str] = Field(None, max_length=255)
    events: list[str] = Field(..., min_length=1)
    is_active: bool = True
    timeout_seconds: int = Field(30, ge=1, le=60)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return check_webhook_url(v)

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        return check_events(v)


class WebhookEndpointUpdate(BaseModel):
    url: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=255)
    events: Optional[list[str]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    timeout_seconds: Optional[int] = Field(None, ge=1, le=60)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return check_webhook_url(v) if v is not None else v

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        return check_events(v) if v is not None else v


class WebhookEndpointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    description: Optional[str] = None
    events: list[str]
    is_active: bool
    timeout_seconds: int
    created_at: Optional[datetime] = None


class WebhookEndpointCreated(WebhookEndpointResponse):
    """Only returned once, at creation"""

    secret: str


class WebhookDeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    webhook_endpoint_id: int
    event_type: str
    status: str
    attempt_count: int
    next_retry_at: Optional[datetime] = None
    http_status_code: Optional[int] = None
    response_body: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WebhookTestResponse(BaseModel):
    success: bool
    delivery: WebhookDeliveryResponse
