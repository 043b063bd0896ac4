"""API key schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    rate_limit_per_hour: int = Field(1000, ge=1, le=100000)


class ApiKeyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    key_prefix: str
    is_active: bool
    rate_limit_per_hour: Optional[int] = None
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ApiKeyCreated(ApiKeyResponse):
    """Carries the plaintext key; it cannot be retrieved again"""

    api_key: str
