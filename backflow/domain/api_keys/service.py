"""API key service - keys for the public v1 API"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...audit_logger import log_event
from ...models import TeamUser
from ...models_webhook import ApiKey
from ...security_utils import generate_api_key, hash_token
from .schemas import ApiKeyCreate

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 12


class ApiKeyService:
    def __init__(self, db: Session):
        self.db = db

    def list_keys(self, company_id: int) -> list[ApiKey]:
        return self.db.query(ApiKey).filter(ApiKey.company_id == company_id).order_by(ApiKey.id.desc()).all()

    def create_key(self, data: ApiKeyCreate, user: TeamUser) -> dict:
        """Create a key and return it in plaintext exactly once; only its hash is stored"""
        plaintext = generate_api_key()
        api_key = ApiKey(
            company_id=user.company_id,
            name=data.name.strip(),
            key_prefix=plaintext[:PREFIX_LENGTH],
            key_hash=hash_token(plaintext),
            is_active=True,
            rate_limit_per_hour=data.rate_limit_per_hour,
            created_by_id=user.id,
        )
        self.db.add(api_key)
        self.db.commit()
        self.db.refresh(api_key)
        logger.info(f"🔑 API key {api_key.key_prefix}… created for company {user.company_id}")
        log_event(
            self.db,
            "api_key.created",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="api_key",
            entity_id=api_key.id,
            metadata={"name": api_key.name},
            severity="medium",
        )
        return {
            "id": api_key.id,
            "name": api_key.name,
            "key_prefix": api_key.key_prefix,
            "is_active": api_key.is_active,
            "rate_limit_per_hour": api_key.rate_limit_per_hour,
            "last_used_at": api_key.last_used_at,
            "created_at": api_key.created_at,
            "api_key": plaintext,
        }

    def revoke_key(self, key_id: int, user: TeamUser) -> ApiKey:
        api_key = (
            self.db.query(ApiKey).filter(ApiKey.id == key_id, ApiKey.company_id == user.company_id).first()
        )
        if not api_key:
            raise HTTPException(status_code=404, detail="API key not found")
        api_key.is_active = False
        self.db.commit()
        self.db.refresh(api_key)
        logger.info(f"🔒 API key {api_key.key_prefix}… revoked")
        log_event(
            self.db,
            "api_key.revoked",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="api_key",
            entity_id=api_key.id,
            severity="medium",
        )
        return api_key
