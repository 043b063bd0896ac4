"""API key router - admins manage keys for the public API"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import TeamUser
from .schemas import ApiKeyCreate, ApiKeyCreated, ApiKeyResponse
from .service import ApiKeyService

router = APIRouter(prefix="/api-keys", tags=["API Keys"])


def get_api_key_service(db: Session = Depends(get_db)) -> ApiKeyService:
    return ApiKeyService(db)


@router.get("", response_model=list[ApiKeyResponse])
async def list_api_keys(
    current_user: TeamUser = Depends(require_admin),
    service: ApiKeyService = Depends(get_api_key_service),
):
    return service.list_keys(current_user.company_id)


@router.post("", response_model=ApiKeyCreated, status_code=201)
async def create_api_key(
    data: ApiKeyCreate,
    current_user: TeamUser = Depends(require_admin),
    service: ApiKeyService = Depends(get_api_key_service),
):
    return service.create_key(data, current_user)


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def revoke_api_key(
    key_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: ApiKeyService = Depends(get_api_key_service),
):
    return service.revoke_key(key_id, current_user)
