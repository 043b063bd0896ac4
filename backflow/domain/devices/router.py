"""Device router - FastAPI endpoints for backflow assemblies"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_staff
from ...database import get_db
from ...models import TeamUser
from .schemas import DeviceCreate, DeviceResponse, DeviceUpdate
from .service import DeviceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["Devices"])


def get_device_service(db: Session = Depends(get_db)) -> DeviceService:
    return DeviceService(db)


@router.get("", response_model=list[DeviceResponse])
async def list_devices(
    customer_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    due_within_days: Optional[int] = Query(None, ge=0, le=365),
    include_inactive: bool = Query(False),
    current_user: TeamUser = Depends(get_current_team_user),
    service: DeviceService = Depends(get_device_service),
):
    """List devices, optionally only those due for testing within N days"""
    return service.list_devices(current_user.company_id, customer_id, status, due_within_days, include_inactive)


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(
    device_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: DeviceService = Depends(get_device_service),
):
    return service.get_device(device_id, current_user.company_id)


@router.post("", response_model=DeviceResponse, status_code=201)
async def create_device(
    data: DeviceCreate,
    current_user: TeamUser = Depends(get_current_team_user),
    service: DeviceService = Depends(get_device_service),
):
    return service.create_device(data, current_user)


@router.patch("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: int,
    data: DeviceUpdate,
    current_user: TeamUser = Depends(get_current_team_user),
    service: DeviceService = Depends(get_device_service),
):
    return service.update_device(device_id, data, current_user)


@router.delete("/{device_id}", response_model=DeviceResponse)
async def deactivate_device(
    device_id: int,
    current_user: TeamUser = Depends(require_staff),
    service: DeviceService = Depends(get_device_service),
):
    """Deactivate a device; history stays attached to it"""
    return service.deactivate_device(device_id, current_user)
