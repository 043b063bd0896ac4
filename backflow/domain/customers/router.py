"""Customer router - FastAPI endpoints for customer operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_team_user, require_admin
from ...database import get_db
from ...models import TeamUser
from .schemas import (
    CustomerCreate,
    CustomerDetailResponse,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdate,
)
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db)


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    current_user: TeamUser = Depends(get_current_team_user),
    service: CustomerService = Depends(get_customer_service),
):
    """Search customers by name, email, phone or account number"""
    return service.list_customers(current_user, search, status, page, limit)


@router.get("/export")
async def export_customers_csv(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    current_user: TeamUser = Depends(get_current_team_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.export_customers_csv(current_user, search, status)


@router.get("/{customer_id}", response_model=CustomerDetailResponse)
async def get_customer(
    customer_id: int,
    current_user: TeamUser = Depends(get_current_team_user),
    service: CustomerService = Depends(get_customer_service),
):
    """Get a customer with their devices"""
    return service.get_customer(customer_id, current_user, with_devices=True)


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    data: CustomerCreate,
    current_user: TeamUser = Depends(get_current_team_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.create_customer(data, current_user)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    current_user: TeamUser = Depends(get_current_team_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_customer(customer_id, data, current_user)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    current_user: TeamUser = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    return service.delete_customer(customer_id, current_user)
