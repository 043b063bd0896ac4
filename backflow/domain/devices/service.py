"""Device service - Business logic for backflow assemblies"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...audit_logger import log_event
from ...models import Customer, Device, TeamUser
from ...shared.dates import add_months
from .repository import DeviceRepository
from .schemas import DeviceCreate, DeviceUpdate

logger = logging.getLogger(__name__)


class DeviceService:
    """Service layer for device business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DeviceRepository()

    def list_devices(
        self,
        company_id: int,
        customer_id: Optional[int] = None,
        status: Optional[str] = None,
        due_within_days: Optional[int] = None,
        include_inactive: bool = False,
    ) -> list[Device]:
        due_before = date.today() + timedelta(days=due_within_days) if due_within_days is not None else None
        return self.repo.list_devices(self.db, company_id, customer_id, status, due_before, include_inactive)

    def get_device(self, device_id: int, company_id: int) -> Device:
        device = self.repo.get_device(self.db, device_id, company_id)
        if not device:
            raise HTTPException(status_code=404, detail="Device not found")
        return device

    def create_device(self, data: DeviceCreate, user: TeamUser) -> Device:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == data.customer_id, Customer.company_id == user.company_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        values = data.model_dump()
        if not values.get("next_test_date"):
            # New assemblies are due a frequency-period after their last test or install
            anchor = values.get("last_test_date") or values.get("install_date")
            if anchor:
                values["next_test_date"] = add_months(anchor, values["test_frequency_months"])

        device = self.repo.create_device(self.db, user.company_id, status="Untested", is_active=True, **values)
        logger.info(f"✅ Device {device.serial_number} added for customer {customer.account_number}")
        log_event(
            self.db,
            "device.created",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="device",
            entity_id=device.id,
            metadata={"customer_id": customer.id, "device_type": device.device_type},
        )
        return device

    def update_device(self, device_id: int, data: DeviceUpdate, user: TeamUser) -> Device:
        device = self.get_device(device_id, user.company_id)
        updates = data.model_dump(exclude_unset=True)
        device = self.repo.update_device(self.db, device, **updates)
        log_event(
            self.db,
            "device.updated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="device",
            entity_id=device.id,
            metadata={"fields": sorted(updates)},
        )
        return device

    def deactivate_device(self, device_id: int, user: TeamUser) -> Device:
        device = self.get_device(device_id, user.company_id)
        device = self.repo.update_device(self.db, device, is_active=False)
        log_event(
            self.db,
            "device.deactivated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="device",
            entity_id=device.id,
        )
        return device
