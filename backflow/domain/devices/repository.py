"""Device repository - Database operations for backflow assemblies"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Device


class DeviceRepository:
    """Repository for device database operations"""

    @staticmethod
    def list_devices(
        db: Session,
        company_id: int,
        customer_id: Optional[int] = None,
        status: Optional[str] = None,
        due_before: Optional[date] = None,
        include_inactive: bool = False,
    ) -> list[Device]:
        query = db.query(Device).filter(Device.company_id == company_id)
        if customer_id:
            query = query.filter(Device.customer_id == customer_id)
        if status:
            query = query.filter(Device.status == status)
        if due_before:
            query = query.filter(Device.next_test_date.isnot(None), Device.next_test_date <= due_before)
        if not include_inactive:
            query = query.filter(Device.is_active.is_(True))
        return query.order_by(Device.next_test_date.asc(), Device.id).all()

    @staticmethod
    def get_device(db: Session, device_id: int, company_id: int) -> Optional[Device]:
        return db.query(Device).filter(Device.id == device_id, Device.company_id == company_id).first()

    @staticmethod
    def devices_due_on(db: Session, due_date: date) -> list[Device]:
        """Active devices across all companies whose next test falls on ``due_date``"""
        return (
            db.query(Device)
            .filter(Device.is_active.is_(True), Device.next_test_date == due_date)
            .all()
        )

    @staticmethod
    def create_device(db: Session, company_id: int, **device_data) -> Device:
        device = Device(company_id=company_id, **device_data)
        db.add(device)
        db.commit()
        db.refresh(device)
        return device

    @staticmethod
    def update_device(db: Session, device: Device, **updates) -> Device:
        for key, value in updates.items():
            if value is not None and hasattr(device, key):
                setattr(device, key, value)
        db.commit()
        db.refresh(device)
        return device
