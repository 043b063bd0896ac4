"""Customer service - Business logic for customer accounts"""

import csv
import logging
import secrets
from io import StringIO
from typing import Optional

from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...audit_logger import log_event
from ...models import Customer, TeamUser
from ...services.webhook_delivery import trigger_webhook
from ...shared.pagination import paginate
from .repository import CustomerRepository
from .schemas import CustomerCreate, CustomerResponse, CustomerUpdate

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = "BF-"


def customer_payload(customer: Customer) -> dict:
    """Webhook body for customer events"""
    return CustomerResponse.model_validate(customer).model_dump(mode="json")


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def generate_account_number(self, company_id: int) -> str:
        while True:
            candidate = f"{ACCOUNT_PREFIX}{secrets.randbelow(1_000_000):06d}"
            if not self.repo.get_by_account_number(self.db, company_id, candidate):
                return candidate

    def list_customers(
        self,
        user: TeamUser,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        query = self.repo.search_query(self.db, user.company_id, search, status)
        items, pagination = paginate(query, page, limit)
        return {"data": items, "pagination": pagination}

    def get_customer(self, customer_id: int, user: TeamUser, with_devices: bool = False) -> Customer:
        customer = self.repo.get_customer(self.db, customer_id, user.company_id, with_devices)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def create_customer(self, data: CustomerCreate, user: TeamUser) -> Customer:
        values = data.model_dump()
        values["preferred_time_slots"] = values.get("preferred_time_slots") or []
        customer = self.repo.create_customer(
            self.db,
            user.company_id,
            account_number=self.generate_account_number(user.company_id),
            status="Active",
            balance=0,
            **values,
        )
        logger.info(f"✅ Customer {customer.account_number} created by {user.email}")
        log_event(
            self.db,
            "customer.created",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="customer",
            entity_id=customer.id,
        )
        trigger_webhook(self.db, user.company_id, "customer.created", customer_payload(customer))
        return customer

    def update_customer(self, customer_id: int, data: CustomerUpdate, user: TeamUser) -> Customer:
        customer = self.get_customer(customer_id, user)
        updates = data.model_dump(exclude_unset=True)
        customer = self.repo.update_customer(self.db, customer, **updates)
        log_event(
            self.db,
            "customer.updated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="customer",
            entity_id=customer.id,
            metadata={"fields": sorted(updates)},
        )
        trigger_webhook(self.db, user.company_id, "customer.updated", customer_payload(customer))
        return customer

    def delete_customer(self, customer_id: int, user: TeamUser) -> dict:
        customer = self.get_customer(customer_id, user)
        payload = customer_payload(customer)
        account_number = customer.account_number
        try:
            self.repo.delete_customer(self.db, customer)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Customer {account_number} still referenced: {e}")
            raise HTTPException(
                status_code=409, detail="Customer has test reports or invoices; mark it Inactive instead"
            ) from e
        logger.info(f"🗑️ Customer {account_number} deleted by {user.email}")
        log_event(
            self.db,
            "customer.deleted",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="customer",
            entity_id=customer_id,
            metadata={"account_number": account_number},
        )
        trigger_webhook(self.db, user.company_id, "customer.deleted", payload)
        return {"success": True, "id": customer_id}

    def export_customers_csv(
        self, user: TeamUser, search: Optional[str] = None, status: Optional[str] = None
    ) -> StreamingResponse:
        """Export the filtered customer list as CSV"""
        logger.info(f"📊 Customer CSV export requested by {user.email}")
        customers = self.repo.search_query(self.db, user.company_id, search, status).all()

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(
            [
                "Account Number",
                "First Name",
                "Last Name",
                "Company",
                "Email",
                "Phone",
                "Address",
                "City",
                "State",
                "ZIP",
                "Status",
                "Balance",
                "Next Test Date",
            ]
        )
        for c in customers:
            writer.writerow(
                [
                    c.account_number,
                    c.first_name,
                    c.last_name,
                    c.company_name or "",
                    c.email or "",
                    c.phone or "",
                    c.address_line1 or "",
                    c.city or "",
                    c.state or "",
                    c.zip_code or "",
                    c.status,
                    f"{c.balance or 0:.2f}",
                    c.next_test_date.isoformat() if c.next_test_date else "",
                ]
            )
        output.seek(0)

        log_event(
            self.db,
            "data.export",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="customer",
            metadata={"rows": len(customers)},
        )
        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=customers.csv"},
        )
