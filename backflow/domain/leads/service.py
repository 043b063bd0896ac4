"""Lead service - public quote requests and conversion into customers"""

import logging
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...audit_logger import log_event, log_request_event
from ...models import Customer, Lead, TeamUser
from ...security_utils import sanitize_text
from ...shared.pagination import paginate
from ..customers.schemas import CustomerCreate
from ..customers.service import CustomerService
from .repository import LeadRepository
from .schemas import LeadConvertRequest, LeadCreate

logger = logging.getLogger(__name__)


class LeadService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = LeadRepository()

    def submit(self, data: LeadCreate, request: Optional[Request] = None) -> Lead:
        company = self.repo.get_company_by_slug(self.db, data.company_slug)
        if not company:
            raise HTTPException(status_code=404, detail="Company not found")
        if not data.email and not data.phone:
            raise HTTPException(status_code=400, detail="An email address or phone number is required")

        lead = self.repo.create_lead(
            self.db,
            company_id=company.id,
            first_name=sanitize_text(data.first_name, 100),
            last_name=sanitize_text(data.last_name, 100),
            company_name=sanitize_text(data.company_name, 255),
            email=data.email,
            phone=data.phone,
            address=sanitize_text(data.address, 500),
            message=sanitize_text(data.message, 5000),
            source=sanitize_text(data.source, 50) or "website",
            status="new",
        )
        logger.info(f"📨 New lead {lead.id} for company {company.id} via {lead.source}")
        log_request_event(
            self.db,
            request,
            "lead.created",
            company_id=company.id,
            entity_type="lead",
            entity_id=lead.id,
            metadata={"source": lead.source},
        )
        return lead

    def list_leads(
        self,
        company_id: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        items, pagination = paginate(self.repo.filtered_query(self.db, company_id, status, search), page, limit)
        return {"data": items, "pagination": pagination}

    def get_lead(self, lead_id: int, company_id: int) -> Lead:
        lead = self.repo.get_lead(self.db, lead_id, company_id)
        if not lead:
            raise HTTPException(status_code=404, detail="Lead not found")
        return lead

    def update_status(self, lead_id: int, status: str, user: TeamUser) -> Lead:
        lead = self.get_lead(lead_id, user.company_id)
        if lead.status == "converted" and status != "converted":
            raise HTTPException(status_code=400, detail="Converted leads cannot change status")
        if status == "converted" and not lead.converted_customer_id:
            raise HTTPException(status_code=400, detail="Use the convert action to convert a lead")
        previous = lead.status
        lead.status = status
        self.db.commit()
        self.db.refresh(lead)
        log_event(
            self.db,
            "lead.updated",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="lead",
            entity_id=lead.id,
            metadata={"from": previous, "to": status},
        )
        return lead

    def convert(self, lead_id: int, data: LeadConvertRequest, user: TeamUser) -> Customer:
        """Create a customer from the lead and mark the lead converted"""
        lead = self.get_lead(lead_id, user.company_id)
        if lead.status == "converted":
            raise HTTPException(status_code=400, detail="Lead already converted")

        customer = CustomerService(self.db).create_customer(
            CustomerCreate(
                first_name=lead.first_name,
                last_name=lead.last_name or "-",
                company_name=lead.company_name,
                email=lead.email,
                phone=lead.phone,
                address_line1=lead.address,
                city=data.city,
                state=data.state,
                zip_code=data.zip_code,
                notes=data.notes or lead.message,
            ),
            user,
        )
        lead.status = "converted"
        lead.converted_customer_id = customer.id
        self.db.commit()
        logger.info(f"🎯 Lead {lead.id} converted to customer {customer.account_number}")
        log_event(
            self.db,
            "lead.converted",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="lead",
            entity_id=lead.id,
            metadata={"customer_id": customer.id},
        )
        return customer
