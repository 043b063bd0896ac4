"""Lead repository - Database operations for inbound leads"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from ...models import Company, Lead


class LeadRepository:
    @staticmethod
    def get_company_by_slug(db: Session, slug: str) -> Optional[Company]:
        return db.query(Company).filter(Company.slug == slug.strip().lower()).first()

    @staticmethod
    def filtered_query(
        db: Session, company_id: int, status: Optional[str] = None, search: Optional[str] = None
    ) -> Query:
        query = db.query(Lead).filter(Lead.company_id == company_id)
        if status:
            query = query.filter(Lead.status == status)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Lead.first_name.ilike(term),
                    Lead.last_name.ilike(term),
                    Lead.company_name.ilike(term),
                    Lead.email.ilike(term),
                    Lead.phone.ilike(term),
                )
            )
        return query.order_by(Lead.created_at.desc(), Lead.id.desc())

    @staticmethod
    def get_lead(db: Session, lead_id: int, company_id: int) -> Optional[Lead]:
        return db.query(Lead).filter(Lead.id == lead_id, Lead.company_id == company_id).first()

    @staticmethod
    def create_lead(db: Session, **lead_data) -> Lead:
        lead = Lead(**lead_data)
        db.add(lead)
        db.commit()
        db.refresh(lead)
        return lead
