"""Company repository - Database operations for tenants"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Company, TeamUser


class CompanyRepository:
    """Repository for company database operations"""

    @staticmethod
    def get_by_id(db: Session, company_id: int) -> Optional[Company]:
        return db.query(Company).filter(Company.id == company_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Company]:
        return db.query(Company).filter(Company.email == email).first()

    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[Company]:
        return db.query(Company).filter(Company.slug == slug).first()

    @staticmethod
    def team_user_email_exists(db: Session, email: str) -> bool:
        return db.query(TeamUser.id).filter(TeamUser.email == email).first() is not None

    @staticmethod
    def create_with_admin(db: Session, company: Company, admin: TeamUser) -> tuple[Company, TeamUser]:
        """Insert the company and its first admin in one transaction"""
        try:
            db.add(company)
            db.flush()
            admin.company_id = company.id
            db.add(admin)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(company)
        db.refresh(admin)
        return company, admin

    @staticmethod
    def update(db: Session, company: Company, **updates) -> Company:
        for key, value in updates.items():
            if value is not None and hasattr(company, key):
                setattr(company, key, value)
        db.commit()
        db.refresh(company)
        return company
