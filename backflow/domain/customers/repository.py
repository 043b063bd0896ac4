"""Customer repository - Database operations for customers"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, selectinload

from ...models import Customer


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def search_query(
        db: Session,
        company_id: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Query:
        """Customers of a company matching a free-text search and status"""
        query = db.query(Customer).filter(Customer.company_id == company_id)
        if status:
            query = query.filter(Customer.status == status)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Customer.first_name.ilike(term),
                    Customer.last_name.ilike(term),
                    Customer.company_name.ilike(term),
                    Customer.email.ilike(term),
                    Customer.phone.ilike(term),
                    Customer.account_number.ilike(term),
                )
            )
        return query.order_by(Customer.last_name, Customer.first_name, Customer.id)

    @staticmethod
    def get_customer(db: Session, customer_id: int, company_id: int, with_devices: bool = False) -> Optional[Customer]:
        query = db.query(Customer).filter(Customer.id == customer_id, Customer.company_id == company_id)
        if with_devices:
            query = query.options(selectinload(Customer.devices))
        return query.first()

    @staticmethod
    def get_by_account_number(db: Session, company_id: int, account_number: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.company_id == company_id, Customer.account_number == account_number)
            .first()
        )

    @staticmethod
    def create_customer(db: Session, company_id: int, **customer_data) -> Customer:
        customer = Customer(company_id=company_id, **customer_data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def update_customer(db: Session, customer: Customer, **updates) -> Customer:
        for key, value in updates.items():
            if value is not None and hasattr(customer, key):
                setattr(customer, key, value)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def delete_customer(db: Session, customer: Customer) -> None:
        db.delete(customer)
        db.commit()
