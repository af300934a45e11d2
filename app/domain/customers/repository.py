"""Customer repository - Database operations for customers"""

from typing import Optional

from sqlalchemy import extract, func, or_
from sqlalchemy.orm import Session

from ...models_customer import Customer, CustomerNote, SegmentMember


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def get(db: Session, customer_id: str, tenant_id: str, include_deleted: bool = False) -> Optional[Customer]:
        query = db.query(Customer).filter(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        if not include_deleted:
            query = query.filter(Customer.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def find_conflict(
        db: Session,
        tenant_id: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        cpf: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[tuple[str, Customer]]:
        """First (field, customer) already using one of the given identifiers"""
        for field, value in (("phone", phone), ("email", email), ("cpf", cpf)):
            if not value:
                continue
            query = db.query(Customer).filter(
                Customer.tenant_id == tenant_id,
                Customer.deleted_at.is_(None),
                getattr(Customer, field) == value,
            )
            if exclude_id:
                query = query.filter(Customer.id != exclude_id)
            existing = query.first()
            if existing:
                return field, existing
        return None

    @staticmethod
    def find_by_contact(db: Session, tenant_id: str, phone: Optional[str], email: Optional[str]) -> Optional[Customer]:
        conditions = []
        if phone:
            conditions.append(Customer.phone == phone)
        if email:
            conditions.append(Customer.email == email)
        if not conditions:
            return None
        return (
            db.query(Customer)
            .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None), or_(*conditions))
            .first()
        )

    @staticmethod
    def search(
        db: Session,
        tenant_id: str,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        segment_id: Optional[str] = None,
        birthday_month: Optional[int] = None,
        sort: str = "name",
    ):
        query = db.query(Customer).filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
        if search:
            pattern = f"%{search.strip()}%"
            digits = "".join(ch for ch in search if ch.isdigit())
            conditions = [Customer.name.ilike(pattern), Customer.email.ilike(pattern)]
            if digits:
                conditions.append(Customer.phone.like(f"%{digits}%"))
                conditions.append(Customer.cpf.like(f"%{digits}%"))
            query = query.filter(or_(*conditions))
        if segment_id:
            query = query.join(SegmentMember, SegmentMember.customer_id == Customer.id).filter(
                SegmentMember.segment_id == segment_id
            )
        if birthday_month:
            query = query.filter(extract("month", Customer.birth_date) == birthday_month)

        order = {
            "name": Customer.name.asc(),
            "recent": Customer.created_at.desc(),
            "last_visit": Customer.last_visit_at.desc(),
            "total_spent": Customer.total_spent.desc(),
        }.get(sort, Customer.name.asc())
        query = query.order_by(order)

        if tag:
            # JSON list column; filtered in Python so it works on any backend
            ids = [c.id for c in query if tag in (c.tags or [])]
            query = db.query(Customer).filter(Customer.id.in_(ids)).order_by(order)
        return query

    @staticmethod
    def list_notes(db: Session, customer_id: str, include_private: bool = True) -> list[CustomerNote]:
        query = db.query(CustomerNote).filter(CustomerNote.customer_id == customer_id)
        if not include_private:
            query = query.filter(CustomerNote.is_private.is_(False))
        return query.order_by(CustomerNote.created_at.desc()).all()

    @staticmethod
    def count_active(db: Session, tenant_id: str) -> int:
        return (
            db.query(func.count(Customer.id))
            .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .scalar()
        )
