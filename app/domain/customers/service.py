"""Customer service - Business logic for customers"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from ...models import User
from ...models_appointment import Appointment
from ...models_customer import Customer, CustomerNote
from ...plan_limits import enforce_limit
from ..integrations.webhooks import trigger_event
from ..marketing.loyalty import record_points
from . import analytics, importer
from .repository import CustomerRepository
from .schemas import BulkCustomerAction, CustomerCreate, CustomerUpdate, NoteCreate, TagsUpdate
from .segmentation import SegmentService

logger = logging.getLogger(__name__)

DEFAULT_INACTIVE_DAYS = 90


def customer_payload(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "source": customer.source,
        "tags": list(customer.tags or []),
    }


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()
        self.segments = SegmentService(db)

    def _check_unique(self, tenant_id: str, phone=None, email=None, cpf=None, exclude_id=None) -> None:
        conflict = self.repo.find_conflict(self.db, tenant_id, phone, email, cpf, exclude_id)
        if conflict:
            field, existing = conflict
            raise HTTPException(
                status_code=409,
                detail=f"A customer with this {field} already exists ({existing.name})",
            )

    def get_customer(self, customer_id: str, user: User, include_deleted: bool = False) -> Customer:
        customer = self.repo.get(self.db, customer_id, user.tenant_id, include_deleted)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def search_query(self, user: User, search=None, tag=None, segment_id=None, birthday_month=None, sort="name"):
        return self.repo.search(self.db, user.tenant_id, search, tag, segment_id, birthday_month, sort)

    def create_customer(self, data: CustomerCreate, user: User, evaluate: bool = True) -> Customer:
        logger.info(f"📥 Creating customer for tenant {user.tenant_id}")
        enforce_limit(self.db, user.tenant, "clients")
        self._check_unique(user.tenant_id, data.phone, data.email, data.cpf)
        if data.referred_by_id:
            self.get_customer(data.referred_by_id, user)

        customer = Customer(tenant_id=user.tenant_id, **data.model_dump())
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)

        if evaluate:
            self.segments.evaluate_customer_segments(customer)
        trigger_event(self.db, user.tenant_id, "customer.created", customer_payload(customer))
        logger.info(f"✅ Customer {customer.id} created")
        return customer

    def update_customer(self, customer_id: str, data: CustomerUpdate, user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        changes = data.model_dump(exclude_unset=True)
        self._check_unique(
            user.tenant_id, changes.get("phone"), changes.get("email"), changes.get("cpf"), exclude_id=customer.id
        )
        for key, value in changes.items():
            setattr(customer, key, value)
        self.db.commit()
        self.db.refresh(customer)
        self.segments.evaluate_customer_segments(customer)
        return customer

    def delete_customer(self, customer_id: str, user: User, reason: Optional[str] = None) -> dict:
        customer = self.get_customer(customer_id, user)
        customer.deleted_at = datetime.utcnow()
        customer.deletion_reason = reason
        self.db.commit()
        logger.info(f"🗑️ Customer {customer.id} deleted")
        return {"message": "Customer deleted"}

    # ========================================================================
    # Tags and notes
    # ========================================================================

    def update_tags(self, customer_id: str, data: TagsUpdate, user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        tags = [t.strip() for t in data.tags if t.strip()]
        current = list(customer.tags or [])
        if data.action == "set":
            current = list(dict.fromkeys(tags))
        elif data.action == "add":
            current.extend(t for t in tags if t not in current)
        else:
            current = [t for t in current if t not in tags]
        customer.tags = current
        self.db.commit()
        self.db.refresh(customer)
        self.segments.evaluate_customer_segments(customer)
        return customer

    def add_note(self, customer_id: str, data: NoteCreate, user: User) -> CustomerNote:
        customer = self.get_customer(customer_id, user)
        note = CustomerNote(
            tenant_id=user.tenant_id,
            customer_id=customer.id,
            author_id=user.id,
            content=data.content,
            is_private=data.is_private,
        )
        self.db.add(note)
        self.db.commit()
        self.db.refresh(note)
        return note

    def list_notes(self, customer_id: str, user: User) -> list[CustomerNote]:
        customer = self.get_customer(customer_id, user)
        notes = self.repo.list_notes(self.db, customer.id)
        # Private notes are visible to their author and management
        if user.role in ("SUPER_ADMIN", "OWNER", "MANAGER"):
            return notes
        return [n for n in notes if not n.is_private or n.author_id == user.id]

    # ========================================================================
    # History and analytics
    # ========================================================================

    def appointment_history(self, customer_id: str, user: User):
        customer = self.get_customer(customer_id, user)
        return (
            self.db.query(Appointment)
            .filter(Appointment.customer_id == customer.id)
            .order_by(Appointment.scheduled_at.desc())
        )

    def timeline(self, customer_id: str, user: User, limit: int = 20) -> list[dict]:
        return analytics.timeline(self.db, self.get_customer(customer_id, user), limit)

    def get_analytics(self, customer_id: str, user: User) -> dict:
        customer = self.get_customer(customer_id, user)
        return {
            "customer_id": customer.id,
            "financial": analytics.financial_analytics(self.db, customer),
            "engagement": analytics.engagement_analytics(self.db, customer),
            "behavior": analytics.behavior_analytics(self.db, customer),
            "segments": [m.segment.slug for m in customer.segment_memberships],
        }

    def recalculate_metrics(self, customer_id: str, user: User) -> Customer:
        customer = analytics.recalculate_metrics(self.db, self.get_customer(customer_id, user))
        self.segments.evaluate_customer_segments(customer)
        return customer

    def birthdays(self, user: User, month: Optional[int] = None, day: Optional[int] = None) -> list[Customer]:
        month = month or datetime.utcnow().month
        query = self.db.query(Customer).filter(
            Customer.tenant_id == user.tenant_id,
            Customer.deleted_at.is_(None),
            Customer.birth_date.isnot(None),
            extract("month", Customer.birth_date) == month,
        )
        if day:
            query = query.filter(extract("day", Customer.birth_date) == day)
        return sorted(query.all(), key=lambda c: (c.birth_date.day, c.name))

    def inactive_query(self, user: User, days: int = DEFAULT_INACTIVE_DAYS):
        cutoff = datetime.utcnow() - timedelta(days=days)
        return (
            self.db.query(Customer)
            .filter(
                Customer.tenant_id == user.tenant_id,
                Customer.deleted_at.is_(None),
                Customer.last_visit_at.isnot(None),
                Customer.last_visit_at < cutoff,
            )
            .order_by(Customer.last_visit_at.asc())
        )

    def stats(self, user: User) -> dict:
        now = datetime.utcnow()
        base = self.db.query(Customer).filter(Customer.tenant_id == user.tenant_id, Customer.deleted_at.is_(None))
        total = base.count()
        new_this_month = base.filter(Customer.created_at >= datetime(now.year, now.month, 1)).count()
        active = base.filter(Customer.last_visit_at >= now - timedelta(days=DEFAULT_INACTIVE_DAYS)).count()
        revenue, avg_ticket = (
            self.db.query(func.coalesce(func.sum(Customer.total_spent), 0), func.avg(Customer.average_ticket))
            .filter(Customer.tenant_id == user.tenant_id, Customer.deleted_at.is_(None))
            .one()
        )
        by_tier = dict(
            self.db.query(Customer.loyalty_tier, func.count(Customer.id))
            .filter(Customer.tenant_id == user.tenant_id, Customer.deleted_at.is_(None))
            .group_by(Customer.loyalty_tier)
            .all()
        )
        return {
            "total": total,
            "new_this_month": new_this_month,
            "active": active,
            "inactive": total - active,
            "total_revenue": round(float(revenue or 0), 2),
            "average_ticket": round(float(avg_ticket or 0), 2),
            "by_loyalty_tier": by_tier,
        }

    # ========================================================================
    # Bulk and loyalty
    # ========================================================================

    def bulk_action(self, data: BulkCustomerAction, user: User) -> dict:
        result = {"success_count": 0, "failed_count": 0, "errors": []}
        changes = data.data.model_dump(exclude_unset=True) if data.data else {}
        if data.action == "update" and not changes:
            raise HTTPException(status_code=400, detail="data is required for update")
        if data.action == "update" and ({"phone", "email", "cpf"} & changes.keys()):
            raise HTTPException(status_code=400, detail="phone, email and cpf cannot be bulk updated")

        for customer_id in data.customer_ids:
            customer = self.repo.get(self.db, customer_id, user.tenant_id)
            if not customer:
                result["failed_count"] += 1
                result["errors"].append({"id": customer_id, "error": "Customer not found"})
                continue
            if data.action == "update":
                for key, value in changes.items():
                    setattr(customer, key, value)
            elif data.action == "add_tags":
                customer.tags = list(customer.tags or []) + [t for t in data.tags if t not in (customer.tags or [])]
            elif data.action == "remove_tags":
                customer.tags = [t for t in (customer.tags or []) if t not in data.tags]
            elif data.action == "delete":
                customer.deleted_at = datetime.utcnow()
                customer.deletion_reason = data.reason
            result["success_count"] += 1

        self.db.commit()
        logger.info(f"✅ Bulk {data.action}: {result['success_count']} ok, {result['failed_count']} failed")
        return result

    def add_loyalty_points(self, customer_id: str, points: int, description: Optional[str], user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        if points < 0 and (customer.loyalty_points or 0) + points < 0:
            raise HTTPException(status_code=400, detail="Insufficient points")
        record_points(
            self.db,
            customer,
            points,
            "EARN" if points > 0 else "REDEEM",
            description or ("Manual credit" if points > 0 else "Manual redemption"),
            reference_type="MANUAL",
        )
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def import_customers(self, rows: list[dict], duplicate_action: str, dry_run: bool, user: User) -> dict:
        result = importer.import_customers(self.db, user.tenant, rows, duplicate_action, dry_run)
        created_ids = result.pop("created_ids")
        if created_ids:
            for customer in self.db.query(Customer).filter(Customer.id.in_(created_ids)):
                self.segments.evaluate_customer_segments(customer)
        return result
