"""
Customer segmentation.

Segments are MANUAL (members added by hand), SMART (user defined rules) or
AUTOMATIC (system rules, seeded per tenant). Rules are nested groups:

    {"operator": "AND", "rules": [
        {"field": "metrics.totalSpent", "operator": "gte", "value": 5000},
        {"operator": "OR", "rules": [...]},
    ]}

Fields are dotted paths into customer_view(). Date values may be relative
keywords ("last30days", "thisMonth", ...).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models_customer import Customer, Segment, SegmentMember
from ...shared.validators import slugify

logger = logging.getLogger(__name__)

SEGMENT_TYPES = ("MANUAL", "SMART", "AUTOMATIC")
RULE_OPERATORS = (
    "eq",
    "neq",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
    "nin",
    "contains",
    "startsWith",
    "endsWith",
    "between",
    "isNull",
    "isNotNull",
)
RELATIVE_VALUES = (
    "today",
    "yesterday",
    "last7days",
    "last30days",
    "last60days",
    "last90days",
    "last120days",
    "thisMonth",
    "lastMonth",
    "thisYear",
    "currentMonth",
)
NEVER_VISITED_DAYS = 999

SYSTEM_SEGMENTS = [
    {
        "name": "VIP",
        "slug": "vip",
        "description": "High value, high frequency customers",
        "color": "#FFD700",
        "rules": {
            "operator": "AND",
            "rules": [
                {"field": "metrics.totalSpent", "operator": "gte", "value": 5000},
                {"field": "metrics.totalAppointments", "operator": "gte", "value": 20},
            ],
        },
    },
    {
        "name": "At risk",
        "slug": "at-risk",
        "description": "Regular customers with no visit in the last 60 days",
        "color": "#FF6B6B",
        "rules": {
            "operator": "AND",
            "rules": [
                {"field": "metrics.lastVisitDaysAgo", "operator": "gte", "value": 60},
                {"field": "metrics.totalAppointments", "operator": "gte", "value": 3},
            ],
        },
    },
    {
        "name": "New",
        "slug": "new",
        "description": "Customers registered in the last 30 days",
        "color": "#4ECDC4",
        "rules": {
            "operator": "AND",
            "rules": [
                {"field": "metrics.totalAppointments", "operator": "lte", "value": 1},
                {"field": "createdAt", "operator": "gte", "value": "last30days"},
            ],
        },
    },
    {
        "name": "Frequent",
        "slug": "frequent",
        "description": "Customers visiting every three weeks or less",
        "color": "#45B7D1",
        "rules": {
            "operator": "AND",
            "rules": [
                {"field": "metrics.visitFrequency", "operator": "lte", "value": 21},
                {"field": "metrics.totalAppointments", "operator": "gte", "value": 3},
            ],
        },
    },
    {
        "name": "Churned",
        "slug": "churned",
        "description": "No visit in the last 120 days",
        "color": "#95A5A6",
        "rules": {
            "operator": "AND",
            "rules": [{"field": "metrics.lastVisitDaysAgo", "operator": "gte", "value": 120}],
        },
    },
]


# ============================================================================
# Rule engine
# ============================================================================


def customer_view(customer: Customer) -> dict:
    """Flat camelCase view of a customer that rule fields point into"""
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "gender": customer.gender,
        "source": customer.source,
        "tags": list(customer.tags or []),
        "birthDate": customer.birth_date,
        "createdAt": customer.created_at,
        "lastVisitAt": customer.last_visit_at,
        "loyaltyPoints": customer.loyalty_points,
        "loyaltyTier": customer.loyalty_tier,
        "acceptsEmailMarketing": customer.accepts_email_marketing,
        "acceptsSmsMarketing": customer.accepts_sms_marketing,
        "acceptsWhatsappMarketing": customer.accepts_whatsapp_marketing,
        "metrics": {
            "totalAppointments": customer.total_appointments or 0,
            "completedAppointments": customer.completed_appointments or 0,
            "cancelledAppointments": customer.cancelled_appointments or 0,
            "noShowCount": customer.no_show_count or 0,
            "totalSpent": customer.total_spent or 0,
            "averageTicket": customer.average_ticket or 0,
            "visitFrequency": customer.visit_frequency or 0,
        },
    }


def get_field(view: dict, path: str, now: datetime) -> Any:
    if path == "birthMonth":
        birth = view.get("birthDate")
        return birth.month if birth else None

    if path == "metrics.lastVisitDaysAgo":
        last_visit = view.get("lastVisitAt")
        if last_visit is None:
            return NEVER_VISITED_DAYS
        return (now - last_visit).days

    current: Any = view
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def resolve_relative(value: Any, now: datetime) -> Any:
    if not isinstance(value, str) or value not in RELATIVE_VALUES:
        return value
    if value == "today":
        return now
    if value == "yesterday":
        return now - timedelta(days=1)
    if value.startswith("last") and value.endswith("days"):
        return now - timedelta(days=int(value[4:-4]))
    if value == "thisMonth":
        return datetime(now.year, now.month, 1)
    if value == "lastMonth":
        return datetime(now.year, now.month, 1) - relativedelta(months=1)
    if value == "thisYear":
        return datetime(now.year, 1, 1)
    # currentMonth compares against birthMonth
    return now.month


def _comparable(value: Any) -> Any:
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


def _ordered(value: Any, target: Any, op) -> bool:
    value = _comparable(value)
    target = _comparable(target)
    if isinstance(value, bool) or value is None or target is None:
        return False
    if isinstance(value, (int, float)) and isinstance(target, (int, float)):
        return op(value, target)
    if isinstance(value, datetime) and isinstance(target, datetime):
        return op(value, target)
    return False


def evaluate_rule(view: dict, rule: dict, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    value = get_field(view, rule.get("field", ""), now)
    target = resolve_relative(rule.get("value"), now)
    operator = rule.get("operator")

    if operator == "eq":
        return value == target
    if operator == "neq":
        return value != target
    if operator == "gt":
        return _ordered(value, target, lambda a, b: a > b)
    if operator == "gte":
        return _ordered(value, target, lambda a, b: a >= b)
    if operator == "lt":
        return _ordered(value, target, lambda a, b: a < b)
    if operator == "lte":
        return _ordered(value, target, lambda a, b: a <= b)
    if operator == "in":
        return isinstance(target, list) and value in target
    if operator == "nin":
        return isinstance(target, list) and value not in target
    if operator == "contains":
        if isinstance(value, str):
            return str(target).lower() in value.lower()
        if isinstance(value, list):
            return target in value
        return False
    if operator == "startsWith":
        return isinstance(value, str) and value.startswith(str(target))
    if operator == "endsWith":
        return isinstance(value, str) and value.endswith(str(target))
    if operator == "between":
        if not isinstance(target, list) or len(target) != 2:
            return False
        low = resolve_relative(target[0], now)
        high = resolve_relative(target[1], now)
        return _ordered(value, low, lambda a, b: a >= b) and _ordered(value, high, lambda a, b: a <= b)
    if operator == "isNull":
        return value is None
    if operator == "isNotNull":
        return value is not None
    return False


def evaluate_rules(view: dict, group: dict, now: Optional[datetime] = None) -> bool:
    """Evaluate a (possibly nested) rule group against a customer view"""
    now = now or datetime.utcnow()
    results = []
    for rule in group.get("rules", []):
        if "rules" in rule:
            results.append(evaluate_rules(view, rule, now))
        else:
            results.append(evaluate_rule(view, rule, now))
    if group.get("operator", "AND").upper() == "OR":
        return any(results)
    return all(results)


def validate_rules(group: dict) -> None:
    """Raise ValueError when a rule group is malformed"""
    if not isinstance(group, dict) or not isinstance(group.get("rules"), list):
        raise ValueError("Rule group must have a 'rules' list")
    if str(group.get("operator", "AND")).upper() not in ("AND", "OR"):
        raise ValueError("Group operator must be AND or OR")
    for rule in group["rules"]:
        if isinstance(rule, dict) and "rules" in rule:
            validate_rules(rule)
            continue
        if not isinstance(rule, dict) or not rule.get("field"):
            raise ValueError("Each rule needs a field")
        if rule.get("operator") not in RULE_OPERATORS:
            raise ValueError(f"Unknown rule operator: {rule.get('operator')}")


# ============================================================================
# Segment service
# ============================================================================


class SegmentService:
    def __init__(self, db: Session):
        self.db = db

    def ensure_system_segments(self, tenant_id: str) -> None:
        existing = {
            slug
            for (slug,) in self.db.query(Segment.slug).filter(
                Segment.tenant_id == tenant_id, Segment.is_system.is_(True)
            )
        }
        created = 0
        for definition in SYSTEM_SEGMENTS:
            if definition["slug"] in existing:
                continue
            self.db.add(Segment(tenant_id=tenant_id, type="AUTOMATIC", is_system=True, **definition))
            created += 1
        if created:
            self.db.commit()
            logger.info(f"🌱 Seeded {created} system segments for tenant {tenant_id}")

    def list_segments(self, tenant_id: str) -> list[Segment]:
        self.ensure_system_segments(tenant_id)
        return (
            self.db.query(Segment)
            .filter(Segment.tenant_id == tenant_id)
            .order_by(Segment.is_system.desc(), Segment.name)
            .all()
        )

    def get_segment(self, segment_id: str, tenant_id: str) -> Segment:
        segment = (
            self.db.query(Segment)
            .filter(Segment.id == segment_id, Segment.tenant_id == tenant_id)
            .first()
        )
        if not segment:
            raise HTTPException(status_code=404, detail="Segment not found")
        return segment

    def create_segment(self, tenant_id: str, data) -> Segment:
        slug = slugify(data.name)
        duplicate = (
            self.db.query(Segment.id).filter(Segment.tenant_id == tenant_id, Segment.slug == slug).first()
        )
        if duplicate:
            raise HTTPException(status_code=409, detail=f"Segment with slug '{slug}' already exists")

        segment = Segment(
            tenant_id=tenant_id,
            name=data.name,
            slug=slug,
            description=data.description,
            type=data.type,
            rules=data.rules,
            color=data.color,
        )
        self.db.add(segment)
        self.db.commit()
        self.db.refresh(segment)
        if segment.type != "MANUAL" and segment.rules:
            self.evaluate_segment(segment)
        return segment

    def update_segment(self, segment_id: str, tenant_id: str, data) -> Segment:
        segment = self.get_segment(segment_id, tenant_id)
        if segment.is_system:
            raise HTTPException(status_code=400, detail="System segments cannot be edited")

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != segment.name:
            slug = slugify(changes["name"])
            duplicate = (
                self.db.query(Segment.id)
                .filter(Segment.tenant_id == tenant_id, Segment.slug == slug, Segment.id != segment.id)
                .first()
            )
            if duplicate:
                raise HTTPException(status_code=409, detail=f"Segment with slug '{slug}' already exists")
            segment.slug = slug
        for key, value in changes.items():
            setattr(segment, key, value)
        self.db.commit()
        if "rules" in changes and segment.type != "MANUAL":
            self.evaluate_segment(segment)
        self.db.refresh(segment)
        return segment

    def delete_segment(self, segment_id: str, tenant_id: str) -> dict:
        segment = self.get_segment(segment_id, tenant_id)
        if segment.is_system:
            raise HTTPException(status_code=400, detail="System segments cannot be deleted")
        self.db.delete(segment)
        self.db.commit()
        return {"message": "Segment deleted"}

    def _require_manual(self, segment: Segment) -> None:
        if segment.type != "MANUAL":
            raise HTTPException(status_code=400, detail="Members can only be changed on MANUAL segments")

    def add_members(self, segment_id: str, tenant_id: str, customer_ids: list[str]) -> Segment:
        segment = self.get_segment(segment_id, tenant_id)
        self._require_manual(segment)
        current = {m.customer_id for m in segment.members}
        valid_ids = {
            cid
            for (cid,) in self.db.query(Customer.id).filter(
                Customer.tenant_id == tenant_id,
                Customer.id.in_(customer_ids),
                Customer.deleted_at.is_(None),
            )
        }
        for customer_id in valid_ids - current:
            segment.members.append(SegmentMember(tenant_id=tenant_id, customer_id=customer_id))
        segment.customer_count = len(current | valid_ids)
        self.db.commit()
        self.db.refresh(segment)
        return segment

    def remove_members(self, segment_id: str, tenant_id: str, customer_ids: list[str]) -> Segment:
        segment = self.get_segment(segment_id, tenant_id)
        self._require_manual(segment)
        segment.members = [m for m in segment.members if m.customer_id not in set(customer_ids)]
        segment.customer_count = len(segment.members)
        self.db.commit()
        self.db.refresh(segment)
        return segment

    def member_ids(self, segment_ids: list[str], tenant_id: str) -> set[str]:
        rows = (
            self.db.query(SegmentMember.customer_id)
            .join(Customer, Customer.id == SegmentMember.customer_id)
            .filter(
                SegmentMember.tenant_id == tenant_id,
                SegmentMember.segment_id.in_(segment_ids),
                Customer.deleted_at.is_(None),
            )
            .all()
        )
        return {customer_id for (customer_id,) in rows}

    def evaluate_customer_segments(self, customer: Customer, now: Optional[datetime] = None) -> list[str]:
        """Re-evaluate rule based segments for one customer. Returns matched slugs (manual included)"""
        self.ensure_system_segments(customer.tenant_id)
        now = now or datetime.utcnow()
        view = customer_view(customer)
        segments = (
            self.db.query(Segment)
            .filter(
                Segment.tenant_id == customer.tenant_id,
                Segment.is_active.is_(True),
            )
            .all()
        )
        memberships = {
            m.segment_id: m
            for m in self.db.query(SegmentMember).filter(SegmentMember.customer_id == customer.id)
        }

        matched = []
        for segment in segments:
            if segment.type == "MANUAL":
                if segment.id in memberships:
                    matched.append(segment.slug)
                continue
            if not segment.rules:
                continue
            if evaluate_rules(view, segment.rules, now):
                matched.append(segment.slug)
                if segment.id not in memberships:
                    self.db.add(
                        SegmentMember(tenant_id=customer.tenant_id, segment_id=segment.id, customer_id=customer.id)
                    )
                    segment.customer_count = (segment.customer_count or 0) + 1
            elif segment.id in memberships:
                self.db.delete(memberships[segment.id])
                segment.customer_count = max((segment.customer_count or 0) - 1, 0)

        self.db.commit()
        return matched

    def evaluate_segment(self, segment: Segment, now: Optional[datetime] = None) -> int:
        """Evaluate a rule based segment against every active customer. Returns the member count"""
        if segment.type == "MANUAL" or not segment.rules:
            return segment.customer_count or 0

        now = now or datetime.utcnow()
        customers = (
            self.db.query(Customer)
            .filter(Customer.tenant_id == segment.tenant_id, Customer.deleted_at.is_(None))
            .all()
        )
        current = {m.customer_id: m for m in segment.members}
        matched = 0
        for customer in customers:
            if evaluate_rules(customer_view(customer), segment.rules, now):
                matched += 1
                if customer.id not in current:
                    segment.members.append(SegmentMember(tenant_id=segment.tenant_id, customer_id=customer.id))
            elif customer.id in current:
                segment.members.remove(current[customer.id])

        segment.customer_count = matched
        segment.last_evaluated_at = now
        self.db.commit()
        logger.info(f"📊 Segment {segment.slug} evaluated: {matched} customers")
        return matched

    def evaluate_all(self, tenant_id: Optional[str] = None) -> dict:
        query = self.db.query(Segment).filter(Segment.is_active.is_(True), Segment.type != "MANUAL")
        if tenant_id:
            query = query.filter(Segment.tenant_id == tenant_id)
        segments = query.all()
        total = 0
        for segment in segments:
            total += self.evaluate_segment(segment)
        return {"segments": len(segments), "memberships": total}
