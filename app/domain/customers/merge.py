"""Duplicate detection and customer merge"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_appointment import Appointment
from ...models_customer import Customer, CustomerMergeLog, CustomerNote, SegmentMember
from ...models_marketing import CouponRedemption, LoyaltyTransaction
from .analytics import recalculate_metrics

logger = logging.getLogger(__name__)

DUPLICATE_FIELDS = ("phone", "email", "cpf")
DEFAULT_SIMILARITY = 0.8
MERGE_STRATEGIES = ("merge", "keep_primary")
FILLABLE_FIELDS = ("email", "phone", "cpf", "birth_date", "gender", "notes", "address", "referred_by_id")


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def name_similarity(first: str, second: str) -> float:
    """(longer - edit distance) / longer, case and surrounding space insensitive"""
    a = (first or "").strip().lower()
    b = (second or "").strip().lower()
    if a == b:
        return 1.0
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein(a, b)) / longer


def _summary(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "email": customer.email,
        "total_appointments": customer.total_appointments or 0,
        "last_visit_at": customer.last_visit_at,
        "created_at": customer.created_at,
    }


def _suggested_order(customers: list[Customer]) -> list[Customer]:
    return sorted(
        customers,
        key=lambda c: (-(c.total_appointments or 0), c.created_at or datetime.min),
    )


def _group(field: str, value: str, customers: list[Customer]) -> dict:
    ordered = _suggested_order(customers)
    return {
        "match_field": field,
        "match_value": value,
        "customer_ids": [c.id for c in ordered],
        "customers": [_summary(c) for c in ordered],
        "suggested_primary_id": ordered[0].id,
    }


def find_duplicates(
    db: Session,
    tenant_id: str,
    fields: Optional[list[str]] = None,
    include_name_similarity: bool = False,
    threshold: float = DEFAULT_SIMILARITY,
) -> dict:
    groups = []
    for field in fields or DUPLICATE_FIELDS:
        if field not in DUPLICATE_FIELDS:
            raise HTTPException(status_code=400, detail=f"Cannot match duplicates on '{field}'")
        column = getattr(Customer, field)
        values = (
            db.query(column)
            .filter(
                Customer.tenant_id == tenant_id,
                Customer.deleted_at.is_(None),
                column.isnot(None),
                column != "",
            )
            .group_by(column)
            .having(func.count(Customer.id) > 1)
            .limit(100)
            .all()
        )
        for (value,) in values:
            customers = (
                db.query(Customer)
                .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None), column == value)
                .all()
            )
            if len(customers) > 1:
                groups.append(_group(field, value, customers))

    if include_name_similarity:
        customers = (
            db.query(Customer)
            .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .order_by(Customer.name)
            .all()
        )
        processed = set()
        for i, customer in enumerate(customers):
            if customer.id in processed:
                continue
            similar = [customer]
            for other in customers[i + 1 :]:
                if other.id not in processed and name_similarity(customer.name, other.name) >= threshold:
                    similar.append(other)
                    processed.add(other.id)
            if len(similar) > 1:
                processed.add(customer.id)
                groups.append(_group("name", customer.name, similar))

    unique = {}
    for group in groups:
        unique.setdefault(tuple(sorted(group["customer_ids"])), group)
    groups = list(unique.values())
    return {
        "total_groups": len(groups),
        "total_duplicates": sum(len(g["customer_ids"]) for g in groups),
        "groups": groups,
    }


def merge_customers(
    db: Session,
    tenant_id: str,
    primary_id: str,
    merge_ids: list[str],
    strategy: str = "merge",
    user_id: Optional[str] = None,
) -> dict:
    """Fold `merge_ids` into `primary_id` and soft delete them"""
    primary = (
        db.query(Customer)
        .filter(Customer.id == primary_id, Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
        .first()
    )
    if not primary:
        raise HTTPException(status_code=404, detail="Primary customer not found")
    if primary_id in merge_ids:
        raise HTTPException(status_code=400, detail="Primary customer cannot be in the merge list")
    if strategy not in MERGE_STRATEGIES:
        raise HTTPException(status_code=400, detail=f"strategy must be one of: {', '.join(MERGE_STRATEGIES)}")

    merged = (
        db.query(Customer)
        .filter(Customer.id.in_(merge_ids), Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
        .all()
    )
    if len(merged) != len(set(merge_ids)):
        found = {c.id for c in merged}
        missing = [cid for cid in merge_ids if cid not in found]
        raise HTTPException(status_code=404, detail=f"Customers not found: {', '.join(missing)}")

    logger.info(f"🔀 Merging {len(merged)} customer(s) into {primary.id}")
    ids = [c.id for c in merged]
    transferred = {
        "appointments": db.query(Appointment)
        .filter(Appointment.customer_id.in_(ids))
        .update({Appointment.customer_id: primary.id}, synchronize_session=False),
        "loyalty_transactions": db.query(LoyaltyTransaction)
        .filter(LoyaltyTransaction.customer_id.in_(ids))
        .update({LoyaltyTransaction.customer_id: primary.id}, synchronize_session=False),
        "notes": db.query(CustomerNote)
        .filter(CustomerNote.customer_id.in_(ids))
        .update({CustomerNote.customer_id: primary.id}, synchronize_session=False),
        "coupon_redemptions": db.query(CouponRedemption)
        .filter(CouponRedemption.customer_id.in_(ids))
        .update({CouponRedemption.customer_id: primary.id}, synchronize_session=False),
        "segment_memberships": 0,
    }

    primary_segments = {
        sid for (sid,) in db.query(SegmentMember.segment_id).filter(SegmentMember.customer_id == primary.id)
    }
    for membership in db.query(SegmentMember).filter(SegmentMember.customer_id.in_(ids)).all():
        if membership.segment_id in primary_segments:
            db.delete(membership)
            continue
        membership.customer_id = primary.id
        primary_segments.add(membership.segment_id)
        transferred["segment_memberships"] += 1

    tags = list(primary.tags or [])
    now = datetime.utcnow()
    for customer in merged:
        primary.loyalty_points = (primary.loyalty_points or 0) + (customer.loyalty_points or 0)
        primary.lifetime_points = (primary.lifetime_points or 0) + (customer.lifetime_points or 0)
        for tag in customer.tags or []:
            if tag not in tags:
                tags.append(tag)
        if strategy == "merge":
            for field in FILLABLE_FIELDS:
                if not getattr(primary, field) and getattr(customer, field):
                    setattr(primary, field, getattr(customer, field))
        customer.merged_into_id = primary.id
        customer.deleted_at = now
        customer.deletion_reason = f"Merged into {primary.id}"
        customer.loyalty_points = 0
    primary.tags = tags

    db.add(
        CustomerMergeLog(
            tenant_id=tenant_id,
            primary_customer_id=primary.id,
            merged_customer_ids=ids,
            strategy=strategy,
            transferred=transferred,
            merged_by=user_id,
        )
    )
    db.flush()
    recalculate_metrics(db, primary, commit=False)
    db.commit()
    db.refresh(primary)
    logger.info(f"✅ Merge complete for {primary.id}: {transferred}")
    return {"primary_customer_id": primary.id, "merged_count": len(merged), "transferred": transferred}
