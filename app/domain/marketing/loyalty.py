"""Loyalty program: points balance, tiers and transactions"""

import logging
import math
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_customer import Customer
from ...models_marketing import LoyaltyProgram, LoyaltyTransaction

logger = logging.getLogger(__name__)

DEFAULT_TIERS = [
    {"name": "BRONZE", "min_points": 0, "multiplier": 1.0},
    {"name": "SILVER", "min_points": 1000, "multiplier": 1.25},
    {"name": "GOLD", "min_points": 5000, "multiplier": 1.5},
    {"name": "DIAMOND", "min_points": 15000, "multiplier": 2.0},
]


def tier_for_points(points: int, tiers: Optional[list[dict]] = None) -> dict:
    """Highest tier whose min_points the balance reaches"""
    tiers = sorted(tiers or DEFAULT_TIERS, key=lambda t: t["min_points"], reverse=True)
    for tier in tiers:
        if points >= tier["min_points"]:
            return tier
    return tiers[-1]


def points_for_purchase(amount: float, program: LoyaltyProgram, tier_name: Optional[str] = None) -> int:
    """floor(amount x points per currency unit x tier multiplier)"""
    tiers = program.tiers or DEFAULT_TIERS
    multiplier = 1.0
    for tier in tiers:
        if tier["name"] == tier_name:
            multiplier = tier.get("multiplier", 1.0)
            break
    return math.floor(amount * program.points_per_currency * multiplier)


def record_points(
    db: Session,
    customer: Customer,
    points: int,
    type: str,
    description: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    tiers: Optional[list[dict]] = None,
) -> LoyaltyTransaction:
    """Apply a points movement to the customer and log it. Caller commits"""
    customer.loyalty_points = (customer.loyalty_points or 0) + points
    if points > 0 and type == "EARN":
        customer.lifetime_points = (customer.lifetime_points or 0) + points
        tier = tier_for_points(customer.loyalty_points, tiers)["name"]
        if tier != customer.loyalty_tier:
            logger.info(f"🏅 Customer {customer.id} tier {customer.loyalty_tier} -> {tier}")
            customer.loyalty_tier = tier

    transaction = LoyaltyTransaction(
        tenant_id=customer.tenant_id,
        customer_id=customer.id,
        type=type,
        points=points,
        balance_after=customer.loyalty_points,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(transaction)
    return transaction


class LoyaltyService:
    def __init__(self, db: Session):
        self.db = db

    def active_program(self, tenant_id: str) -> Optional[LoyaltyProgram]:
        return (
            self.db.query(LoyaltyProgram)
            .filter(LoyaltyProgram.tenant_id == tenant_id, LoyaltyProgram.is_active.is_(True))
            .first()
        )

    def _require_program(self, tenant_id: str) -> LoyaltyProgram:
        program = self.active_program(tenant_id)
        if not program:
            raise HTTPException(status_code=404, detail="No active loyalty program")
        return program

    def _customer(self, tenant_id: str, customer_id: str) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def create_program(self, tenant_id: str, data) -> LoyaltyProgram:
        previous = self.active_program(tenant_id)
        if previous:
            previous.is_active = False
        values = data.model_dump()
        values["tiers"] = [t.model_dump() for t in data.tiers] if data.tiers else DEFAULT_TIERS
        program = LoyaltyProgram(tenant_id=tenant_id, is_active=True, **values)
        self.db.add(program)
        self.db.commit()
        self.db.refresh(program)
        logger.info(f"✅ Loyalty program {program.id} activated for tenant {tenant_id}")
        return program

    def update_program(self, tenant_id: str, program_id: str, data) -> LoyaltyProgram:
        program = (
            self.db.query(LoyaltyProgram)
            .filter(LoyaltyProgram.id == program_id, LoyaltyProgram.tenant_id == tenant_id)
            .first()
        )
        if not program:
            raise HTTPException(status_code=404, detail="Loyalty program not found")
        changes = data.model_dump(exclude_unset=True)
        if changes.get("tiers") is not None:
            changes["tiers"] = [dict(t) for t in changes["tiers"]]
        for key, value in changes.items():
            setattr(program, key, value)
        self.db.commit()
        self.db.refresh(program)
        return program

    def earn_points(self, tenant_id: str, customer_id: str, points: int, description=None,
                    reference_type=None, reference_id=None) -> LoyaltyTransaction:
        if points <= 0:
            raise HTTPException(status_code=400, detail="points must be positive")
        program = self.active_program(tenant_id)
        customer = self._customer(tenant_id, customer_id)
        transaction = record_points(
            self.db, customer, points, "EARN", description, reference_type, reference_id,
            tiers=program.tiers if program else None,
        )
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def earn_for_purchase(self, tenant_id: str, customer: Customer, amount: float,
                          reference_type: str = "APPOINTMENT", reference_id: Optional[str] = None,
                          commit: bool = True) -> Optional[LoyaltyTransaction]:
        """Award purchase points when the tenant runs a loyalty program"""
        program = self.active_program(tenant_id)
        if not program:
            return None
        points = points_for_purchase(amount, program, customer.loyalty_tier)
        if points <= 0:
            return None
        transaction = record_points(
            self.db, customer, points, "EARN", f"Purchase of {amount:.2f}",
            reference_type, reference_id, tiers=program.tiers,
        )
        if commit:
            self.db.commit()
        return transaction

    def redeem_points(self, tenant_id: str, customer_id: str, points: int, description=None) -> dict:
        program = self._require_program(tenant_id)
        customer = self._customer(tenant_id, customer_id)
        if points < program.min_points_redemption:
            raise HTTPException(
                status_code=400, detail=f"Minimum of {program.min_points_redemption} points to redeem"
            )
        if (customer.loyalty_points or 0) < points:
            raise HTTPException(status_code=400, detail="Insufficient points")
        transaction = record_points(self.db, customer, -points, "REDEEM", description)
        self.db.commit()
        self.db.refresh(transaction)
        credit = round(points * program.currency_per_point, 2)
        logger.info(f"🎁 Customer {customer.id} redeemed {points} points for {credit}")
        return {"transaction": transaction, "credit_value": credit}

    def adjust_points(self, tenant_id: str, customer_id: str, points: int, reason: Optional[str]) -> LoyaltyTransaction:
        customer = self._customer(tenant_id, customer_id)
        if (customer.loyalty_points or 0) + points < 0:
            raise HTTPException(status_code=400, detail="Adjustment would make the balance negative")
        transaction = record_points(self.db, customer, points, "ADJUST", reason)
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def transactions_query(self, tenant_id: str, customer_id: Optional[str] = None, type: Optional[str] = None):
        query = self.db.query(LoyaltyTransaction).filter(LoyaltyTransaction.tenant_id == tenant_id)
        if customer_id:
            query = query.filter(LoyaltyTransaction.customer_id == customer_id)
        if type:
            query = query.filter(LoyaltyTransaction.type == type.upper())
        return query.order_by(LoyaltyTransaction.created_at.desc())

    def customer_summary(self, tenant_id: str, customer_id: str) -> dict:
        customer = self._customer(tenant_id, customer_id)
        program = self.active_program(tenant_id)
        tiers = sorted((program.tiers if program else None) or DEFAULT_TIERS, key=lambda t: t["min_points"])
        current = tier_for_points(customer.loyalty_points or 0, tiers)
        upcoming = [t for t in tiers if t["min_points"] > (customer.loyalty_points or 0)]
        redeemed = (
            self.db.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
            .filter(LoyaltyTransaction.customer_id == customer.id, LoyaltyTransaction.type == "REDEEM")
            .scalar()
        )
        return {
            "customer_id": customer.id,
            "points": customer.loyalty_points or 0,
            "lifetime_points": customer.lifetime_points or 0,
            "redeemed_points": abs(int(redeemed or 0)),
            "tier": customer.loyalty_tier,
            "multiplier": current.get("multiplier", 1.0),
            "next_tier": upcoming[0]["name"] if upcoming else None,
            "points_to_next_tier": upcoming[0]["min_points"] - (customer.loyalty_points or 0) if upcoming else 0,
            "credit_value": round((customer.loyalty_points or 0) * program.currency_per_point, 2) if program else 0,
        }

    def stats(self, tenant_id: str) -> dict:
        issued, redeemed = (
            self.db.query(
                func.coalesce(func.sum(LoyaltyTransaction.points).filter(LoyaltyTransaction.points > 0), 0),
                func.coalesce(func.sum(LoyaltyTransaction.points).filter(LoyaltyTransaction.type == "REDEEM"), 0),
            )
            .filter(LoyaltyTransaction.tenant_id == tenant_id)
            .one()
        )
        members = (
            self.db.query(func.count(Customer.id))
            .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None), Customer.lifetime_points > 0)
            .scalar()
        )
        return {
            "members": members,
            "points_issued": int(issued or 0),
            "points_redeemed": abs(int(redeemed or 0)),
        }
