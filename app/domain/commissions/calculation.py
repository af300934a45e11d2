"""
Commission calculation.

Resolution order for a single amount: professional service override,
professional product override, the best applicable rule, the professional's
default percentage. Anything else earns nothing.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_commission import CommissionEntry, CommissionRule, ProfessionalCommissionConfig
from ...shared.dates import day_of_week

logger = logging.getLogger(__name__)

COMMISSION_TYPES = ("PERCENTAGE", "FIXED", "TIERED", "MIXED")
ENTRY_STATUSES = ("PENDING", "APPROVED", "PAID", "CANCELLED", "ON_HOLD")
TRIGGERS = (
    "SERVICE_COMPLETED",
    "PRODUCT_SOLD",
    "APPOINTMENT_COMPLETED",
    "CUSTOMER_REFERRED",
    "GOAL_ACHIEVED",
)
SOURCE_TRIGGERS = {
    "APPOINTMENT": "APPOINTMENT_COMPLETED",
    "SALE": "PRODUCT_SOLD",
    "REFERRAL": "CUSTOMER_REFERRED",
    "BONUS": "GOAL_ACHIEVED",
}


def calculate_tiered(base_amount: float, tiers: list[dict]) -> tuple[float, list[dict]]:
    """Walk tiers by min_value, charging each band of the base at its own rate"""
    total = 0.0
    breakdown = []
    remaining = base_amount
    for tier in sorted(tiers or [], key=lambda t: t.get("min_value") or 0):
        minimum = tier.get("min_value") or 0
        maximum = tier.get("max_value")
        if base_amount < minimum:
            continue
        band = (maximum if maximum is not None else float("inf")) - minimum
        in_tier = min(remaining, band)
        if tier.get("percentage") is not None:
            value = in_tier * tier["percentage"] / 100
            label = f"{tier['percentage']}% of {in_tier:.2f}"
        else:
            value = tier.get("fixed_amount") or 0
            label = f"Fixed {value:.2f}"
        total += value
        breakdown.append({"description": f"Tier from {minimum}: {label}", "value": round(value, 2)})
        remaining -= in_tier
        if remaining <= 0:
            break
    return round(total, 2), breakdown


def apply_rule(rule: CommissionRule, base_amount: float) -> dict:
    result = {
        "amount": 0.0,
        "rule_id": rule.id,
        "type": rule.type,
        "percentage": rule.percentage,
        "fixed_amount": rule.fixed_amount,
        "breakdown": [],
    }
    if rule.type == "PERCENTAGE":
        amount = base_amount * (rule.percentage or 0) / 100
        result["breakdown"].append({"description": f"{rule.percentage}% of {base_amount:.2f}", "value": round(amount, 2)})
    elif rule.type == "FIXED":
        amount = rule.fixed_amount or 0
        result["breakdown"].append({"description": "Fixed amount", "value": round(amount, 2)})
    elif rule.type == "TIERED":
        amount, result["breakdown"] = calculate_tiered(base_amount, rule.tiers)
    else:
        fixed = rule.fixed_amount or 0
        variable = base_amount * (rule.percentage or 0) / 100
        amount = fixed + variable
        result["breakdown"] = [
            {"description": "Fixed amount", "value": round(fixed, 2)},
            {"description": f"{rule.percentage}% of {base_amount:.2f}", "value": round(variable, 2)},
        ]
    result["amount"] = round(amount, 2)
    return result


def _override_result(override: dict, base_amount: float, label: str) -> dict:
    kind = (override.get("type") or "PERCENTAGE").upper()
    value = float(override.get("value") or 0)
    if kind == "FIXED":
        amount = value
        description = f"{label} override: fixed"
    else:
        amount = base_amount * value / 100
        description = f"{label} override: {value}%"
    return {
        "amount": round(amount, 2),
        "rule_id": None,
        "type": kind,
        "percentage": value if kind != "FIXED" else None,
        "fixed_amount": value if kind == "FIXED" else None,
        "breakdown": [{"description": description, "value": round(amount, 2)}],
    }


def conditions_match(
    conditions: Optional[dict],
    professional_id: str,
    base_amount: float,
    service_id: Optional[str] = None,
    product_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    if not conditions:
        return True
    now = now or datetime.utcnow()
    if conditions.get("service_ids") and service_id not in conditions["service_ids"]:
        return False
    if conditions.get("product_ids") and product_id not in conditions["product_ids"]:
        return False
    if conditions.get("professional_ids") and professional_id not in conditions["professional_ids"]:
        return False
    if conditions.get("min_transaction_value") is not None and base_amount < conditions["min_transaction_value"]:
        return False
    if conditions.get("max_transaction_value") is not None and base_amount > conditions["max_transaction_value"]:
        return False
    if conditions.get("days_of_week") and day_of_week(now) not in conditions["days_of_week"]:
        return False
    return True


def find_applicable_rule(
    db: Session,
    tenant_id: str,
    trigger: str,
    professional_id: str,
    base_amount: float,
    service_id: Optional[str] = None,
    product_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[CommissionRule]:
    now = now or datetime.utcnow()
    rules = (
        db.query(CommissionRule)
        .filter(
            CommissionRule.tenant_id == tenant_id,
            CommissionRule.is_active.is_(True),
            CommissionRule.trigger == trigger,
            CommissionRule.valid_from <= now,
        )
        .order_by(CommissionRule.priority.desc())
        .all()
    )
    for rule in rules:
        if rule.valid_to is not None and rule.valid_to < now:
            continue
        if conditions_match(rule.conditions, professional_id, base_amount, service_id, product_id, now):
            return rule
    return None


def calculate_commission(
    db: Session,
    tenant_id: str,
    professional_id: str,
    base_amount: float,
    source_type: str,
    service_id: Optional[str] = None,
    product_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    config = (
        db.query(ProfessionalCommissionConfig)
        .filter(
            ProfessionalCommissionConfig.tenant_id == tenant_id,
            ProfessionalCommissionConfig.professional_id == professional_id,
            ProfessionalCommissionConfig.is_active.is_(True),
        )
        .first()
    )
    if config:
        if service_id and service_id in (config.service_overrides or {}):
            return _override_result(config.service_overrides[service_id], base_amount, "Service")
        if product_id and product_id in (config.product_overrides or {}):
            return _override_result(config.product_overrides[product_id], base_amount, "Product")

    trigger = SOURCE_TRIGGERS.get(source_type, "SERVICE_COMPLETED")
    rule = find_applicable_rule(db, tenant_id, trigger, professional_id, base_amount, service_id, product_id, now)
    if rule:
        return apply_rule(rule, base_amount)

    if config and config.default_percentage is not None:
        amount = round(base_amount * config.default_percentage / 100, 2)
        return {
            "amount": amount,
            "rule_id": None,
            "type": "PERCENTAGE",
            "percentage": config.default_percentage,
            "fixed_amount": None,
            "breakdown": [{"description": f"Default {config.default_percentage}%", "value": amount}],
        }

    return {
        "amount": 0.0,
        "rule_id": None,
        "type": "PERCENTAGE",
        "percentage": None,
        "fixed_amount": None,
        "breakdown": [{"description": "No applicable rule", "value": 0}],
    }


def build_entry(
    db: Session,
    tenant_id: str,
    professional_id: str,
    base_amount: float,
    source_type: str,
    source_id: Optional[str] = None,
    service_id: Optional[str] = None,
    product_id: Optional[str] = None,
    description: Optional[str] = None,
    reference_date: Optional[datetime] = None,
) -> CommissionEntry:
    """New PENDING entry, added to the session but not committed"""
    result = calculate_commission(db, tenant_id, professional_id, base_amount, source_type, service_id, product_id)
    entry = CommissionEntry(
        tenant_id=tenant_id,
        professional_id=professional_id,
        rule_id=result["rule_id"],
        source_type=source_type,
        source_id=source_id,
        service_id=service_id,
        product_id=product_id,
        description=description,
        base_amount=round(base_amount, 2),
        commission_type=result["type"],
        percentage=result["percentage"],
        calculated_amount=result["amount"],
        final_amount=result["amount"],
        breakdown=result["breakdown"],
        status="PENDING",
        reference_date=reference_date or datetime.utcnow(),
    )
    db.add(entry)
    return entry


def create_entries_for_appointment(db: Session, appointment) -> list[CommissionEntry]:
    """One entry per service line of a completed appointment. Caller commits"""
    entries = []
    for line in appointment.services:
        entries.append(
            build_entry(
                db,
                appointment.tenant_id,
                appointment.professional_id,
                line.line_total,
                "APPOINTMENT",
                source_id=appointment.id,
                service_id=line.service_id,
                description=f"{line.service_name or 'Service'} x{line.quantity}",
                reference_date=appointment.completed_at or datetime.utcnow(),
            )
        )
    if entries:
        logger.info(f"💰 {len(entries)} commission entr(ies) for appointment {appointment.id}")
    return entries
