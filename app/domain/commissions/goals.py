"""Commission goals: progress measurement and bonus on achievement"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_appointment import Appointment, AppointmentService
from ...models_commission import CommissionEntry, CommissionGoal
from ...models_customer import Customer
from ...models_inventory import StockMovement

logger = logging.getLogger(__name__)

GOAL_TYPES = (
    "REVENUE",
    "APPOINTMENTS",
    "NEW_CUSTOMERS",
    "PRODUCT_SALES",
    "SERVICE_COUNT",
    "CUSTOMER_RETENTION",
)
GOAL_PERIODS = ("DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "YEARLY")


def build_progress(
    current: float,
    target: float,
    start: datetime,
    end: datetime,
    now: datetime,
    previous: Optional[float] = None,
) -> dict:
    """Percentage, achievement, projection and trend for a measured value"""
    days_elapsed = (now - start).days
    total_days = (end - start).days
    if days_elapsed > 0 and total_days > 0:
        projected = current / days_elapsed * total_days
    else:
        projected = current

    trend = "STABLE"
    if previous is not None:
        if current > previous * 1.05:
            trend = "UP"
        elif current < previous * 0.95:
            trend = "DOWN"

    return {
        "current": round(current, 2),
        "target": target,
        "percentage": round(current / target * 100, 2) if target > 0 else 0,
        "is_achieved": current >= target,
        "remaining_days": max(0, (end - now).days),
        "projected_value": round(projected, 2),
        "trend": trend,
    }


def _completed(db: Session, tenant_id: str, professional_id: Optional[str], start: datetime, end: datetime):
    query = db.query(Appointment).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.status == "COMPLETED",
        Appointment.completed_at >= start,
        Appointment.completed_at <= end,
    )
    if professional_id:
        query = query.filter(Appointment.professional_id == professional_id)
    return query


def measure(
    db: Session, tenant_id: str, goal_type: str, professional_id: Optional[str], start: datetime, end: datetime
) -> float:
    if goal_type == "REVENUE":
        total = _completed(db, tenant_id, professional_id, start, end).with_entities(
            func.coalesce(func.sum(Appointment.final_price), 0)
        ).scalar()
        return float(total or 0)

    if goal_type == "APPOINTMENTS":
        return float(_completed(db, tenant_id, professional_id, start, end).count())

    if goal_type == "SERVICE_COUNT":
        ids = [a.id for a in _completed(db, tenant_id, professional_id, start, end).with_entities(Appointment.id)]
        if not ids:
            return 0.0
        total = (
            db.query(func.coalesce(func.sum(AppointmentService.quantity), 0))
            .filter(AppointmentService.appointment_id.in_(ids))
            .scalar()
        )
        return float(total or 0)

    if goal_type == "NEW_CUSTOMERS":
        if not professional_id:
            return float(
                db.query(Customer)
                .filter(Customer.tenant_id == tenant_id, Customer.created_at >= start, Customer.created_at <= end)
                .count()
            )
        served = {a.customer_id for a in _completed(db, tenant_id, professional_id, start, end)}
        returning = {
            row.customer_id
            for row in db.query(Appointment.customer_id).filter(
                Appointment.tenant_id == tenant_id,
                Appointment.status == "COMPLETED",
                Appointment.completed_at < start,
                Appointment.customer_id.in_(served or [""]),
            )
        }
        return float(len(served - returning))

    if goal_type == "CUSTOMER_RETENTION":
        served = {a.customer_id for a in _completed(db, tenant_id, professional_id, start, end)}
        if not served:
            return 0.0
        returning = {
            row.customer_id
            for row in db.query(Appointment.customer_id).filter(
                Appointment.tenant_id == tenant_id,
                Appointment.status == "COMPLETED",
                Appointment.completed_at < start,
                Appointment.customer_id.in_(served),
            )
        }
        return round(len(returning) / len(served) * 100, 2)

    if goal_type == "PRODUCT_SALES":
        total = (
            db.query(func.coalesce(func.sum(StockMovement.quantity), 0))
            .filter(
                StockMovement.tenant_id == tenant_id,
                StockMovement.reason == "SALE",
                StockMovement.created_at >= start,
                StockMovement.created_at <= end,
            )
            .scalar()
        )
        return abs(float(total or 0))

    return 0.0


def goal_progress(db: Session, goal: CommissionGoal, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    until = min(now, goal.end_date)
    current = measure(db, goal.tenant_id, goal.type, goal.professional_id, goal.start_date, until)
    length = goal.end_date - goal.start_date
    previous = measure(
        db, goal.tenant_id, goal.type, goal.professional_id, goal.start_date - length, goal.start_date
    )
    progress = build_progress(current, goal.target_value, goal.start_date, goal.end_date, now, previous)
    return {"goal_id": goal.id, "name": goal.name, "type": goal.type, **progress}


def goal_bonus(goal: CommissionGoal, current: float) -> float:
    if goal.bonus_amount:
        return round(goal.bonus_amount, 2)
    if goal.bonus_percentage:
        return round(current * goal.bonus_percentage / 100, 2)
    return 0.0


def check_goal_achievement(db: Session, goal: CommissionGoal, now: Optional[datetime] = None) -> dict:
    """Mark the goal achieved and pay its bonus once. Commits"""
    progress = goal_progress(db, goal, now)
    goal.current_value = progress["current"]
    if not progress["is_achieved"]:
        db.commit()
        return {"is_achieved": False, "bonus": 0.0, "progress": progress}

    bonus = goal_bonus(goal, progress["current"])
    if goal.achieved_at is None:
        goal.achieved_at = now or datetime.utcnow()
        if bonus > 0 and goal.professional_id and not goal.bonus_entry_id:
            entry = CommissionEntry(
                tenant_id=goal.tenant_id,
                professional_id=goal.professional_id,
                source_type="BONUS",
                source_id=goal.id,
                description=f"Goal achieved: {goal.name}",
                base_amount=progress["current"],
                commission_type="FIXED",
                calculated_amount=bonus,
                final_amount=bonus,
                breakdown=[{"description": f"Bonus for goal {goal.name}", "value": bonus}],
                status="PENDING",
                reference_date=goal.achieved_at,
            )
            db.add(entry)
            db.flush()
            goal.bonus_entry_id = entry.id
        logger.info(f"🏆 Goal {goal.id} achieved, bonus {bonus:.2f}")
    db.commit()
    return {"is_achieved": True, "bonus": bonus, "progress": progress}


def check_active_goals(db: Session, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Cron entry point: evaluate every running goal"""
    now = now or datetime.utcnow()
    query = db.query(CommissionGoal).filter(
        CommissionGoal.is_active.is_(True),
        CommissionGoal.achieved_at.is_(None),
        CommissionGoal.start_date <= now,
        CommissionGoal.end_date >= now,
    )
    if tenant_id:
        query = query.filter(CommissionGoal.tenant_id == tenant_id)
    achieved = 0
    try:
        for goal in query.all():
            if check_goal_achievement(db, goal, now)["is_achieved"]:
                achieved += 1
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Goal check failed: {e}")
        raise
    return {"achieved": achieved}
