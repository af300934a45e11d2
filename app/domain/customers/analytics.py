"""Customer analytics and cached metrics"""

import logging
from collections import Counter
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models_appointment import Appointment, AppointmentService
from ...models_customer import Customer, CustomerNote
from ...models_marketing import LoyaltyTransaction
from ...shared.dates import end_of_month, start_of_month

logger = logging.getLogger(__name__)

TREND_THRESHOLD = 10
MONTHS_OF_HISTORY = 12


def spending_trend(monthly: list[dict]) -> str:
    """Compare the last three monthly buckets with the three before them"""
    if len(monthly) < 3:
        return "STABLE"
    recent = sum(m["amount"] for m in monthly[-3:]) / 3
    previous = sum(m["amount"] for m in monthly[-6:-3]) / 3
    if previous == 0:
        return "UP" if recent > 0 else "STABLE"
    change = (recent - previous) / previous * 100
    if change > TREND_THRESHOLD:
        return "UP"
    if change < -TREND_THRESHOLD:
        return "DOWN"
    return "STABLE"


def visit_frequency(visits: list[datetime]) -> int:
    """Mean whole days between consecutive visits, 0 with fewer than two"""
    if len(visits) < 2:
        return 0
    visits = sorted(visits)
    gaps = [(visits[i] - visits[i - 1]).days for i in range(1, len(visits))]
    return round(sum(gaps) / len(gaps))


def recalculate_metrics(db: Session, customer: Customer, commit: bool = True) -> Customer:
    counts = dict(
        db.query(Appointment.status, func.count(Appointment.id))
        .filter(Appointment.customer_id == customer.id)
        .group_by(Appointment.status)
        .all()
    )
    completed = (
        db.query(Appointment.final_price, Appointment.end_time)
        .filter(Appointment.customer_id == customer.id, Appointment.status == "COMPLETED")
        .all()
    )
    spent = round(sum(price or 0 for price, _ in completed), 2)
    visits = [end for _, end in completed]

    customer.total_appointments = sum(counts.values())
    customer.completed_appointments = counts.get("COMPLETED", 0)
    customer.cancelled_appointments = counts.get("CANCELLED", 0)
    customer.no_show_count = counts.get("NO_SHOW", 0)
    customer.total_spent = spent
    customer.average_ticket = round(spent / len(completed), 2) if completed else 0
    customer.visit_frequency = visit_frequency(visits)
    customer.last_visit_at = max(visits) if visits else None
    customer.metrics_updated_at = datetime.utcnow()
    if commit:
        db.commit()
    return customer


def monthly_spending(db: Session, customer_id: str, now: Optional[datetime] = None) -> list[dict]:
    now = now or datetime.utcnow()
    first_month = start_of_month(now) - relativedelta(months=MONTHS_OF_HISTORY - 1)
    rows = (
        db.query(Appointment.final_price, Appointment.end_time)
        .filter(
            Appointment.customer_id == customer_id,
            Appointment.status == "COMPLETED",
            Appointment.end_time >= first_month,
            Appointment.end_time <= end_of_month(now),
        )
        .all()
    )
    buckets = {}
    for i in range(MONTHS_OF_HISTORY):
        month = first_month + relativedelta(months=i)
        buckets[month.strftime("%Y-%m")] = {"month": month.strftime("%Y-%m"), "amount": 0.0, "appointment_count": 0}
    for price, end in rows:
        bucket = buckets.get(end.strftime("%Y-%m"))
        if bucket:
            bucket["amount"] = round(bucket["amount"] + (price or 0), 2)
            bucket["appointment_count"] += 1
    return list(buckets.values())


def financial_analytics(db: Session, customer: Customer, now: Optional[datetime] = None) -> dict:
    total, count = (
        db.query(func.coalesce(func.sum(Appointment.final_price), 0), func.count(Appointment.id))
        .filter(Appointment.customer_id == customer.id, Appointment.status == "COMPLETED")
        .one()
    )
    last = (
        db.query(Appointment)
        .filter(Appointment.customer_id == customer.id, Appointment.status == "COMPLETED")
        .order_by(Appointment.end_time.desc())
        .first()
    )
    monthly = monthly_spending(db, customer.id, now)
    total = float(total or 0)
    return {
        "total_spent": round(total, 2),
        "average_ticket": round(total / count, 2) if count else 0,
        "last_purchase_value": last.final_price if last else 0,
        "last_purchase_date": last.end_time if last else None,
        "spending_trend": spending_trend(monthly),
        "monthly_spending": monthly,
    }


def engagement_analytics(db: Session, customer: Customer, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    counts = dict(
        db.query(Appointment.status, func.count(Appointment.id))
        .filter(Appointment.customer_id == customer.id)
        .group_by(Appointment.status)
        .all()
    )
    total = sum(counts.values())
    cancelled = counts.get("CANCELLED", 0)
    no_show = counts.get("NO_SHOW", 0)
    first = (
        db.query(func.min(Appointment.scheduled_at)).filter(Appointment.customer_id == customer.id).scalar()
    )
    upcoming = (
        db.query(Appointment)
        .filter(
            Appointment.customer_id == customer.id,
            Appointment.status.in_(("PENDING", "CONFIRMED")),
            Appointment.scheduled_at >= now,
        )
        .count()
    )
    return {
        "appointment_history": {
            "total": total,
            "completed": counts.get("COMPLETED", 0),
            "cancelled": cancelled,
            "no_show": no_show,
            "upcoming": upcoming,
            "first_appointment": first,
            "last_appointment": customer.last_visit_at,
        },
        "cancellation_rate": round(cancelled / total * 100, 2) if total else 0,
        "no_show_rate": round(no_show / total * 100, 2) if total else 0,
    }


def behavior_analytics(db: Session, customer: Customer) -> dict:
    """Favorite services, professional and weekdays over completed appointments"""
    appointments = (
        db.query(Appointment)
        .filter(Appointment.customer_id == customer.id, Appointment.status == "COMPLETED")
        .all()
    )
    services = Counter()
    for line in (
        db.query(AppointmentService)
        .join(Appointment, Appointment.id == AppointmentService.appointment_id)
        .filter(Appointment.customer_id == customer.id, Appointment.status == "COMPLETED")
    ):
        services[(line.service_id, line.service_name)] += line.quantity or 1
    professionals = Counter(a.professional_id for a in appointments)
    weekdays = Counter((a.scheduled_at.weekday() + 1) % 7 for a in appointments)
    hours = Counter(a.scheduled_at.hour for a in appointments)

    return {
        "favorite_services": [
            {"service_id": sid, "name": name, "count": n} for (sid, name), n in services.most_common(5)
        ],
        "favorite_professional_id": professionals.most_common(1)[0][0] if professionals else None,
        "preferred_days": [{"day_of_week": d, "count": n} for d, n in weekdays.most_common()],
        "preferred_hours": [{"hour": h, "count": n} for h, n in hours.most_common(3)],
    }


def timeline(db: Session, customer: Customer, limit: int = 20) -> list[dict]:
    """Appointments, notes and loyalty movements merged newest first"""
    items = []
    for appointment in (
        db.query(Appointment)
        .filter(Appointment.customer_id == customer.id)
        .order_by(Appointment.created_at.desc())
        .limit(limit)
    ):
        items.append(
            {
                "id": appointment.id,
                "type": "APPOINTMENT",
                "title": f"Appointment {appointment.status.lower()}",
                "description": ", ".join(s.service_name or "" for s in appointment.services),
                "metadata": {"status": appointment.status, "scheduled_at": appointment.scheduled_at},
                "created_at": appointment.created_at,
            }
        )
    for note in (
        db.query(CustomerNote)
        .filter(CustomerNote.customer_id == customer.id)
        .order_by(CustomerNote.created_at.desc())
        .limit(limit)
    ):
        items.append(
            {
                "id": note.id,
                "type": "NOTE",
                "title": "Note added",
                "description": note.content,
                "metadata": {"is_private": note.is_private, "author_id": note.author_id},
                "created_at": note.created_at,
            }
        )
    for tx in (
        db.query(LoyaltyTransaction)
        .filter(LoyaltyTransaction.customer_id == customer.id)
        .order_by(LoyaltyTransaction.created_at.desc())
        .limit(limit)
    ):
        items.append(
            {
                "id": tx.id,
                "type": "POINTS",
                "title": "Points earned" if tx.points >= 0 else "Points redeemed",
                "description": tx.description,
                "metadata": {"points": tx.points, "balance_after": tx.balance_after},
                "created_at": tx.created_at,
            }
        )
    items.sort(key=lambda item: item["created_at"] or datetime.min, reverse=True)
    return items[:limit]
