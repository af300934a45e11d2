"""
Scheduled appointment maintenance.

Each job commits its own work, re-raises on failure so the worker retries,
and returns a summary dict for the job log.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models_appointment import Appointment
from . import reminders

logger = logging.getLogger(__name__)

AUTO_CANCEL_AFTER_MINUTES = 1440
NO_SHOW_AFTER_MINUTES = 30
ARCHIVE_AFTER_DAYS = 365
FINISHED_STATUSES = ("COMPLETED", "CANCELLED", "NO_SHOW")


def _scoped(query, tenant_id: Optional[str]):
    if tenant_id:
        query = query.filter(Appointment.tenant_id == tenant_id)
    return query


def auto_cancel_unconfirmed(
    db: Session,
    tenant_id: Optional[str] = None,
    minutes: int = AUTO_CANCEL_AFTER_MINUTES,
    now: Optional[datetime] = None,
) -> dict:
    """Cancel PENDING appointments nobody confirmed in time"""
    now = now or datetime.utcnow()
    try:
        stale = _scoped(
            db.query(Appointment).filter(
                Appointment.status == "PENDING",
                Appointment.created_at < now - timedelta(minutes=minutes),
            ),
            tenant_id,
        ).all()
        for appointment in stale:
            appointment.status = "CANCELLED"
            appointment.cancelled_at = now
            appointment.cancellation_reason = "AUTO_CANCELLED"
            appointment.cancellation_description = f"Not confirmed within {minutes} minutes"
            appointment.hours_before_scheduled = round((appointment.scheduled_at - now).total_seconds() / 3600, 2)
            reminders.cancel_reminders(db, appointment.id)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Auto-cancel job failed: {e}")
        raise

    if stale:
        logger.info(f"🚫 Auto-cancelled {len(stale)} unconfirmed appointment(s)")
    return {"cancelled": len(stale)}


def auto_mark_no_show(
    db: Session,
    tenant_id: Optional[str] = None,
    minutes: int = NO_SHOW_AFTER_MINUTES,
    now: Optional[datetime] = None,
) -> dict:
    now = now or datetime.utcnow()
    try:
        missed = _scoped(
            db.query(Appointment).filter(
                Appointment.status.in_(("CONFIRMED", "WAITING")),
                Appointment.scheduled_at < now - timedelta(minutes=minutes),
            ),
            tenant_id,
        ).all()
        for appointment in missed:
            appointment.status = "NO_SHOW"
            appointment.no_show_at = now
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ No-show job failed: {e}")
        raise

    if missed:
        logger.info(f"👻 Marked {len(missed)} appointment(s) as no-show")
    return {"marked": len(missed)}


def cleanup_old_appointments(
    db: Session,
    tenant_id: Optional[str] = None,
    days: int = ARCHIVE_AFTER_DAYS,
    now: Optional[datetime] = None,
) -> dict:
    """Archive finished appointments older than `days`"""
    now = now or datetime.utcnow()
    try:
        archived = (
            _scoped(
                db.query(Appointment).filter(
                    Appointment.status.in_(FINISHED_STATUSES),
                    Appointment.scheduled_at < now - timedelta(days=days),
                    Appointment.archived_at.is_(None),
                ),
                tenant_id,
            ).update({Appointment.archived_at: now}, synchronize_session=False)
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Archive job failed: {e}")
        raise

    logger.info(f"🗄️ Archived {archived} appointment(s) older than {days} days")
    return {"archived": archived}
