"""Appointment reminders, queued as scheduled REMINDER notifications"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Tenant
from ...models_appointment import Appointment
from ...models_notification import Notification
from ..notifications.service import NotificationService
from ..tenants.service import get_booking_settings

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "APPOINTMENT_REMINDER"
REMINDER_LABELS = ("FIRST", "SECOND", "THIRD")
DEFAULT_CHANNELS = (("EMAIL", "WHATSAPP"), ("SMS", "WHATSAPP"))
TEMPLATE_CODE = "appointment_reminder"


def reminder_plan(tenant: Tenant) -> list[dict]:
    """[{label, hours_before, channels}] from tenant settings"""
    settings = get_booking_settings(tenant)["reminders"]
    if not settings.get("enabled", True):
        return []
    plan = []
    for index, hours in enumerate(sorted(settings.get("hours_before") or [], reverse=True)):
        if settings.get("channels"):
            channels = tuple(c.upper() for c in settings["channels"])
        else:
            channels = DEFAULT_CHANNELS[min(index, len(DEFAULT_CHANNELS) - 1)]
        label = REMINDER_LABELS[index] if index < len(REMINDER_LABELS) else f"REMINDER_{index + 1}"
        plan.append({"label": label, "hours_before": hours, "channels": channels})
    return plan


def _message(appointment: Appointment, tenant: Tenant) -> tuple[str, str]:
    when = appointment.scheduled_at.strftime("%d/%m/%Y %H:%M")
    services = ", ".join(s.service_name or "" for s in appointment.services) or "your appointment"
    subject = f"Reminder: {services} at {tenant.name}"
    body = (
        f"Hi {appointment.customer.name}, this is a reminder of {services} with "
        f"{appointment.professional.name} on {when} at {tenant.name}."
    )
    return subject, body


def _variables(appointment: Appointment, tenant: Tenant) -> dict:
    return {
        "customer_name": appointment.customer.name,
        "professional_name": appointment.professional.name,
        "business_name": tenant.name,
        "scheduled_at": appointment.scheduled_at,
        "services": [s.service_name for s in appointment.services],
        "total": appointment.final_price,
    }


def schedule_reminders(
    db: Session, appointment: Appointment, tenant: Tenant, now: Optional[datetime] = None
) -> list[Notification]:
    """One notification per future reminder and channel. Caller commits"""
    now = now or datetime.utcnow()
    notifications = NotificationService(db)
    subject, body = _message(appointment, tenant)
    has_template = notifications.get_template_by_code(tenant.id, TEMPLATE_CODE) is not None
    queued = []
    for reminder in reminder_plan(tenant):
        send_at = appointment.scheduled_at - timedelta(hours=reminder["hours_before"])
        if send_at <= now:
            continue
        for channel in reminder["channels"]:
            address = notifications.resolve_address(tenant.id, "CUSTOMER", appointment.customer_id, channel)
            if not address:
                continue
            queued.append(
                notifications.send(
                    tenant_id=tenant.id,
                    channel=channel,
                    subject=None if has_template else subject,
                    body=None if has_template else body,
                    template_code=TEMPLATE_CODE if has_template else None,
                    variables=_variables(appointment, tenant),
                    recipient_type="CUSTOMER",
                    recipient_id=appointment.customer_id,
                    recipient_address=address,
                    category="REMINDER",
                    scheduled_at=send_at,
                    data={"appointment_id": appointment.id, "reminder": reminder["label"]},
                    reference_type=REFERENCE_TYPE,
                    reference_id=appointment.id,
                    commit=False,
                )
            )
    if queued:
        logger.info(f"⏰ Scheduled {len(queued)} reminder(s) for appointment {appointment.id}")
    return queued


def pending_reminders(db: Session, appointment_id: str) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(
            Notification.reference_type == REFERENCE_TYPE,
            Notification.reference_id == appointment_id,
            Notification.status == "PENDING",
        )
        .all()
    )


def cancel_reminders(db: Session, appointment_id: str) -> int:
    now = datetime.utcnow()
    reminders = pending_reminders(db, appointment_id)
    for notification in reminders:
        notification.status = "CANCELLED"
        notification.cancelled_at = now
        notification.error_message = "Appointment cancelled or rescheduled"
    return len(reminders)


def reschedule_reminders(db: Session, appointment: Appointment, tenant: Tenant) -> list[Notification]:
    cancel_reminders(db, appointment.id)
    return schedule_reminders(db, appointment, tenant)
