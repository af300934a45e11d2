"""Appointment service - Business logic for appointments"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ...models import Tenant, User
from ...models_appointment import Appointment, AppointmentService as AppointmentLine
from ...plan_limits import enforce_limit
from ...shared.dates import end_of_day, start_of_day
from ..catalog.pricing import calculate_price
from ..commissions.calculation import create_entries_for_appointment
from ..customers import analytics
from ..customers.segmentation import SegmentService
from ..integrations.webhooks import trigger_event
from ..marketing.loyalty import LoyaltyService
from ..tenants.service import get_booking_settings
from . import reminders
from .conflicts import ConflictChecker
from .recurrence import Occurrence, RecurrencePattern, describe, generate_occurrences, new_group_id, validate_pattern
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentResponse, AppointmentUpdate, CancelRequest, RescheduleRequest

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 30

TRANSITIONS = {
    "PENDING": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("WAITING", "CANCELLED", "NO_SHOW"),
    "WAITING": ("IN_PROGRESS", "CANCELLED", "NO_SHOW"),
    "IN_PROGRESS": ("COMPLETED",),
}
NOT_RESCHEDULABLE = ("COMPLETED", "CANCELLED", "NO_SHOW")
ACTIVE_STATUSES = ("PENDING", "CONFIRMED", "WAITING", "IN_PROGRESS")


def appointment_payload(appointment: Appointment) -> dict:
    return {
        "id": appointment.id,
        "customer_id": appointment.customer_id,
        "professional_id": appointment.professional_id,
        "scheduled_at": appointment.scheduled_at,
        "end_time": appointment.end_time,
        "status": appointment.status,
        "source": appointment.source,
        "final_price": appointment.final_price,
        "services": [
            {"service_id": s.service_id, "name": s.service_name, "quantity": s.quantity}
            for s in appointment.services
        ],
    }


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.checker = ConflictChecker(db)

    # ========================================================================
    # Lookups
    # ========================================================================

    def get_appointment(self, appointment_id: str, tenant_id: str) -> Appointment:
        appointment = self.repo.get(self.db, appointment_id, tenant_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    def list_query(self, user: User, start=None, end=None, professional_id=None, customer_id=None, status=None):
        return self.repo.list_query(self.db, user.tenant_id, start, end, professional_id, customer_id, status)

    def _transition(self, appointment: Appointment, target: str) -> None:
        if not can_transition(appointment.status, target):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot change appointment status from {appointment.status} to {target}",
            )
        appointment.status = target

    def _reject_conflicts(self, result, start: datetime, allow_override: bool) -> None:
        if result.has_conflict and (not allow_override or not result.can_override):
            raise HTTPException(
                status_code=400,
                detail=jsonable_encoder(
                    {
                        "message": "Scheduling conflict",
                        "conflicts": result.to_dict()["conflicts"],
                        "date": start,
                    }
                ),
            )

    # ========================================================================
    # Create
    # ========================================================================

    def _line_values(self, tenant_id: str, professional_id: str, data: AppointmentCreate) -> list[dict]:
        service_ids = [item.service_id for item in data.services]
        services = self.repo.get_services(self.db, tenant_id, service_ids)
        missing = [sid for sid in service_ids if sid not in services]
        if missing:
            raise HTTPException(status_code=404, detail=f"Service not found: {', '.join(missing)}")

        line_values = []
        for item in data.services:
            service = services[item.service_id]
            line_values.append(
                {
                    "service_id": service.id,
                    "service_name": service.name,
                    "quantity": item.quantity,
                    "price": calculate_price(service, None, professional_id)["final_price"],
                    "duration": service.duration or DEFAULT_DURATION,
                    "custom_price": item.custom_price,
                }
            )
        return line_values

    def _occurrences(self, data: AppointmentCreate) -> tuple[list[Occurrence], Optional[str], Optional[str]]:
        recurrence = data.recurrence
        if not recurrence or recurrence.type == "NONE":
            return [Occurrence(date=data.scheduled_at, index=0, is_last=True)], None, None

        pattern = RecurrencePattern(
            type=recurrence.type,
            interval=recurrence.interval,
            count=recurrence.count,
            end_date=recurrence.end_date,
        )
        valid, error = validate_pattern(pattern)
        if not valid:
            raise HTTPException(status_code=400, detail=error)
        return generate_occurrences(data.scheduled_at, pattern), new_group_id(), describe(pattern)

    def create_for_tenant(
        self,
        tenant: Tenant,
        data: AppointmentCreate,
        created_by: Optional[str] = None,
        allow_override: bool = True,
    ) -> tuple[list[Appointment], list[dict]]:
        """Create the appointment (every occurrence when recurring)"""
        logger.info(f"📅 Creating appointment for tenant {tenant.id} at {data.scheduled_at}")
        customer = self.repo.get_customer(self.db, tenant.id, data.customer_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        professional = self.repo.get_professional(self.db, tenant.id, data.professional_id)
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")

        line_values = self._line_values(tenant.id, professional.id, data)
        occurrences, group_id, rule = self._occurrences(data)
        enforce_limit(self.db, tenant, "appointments_per_month", increment=len(occurrences))

        duration = sum(s["duration"] * s["quantity"] for s in line_values) or DEFAULT_DURATION
        warnings: list[dict] = []
        if not data.skip_conflict_check:
            for occurrence in occurrences:
                result = self.checker.check(tenant.id, professional.id, occurrence.date, duration, customer.id)
                self._reject_conflicts(result, occurrence.date, allow_override)
                for conflict in result.to_dict()["conflicts"]:
                    warnings.append({**conflict, "date": occurrence.date})

        auto_confirm = get_booking_settings(tenant)["auto_confirm"]
        now = datetime.utcnow()
        created = []
        for occurrence in occurrences:
            lines = [AppointmentLine(tenant_id=tenant.id, **values) for values in line_values]
            total_price = round(sum(line.line_total for line in lines), 2)
            appointment = Appointment(
                tenant_id=tenant.id,
                customer=customer,
                professional=professional,
                scheduled_at=occurrence.date,
                end_time=occurrence.date + timedelta(minutes=duration),
                total_duration=duration,
                total_price=total_price,
                discount=data.discount,
                final_price=max(0.0, round(total_price - data.discount, 2)),
                status="CONFIRMED" if auto_confirm else "PENDING",
                confirmed_at=now if auto_confirm else None,
                source=data.source,
                notes=data.notes,
                internal_notes=data.internal_notes,
                created_by=created_by,
                recurrence_group_id=group_id,
                recurrence_index=occurrence.index if group_id else None,
                recurrence_rule=rule,
                services=lines,
            )
            self.db.add(appointment)
            self.db.flush()
            reminders.schedule_reminders(self.db, appointment, tenant, now)
            created.append(appointment)

        self.db.commit()
        for appointment in created:
            self.db.refresh(appointment)
            trigger_event(self.db, tenant.id, "appointment.created", appointment_payload(appointment))

        logger.info(f"✅ Created {len(created)} appointment(s) for customer {customer.id}")
        return created, warnings

    def create(self, data: AppointmentCreate, user: User) -> dict:
        appointments, conflicts = self.create_for_tenant(user.tenant, data, created_by=user.id)
        return {"appointments": appointments, "conflicts": conflicts}

    # ========================================================================
    # Update and reschedule
    # ========================================================================

    def update(self, appointment_id: str, data: AppointmentUpdate, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        changes = data.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(appointment, key, value)
        if "discount" in changes and changes["discount"] is not None:
            appointment.final_price = max(0.0, round(appointment.total_price - appointment.discount, 2))
        self.db.commit()
        self.db.refresh(appointment)
        trigger_event(self.db, user.tenant_id, "appointment.updated", appointment_payload(appointment))
        return appointment

    def reschedule(self, appointment_id: str, data: RescheduleRequest, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        if appointment.status in NOT_RESCHEDULABLE:
            raise HTTPException(
                status_code=400, detail=f"Cannot reschedule an appointment with status {appointment.status}"
            )

        professional_id = data.professional_id or appointment.professional_id
        if professional_id != appointment.professional_id:
            professional = self.repo.get_professional(self.db, user.tenant_id, professional_id)
            if not professional:
                raise HTTPException(status_code=404, detail="Professional not found")
            appointment.professional = professional

        if not data.skip_conflict_check:
            result = self.checker.check(
                user.tenant_id,
                professional_id,
                data.scheduled_at,
                appointment.total_duration,
                appointment.customer_id,
                exclude_id=appointment.id,
            )
            self._reject_conflicts(result, data.scheduled_at, allow_override=True)

        previous = appointment.scheduled_at
        appointment.scheduled_at = data.scheduled_at
        appointment.end_time = data.scheduled_at + timedelta(minutes=appointment.total_duration)
        if appointment.status == "CONFIRMED" and not get_booking_settings(user.tenant)["auto_confirm"]:
            appointment.status = "PENDING"
            appointment.confirmed_at = None

        reminders.reschedule_reminders(self.db, appointment, user.tenant)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"🔁 Appointment {appointment.id} moved from {previous} to {appointment.scheduled_at}")
        trigger_event(self.db, user.tenant_id, "appointment.updated", appointment_payload(appointment))
        return appointment

    # ========================================================================
    # Status actions
    # ========================================================================

    def confirm(self, appointment_id: str, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        self._transition(appointment, "CONFIRMED")
        appointment.confirmed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(appointment)
        trigger_event(self.db, user.tenant_id, "appointment.updated", appointment_payload(appointment))
        return appointment

    def check_in(self, appointment_id: str, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        self._transition(appointment, "WAITING")
        appointment.checked_in_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def start(self, appointment_id: str, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        self._transition(appointment, "IN_PROGRESS")
        appointment.started_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def complete(self, appointment_id: str, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        self._transition(appointment, "COMPLETED")
        appointment.completed_at = datetime.utcnow()
        create_entries_for_appointment(self.db, appointment)
        self.db.commit()

        customer = appointment.customer
        analytics.recalculate_metrics(self.db, customer)
        LoyaltyService(self.db).earn_for_purchase(
            user.tenant_id, customer, appointment.final_price, "APPOINTMENT", appointment.id
        )
        SegmentService(self.db).evaluate_customer_segments(customer)
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} completed")
        trigger_event(self.db, user.tenant_id, "appointment.completed", appointment_payload(appointment))
        return appointment

    def cancel_appointment(self, appointment: Appointment, data: CancelRequest) -> Appointment:
        """Cancel an already loaded appointment; shared with public booking"""
        if appointment.status in ("COMPLETED", "CANCELLED"):
            raise HTTPException(status_code=400, detail=f"Cannot cancel a {appointment.status.lower()} appointment")
        appointment.status = "CANCELLED"
        now = datetime.utcnow()
        appointment.cancelled_at = now
        appointment.cancellation_reason = data.reason
        appointment.cancellation_description = data.description
        appointment.cancelled_by_client = data.cancelled_by_client
        appointment.hours_before_scheduled = max(0.0, round((appointment.scheduled_at - now).total_seconds() / 3600, 2))
        cancelled = reminders.cancel_reminders(self.db, appointment.id)
        self.db.commit()

        analytics.recalculate_metrics(self.db, appointment.customer)
        self.db.refresh(appointment)
        logger.info(f"🚫 Appointment {appointment.id} cancelled ({data.reason}), {cancelled} reminder(s) dropped")
        trigger_event(self.db, appointment.tenant_id, "appointment.cancelled", appointment_payload(appointment))
        return appointment

    def cancel(self, appointment_id: str, data: CancelRequest, user: User) -> Appointment:
        return self.cancel_appointment(self.get_appointment(appointment_id, user.tenant_id), data)

    def mark_no_show(self, appointment_id: str, user: User) -> Appointment:
        appointment = self.get_appointment(appointment_id, user.tenant_id)
        self._transition(appointment, "NO_SHOW")
        appointment.no_show_at = datetime.utcnow()
        reminders.cancel_reminders(self.db, appointment.id)
        self.db.commit()
        analytics.recalculate_metrics(self.db, appointment.customer)
        self.db.refresh(appointment)
        trigger_event(self.db, user.tenant_id, "appointment.updated", appointment_payload(appointment))
        return appointment

    # ========================================================================
    # Views
    # ========================================================================

    def check_conflicts(self, user: User, professional_id, scheduled_at, duration, customer_id=None, exclude_id=None):
        return self.checker.check(
            user.tenant_id, professional_id, scheduled_at, duration, customer_id, exclude_id
        ).to_dict()

    def calendar(self, user: User, day: date, professional_id: Optional[str] = None) -> dict:
        start = start_of_day(datetime.combine(day, datetime.min.time()))
        appointments = self.repo.list_query(
            self.db, user.tenant_id, start, end_of_day(start), professional_id
        ).all()
        columns: dict[str, dict] = {}
        for appointment in appointments:
            column = columns.setdefault(
                appointment.professional_id,
                {
                    "professional_id": appointment.professional_id,
                    "professional_name": appointment.professional.name if appointment.professional else None,
                    "appointments": [],
                },
            )
            column["appointments"].append(AppointmentResponse.model_validate(appointment).model_dump())
        return {"date": day, "total": len(appointments), "professionals": list(columns.values())}

    def stats(self, user: User, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        counts = self.repo.status_counts(self.db, user.tenant_id, start, end)
        total = sum(counts.values())
        completed = counts.get("COMPLETED", 0)
        return {
            "total": total,
            "by_status": counts,
            "completion_rate": round(completed / total * 100, 2) if total else 0,
            "no_show_rate": round(counts.get("NO_SHOW", 0) / total * 100, 2) if total else 0,
        }

    def today(self, user: User, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        appointments = self.repo.list_query(self.db, user.tenant_id, start_of_day(now), end_of_day(now)).all()
        by_status: dict[str, int] = {}
        for appointment in appointments:
            by_status[appointment.status] = by_status.get(appointment.status, 0) + 1
        upcoming = [a for a in appointments if a.scheduled_at >= now and a.status in ACTIVE_STATUSES][:5]
        return {
            "date": now.date(),
            "total": len(appointments),
            "by_status": by_status,
            "expected_revenue": round(
                sum(a.final_price for a in appointments if a.status not in ("CANCELLED", "NO_SHOW")), 2
            ),
            "completed_revenue": round(sum(a.final_price for a in appointments if a.status == "COMPLETED"), 2),
            "upcoming": [AppointmentResponse.model_validate(a).model_dump() for a in upcoming],
        }
