"""
Slot availability for professionals.

A day's working periods come from the weekly schedule (split in two by the
break). Candidate slots start every `slot_interval` minutes and are dropped
when they fall outside the booking window or overlap an active appointment
(padded by the professional's buffer) or a non-rejected schedule block.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Professional, ScheduleBlock, Service, Tenant, WorkingHours
from ...models_appointment import Appointment
from ...shared.dates import at_minutes, day_of_week, end_of_day, overlaps, start_of_day
from ...shared.validators import time_to_minutes
from ..tenants.service import get_booking_settings
from .conflicts import INACTIVE_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 30
DEFAULT_SLOT_INTERVAL = 30
MAX_RANGE_DAYS = 62


@dataclass
class AvailabilityConfig:
    slot_interval: int = DEFAULT_SLOT_INTERVAL
    min_advance: int = 60  # minutes
    max_advance: int = 43200  # minutes
    buffer: int = 0


def working_periods(schedule: Optional[WorkingHours], day: date) -> list[tuple[datetime, datetime]]:
    if schedule is None or not schedule.is_working_day or not schedule.start_time or not schedule.end_time:
        return []

    start = at_minutes(day, time_to_minutes(schedule.start_time))
    end = at_minutes(day, time_to_minutes(schedule.end_time))
    if schedule.break_start and schedule.break_end:
        break_start = at_minutes(day, time_to_minutes(schedule.break_start))
        break_end = at_minutes(day, time_to_minutes(schedule.break_end))
        return [(start, break_start), (break_end, end)]
    return [(start, end)]


def generate_slots(
    periods: list[tuple[datetime, datetime]], duration: int, interval: int
) -> list[tuple[datetime, datetime]]:
    slots = []
    step = timedelta(minutes=interval)
    length = timedelta(minutes=duration)
    for period_start, period_end in periods:
        current = period_start
        while current + length <= period_end:
            slots.append((current, current + length))
            current += step
    return slots


def filter_slots(
    slots: list[tuple[datetime, datetime]],
    busy: list[tuple[datetime, datetime]],
    blocks: list[tuple[datetime, datetime]],
    config: AvailabilityConfig,
    now: datetime,
) -> list[tuple[datetime, datetime]]:
    earliest = now + timedelta(minutes=config.min_advance)
    latest = now + timedelta(minutes=config.max_advance)
    pad = timedelta(minutes=config.buffer)

    available = []
    for slot_start, slot_end in slots:
        if slot_start < earliest or slot_start > latest:
            continue
        if any(overlaps(slot_start, slot_end, b_start - pad, b_end + pad) for b_start, b_end in busy):
            continue
        if any(overlaps(slot_start, slot_end, b_start, b_end) for b_start, b_end in blocks):
            continue
        available.append((slot_start, slot_end))
    return available


def _serialize(slots: list[tuple[datetime, datetime]]) -> list[dict]:
    return [{"start": start, "end": end} for start, end in slots]


class AvailabilityService:
    def __init__(self, db: Session):
        self.db = db

    def _get_professional(self, tenant_id: str, professional_id: str) -> Professional:
        professional = (
            self.db.query(Professional)
            .filter(
                Professional.id == professional_id,
                Professional.tenant_id == tenant_id,
                Professional.deleted_at.is_(None),
            )
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")
        return professional

    def get_config(self, tenant_id: str, professional: Professional) -> AvailabilityConfig:
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        settings = get_booking_settings(tenant) if tenant else {}
        return AvailabilityConfig(
            slot_interval=professional.slot_interval or settings.get("slot_interval") or DEFAULT_SLOT_INTERVAL,
            min_advance=int(settings.get("min_advance_hours", 1) * 60),
            max_advance=int(settings.get("max_advance_days", 30) * 1440),
            buffer=professional.buffer_time or 0,
        )

    def calculate_total_duration(self, tenant_id: str, service_ids: Optional[list[str]]) -> int:
        if not service_ids:
            return DEFAULT_DURATION
        services = (
            self.db.query(Service)
            .filter(
                Service.tenant_id == tenant_id,
                Service.id.in_(service_ids),
                Service.is_active.is_(True),
                Service.deleted_at.is_(None),
            )
            .all()
        )
        total = sum(s.duration for s in services)
        return total or DEFAULT_DURATION

    def _busy(self, tenant_id: str, professional_id: str, day_start: datetime, day_end: datetime, exclude_id=None):
        query = self.db.query(Appointment.scheduled_at, Appointment.end_time).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.professional_id == professional_id,
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.scheduled_at < day_end,
            Appointment.end_time > day_start,
        )
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        return [(row.scheduled_at, row.end_time) for row in query.all()]

    def _blocks(self, tenant_id: str, professional_id: str, day_start: datetime, day_end: datetime):
        rows = (
            self.db.query(ScheduleBlock.start_date, ScheduleBlock.end_date)
            .filter(
                ScheduleBlock.tenant_id == tenant_id,
                ScheduleBlock.professional_id == professional_id,
                ScheduleBlock.status != "REJECTED",
                ScheduleBlock.start_date < day_end,
                ScheduleBlock.end_date > day_start,
            )
            .all()
        )
        return [(row.start_date, row.end_date) for row in rows]

    def _schedule(self, professional_id: str, day: date) -> Optional[WorkingHours]:
        return (
            self.db.query(WorkingHours)
            .filter(
                WorkingHours.professional_id == professional_id,
                WorkingHours.day_of_week == day_of_week(day),
            )
            .first()
        )

    def _slots_for(
        self,
        tenant_id: str,
        professional: Professional,
        day: date,
        duration: int,
        config: AvailabilityConfig,
        now: datetime,
    ) -> list[tuple[datetime, datetime]]:
        periods = working_periods(self._schedule(professional.id, day), day)
        if not periods:
            return []
        day_start = start_of_day(datetime.combine(day, datetime.min.time()))
        day_end = end_of_day(day_start)
        candidates = generate_slots(periods, duration, config.slot_interval)
        return filter_slots(
            candidates,
            self._busy(tenant_id, professional.id, day_start, day_end),
            self._blocks(tenant_id, professional.id, day_start, day_end),
            config,
            now,
        )

    def get_available_slots(
        self,
        tenant_id: str,
        professional_id: str,
        day: date,
        duration: Optional[int] = None,
        service_ids: Optional[list[str]] = None,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        professional = self._get_professional(tenant_id, professional_id)
        duration = duration or self.calculate_total_duration(tenant_id, service_ids)
        config = self.get_config(tenant_id, professional)
        slots = self._slots_for(tenant_id, professional, day, duration, config, now or datetime.utcnow())
        return _serialize(slots)

    def get_availability_range(
        self,
        tenant_id: str,
        professional_id: str,
        start: date,
        end: date,
        duration: Optional[int] = None,
        service_ids: Optional[list[str]] = None,
        include_slots: bool = True,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        if end < start:
            raise HTTPException(status_code=400, detail="End date must be after start date")
        if (end - start).days > MAX_RANGE_DAYS:
            raise HTTPException(status_code=400, detail=f"Date range cannot exceed {MAX_RANGE_DAYS} days")

        professional = self._get_professional(tenant_id, professional_id)
        duration = duration or self.calculate_total_duration(tenant_id, service_ids)
        config = self.get_config(tenant_id, professional)
        now = now or datetime.utcnow()

        days = []
        current = start
        while current <= end:
            slots = self._slots_for(tenant_id, professional, current, duration, config, now)
            days.append(
                {
                    "date": current,
                    "available": len(slots) > 0,
                    "total_slots": len(slots),
                    "slots": _serialize(slots) if include_slots else None,
                }
            )
            current += timedelta(days=1)
        return days

    def get_professionals_availability(
        self,
        tenant_id: str,
        service_id: str,
        day: date,
        online_only: bool = False,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        """Availability on `day` for every active professional offering the service"""
        service = (
            self.db.query(Service)
            .filter(Service.id == service_id, Service.tenant_id == tenant_id, Service.deleted_at.is_(None))
            .first()
        )
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")

        now = now or datetime.utcnow()
        result = []
        for professional in service.professionals:
            if professional.deleted_at is not None or professional.status != "ACTIVE":
                continue
            if online_only and not professional.accepts_online_booking:
                continue
            config = self.get_config(tenant_id, professional)
            slots = self._slots_for(tenant_id, professional, day, service.duration, config, now)
            result.append(
                {
                    "professional_id": professional.id,
                    "professional_name": professional.name,
                    "date": day,
                    "is_available": len(slots) > 0,
                    "slots": _serialize(slots),
                }
            )
        return result

    def is_slot_available(
        self,
        tenant_id: str,
        professional_id: str,
        start: datetime,
        duration: int,
        exclude_id: Optional[str] = None,
    ) -> bool:
        professional = self._get_professional(tenant_id, professional_id)
        end = start + timedelta(minutes=duration)

        periods = working_periods(self._schedule(professional.id, start.date()), start.date())
        if not any(p_start <= start and end <= p_end for p_start, p_end in periods):
            return False
        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in self._blocks(tenant_id, professional.id, start, end)):
            return False
        busy = self._busy(tenant_id, professional.id, start, end, exclude_id)
        return len(busy) == 0

    def get_next_available_slots(
        self,
        tenant_id: str,
        professional_id: str,
        count: int = 5,
        duration: Optional[int] = None,
        service_ids: Optional[list[str]] = None,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        professional = self._get_professional(tenant_id, professional_id)
        duration = duration or self.calculate_total_duration(tenant_id, service_ids)
        config = self.get_config(tenant_id, professional)
        now = now or datetime.utcnow()

        found: list[tuple[datetime, datetime]] = []
        day = now.date()
        last_day = (now + timedelta(minutes=config.max_advance)).date()
        while day <= last_day and len(found) < count:
            found.extend(self._slots_for(tenant_id, professional, day, duration, config, now))
            day += timedelta(days=1)
        return _serialize(found[:count])
