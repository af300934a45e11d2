"""
Appointment conflict detection.

ERROR conflicts on the professional, the customer or a resource cannot be
overridden; everything else is reported and may be overridden by staff.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import ScheduleBlock, WorkingHours
from ...models_appointment import Appointment
from ...shared.dates import at_minutes, day_of_week, overlaps
from ...shared.validators import time_to_minutes

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = ("CANCELLED", "NO_SHOW")
BLOCKING_TYPES = ("PROFESSIONAL_BUSY", "CLIENT_BUSY", "RESOURCE_UNAVAILABLE")

MIN_ADVANCE_MINUTES = 60
MAX_ADVANCE_MINUTES = 43200


@dataclass
class Conflict:
    type: str
    severity: str
    message: str
    conflicting_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass
class ConflictResult:
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def can_override(self) -> bool:
        return not any(c.severity == "ERROR" and c.type in BLOCKING_TYPES for c in self.conflicts)

    def to_dict(self) -> dict:
        return {
            "has_conflict": self.has_conflict,
            "conflicts": [asdict(c) for c in self.conflicts],
            "can_override": self.can_override,
        }


def _fmt(value: datetime) -> str:
    return value.strftime("%H:%M")


def check_working_hours(
    schedule: Optional[WorkingHours], start: datetime, end: datetime
) -> Optional[Conflict]:
    """OUTSIDE_WORKING_HOURS when the interval is not inside the day's schedule"""
    if schedule is None or not schedule.is_working_day or not schedule.start_time or not schedule.end_time:
        return Conflict(
            type="OUTSIDE_WORKING_HOURS",
            severity="ERROR",
            message="Professional does not work on this day",
            start=start,
            end=end,
        )

    day = start.date()
    day_start = at_minutes(day, time_to_minutes(schedule.start_time))
    day_end = at_minutes(day, time_to_minutes(schedule.end_time))
    if start < day_start or end > day_end:
        return Conflict(
            type="OUTSIDE_WORKING_HOURS",
            severity="ERROR",
            message=f"Outside working hours ({schedule.start_time} - {schedule.end_time})",
            start=start,
            end=end,
        )

    if schedule.break_start and schedule.break_end:
        break_start = at_minutes(day, time_to_minutes(schedule.break_start))
        break_end = at_minutes(day, time_to_minutes(schedule.break_end))
        if overlaps(start, end, break_start, break_end):
            return Conflict(
                type="OUTSIDE_WORKING_HOURS",
                severity="ERROR",
                message=f"Overlaps the professional's break ({schedule.break_start} - {schedule.break_end})",
                start=break_start,
                end=break_end,
            )
    return None


def check_advance(
    start: datetime,
    now: Optional[datetime] = None,
    min_advance: int = MIN_ADVANCE_MINUTES,
    max_advance: int = MAX_ADVANCE_MINUTES,
) -> Optional[Conflict]:
    now = now or datetime.utcnow()
    minutes_ahead = (start - now).total_seconds() / 60
    if minutes_ahead < min_advance:
        return Conflict(
            type="INSUFFICIENT_ADVANCE",
            severity="WARNING",
            message=f"Appointment starts less than {min_advance} minutes from now",
            start=start,
        )
    if minutes_ahead > max_advance:
        return Conflict(
            type="EXCEEDS_MAX_ADVANCE",
            severity="WARNING",
            message=f"Appointment is more than {max_advance // 1440} days ahead",
            start=start,
        )
    return None


class ConflictChecker:
    def __init__(self, db: Session):
        self.db = db

    def _overlapping(self, tenant_id: str, start: datetime, end: datetime, exclude_id: Optional[str]):
        query = self.db.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.scheduled_at < end,
            Appointment.end_time > start,
        )
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        return query

    def check(
        self,
        tenant_id: str,
        professional_id: str,
        start: datetime,
        duration: int,
        customer_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ConflictResult:
        end = start + timedelta(minutes=duration)
        result = ConflictResult()

        busy = (
            self._overlapping(tenant_id, start, end, exclude_id)
            .options(joinedload(Appointment.customer))
            .filter(Appointment.professional_id == professional_id)
            .all()
        )
        for apt in busy:
            customer_name = apt.customer.name if apt.customer else "another customer"
            result.conflicts.append(
                Conflict(
                    type="PROFESSIONAL_BUSY",
                    severity="ERROR",
                    message=f"Professional already has an appointment with {customer_name} "
                    f"from {_fmt(apt.scheduled_at)} to {_fmt(apt.end_time)}",
                    conflicting_id=apt.id,
                    start=apt.scheduled_at,
                    end=apt.end_time,
                )
            )

        if customer_id:
            customer_busy = (
                self._overlapping(tenant_id, start, end, exclude_id)
                .filter(Appointment.customer_id == customer_id)
                .all()
            )
            for apt in customer_busy:
                result.conflicts.append(
                    Conflict(
                        type="CLIENT_BUSY",
                        severity="WARNING",
                        message=f"Customer already has an appointment from "
                        f"{_fmt(apt.scheduled_at)} to {_fmt(apt.end_time)}",
                        conflicting_id=apt.id,
                        start=apt.scheduled_at,
                        end=apt.end_time,
                    )
                )

        blocks = (
            self.db.query(ScheduleBlock)
            .filter(
                ScheduleBlock.tenant_id == tenant_id,
                ScheduleBlock.professional_id == professional_id,
                ScheduleBlock.status != "REJECTED",
                ScheduleBlock.start_date < end,
                ScheduleBlock.end_date > start,
            )
            .all()
        )
        for block in blocks:
            result.conflicts.append(
                Conflict(
                    type="BLOCKED_TIME",
                    severity="ERROR",
                    message=block.reason or block.title or "Time blocked by the professional",
                    conflicting_id=block.id,
                    start=block.start_date,
                    end=block.end_date,
                )
            )

        schedule = (
            self.db.query(WorkingHours)
            .filter(
                WorkingHours.professional_id == professional_id,
                WorkingHours.day_of_week == day_of_week(start.date()),
            )
            .first()
        )
        hours_conflict = check_working_hours(schedule, start, end)
        if hours_conflict:
            result.conflicts.append(hours_conflict)

        advance_conflict = check_advance(start, now)
        if advance_conflict:
            result.conflicts.append(advance_conflict)

        if result.has_conflict:
            logger.info(
                f"🔍 {len(result.conflicts)} conflict(s) for professional {professional_id} at {start}"
            )
        return result
