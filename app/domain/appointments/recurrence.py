"""
Recurring appointment patterns.

Occurrences are generated from the first appointment's start time and are
capped at MAX_OCCURRENCES (one year of weekly visits).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

MAX_OCCURRENCES = 52

RECURRENCE_TYPES = ("NONE", "DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY")


@dataclass
class RecurrencePattern:
    type: str = "NONE"
    interval: int = 1
    count: Optional[int] = None
    end_date: Optional[datetime] = None


@dataclass
class Occurrence:
    date: datetime
    index: int
    is_last: bool = False


def next_occurrence(current: datetime, pattern: RecurrencePattern) -> datetime:
    interval = pattern.interval or 1
    if pattern.type == "DAILY":
        return current + relativedelta(days=interval)
    if pattern.type == "WEEKLY":
        return current + relativedelta(weeks=interval)
    if pattern.type == "BIWEEKLY":
        return current + relativedelta(weeks=2)
    if pattern.type == "MONTHLY":
        # relativedelta clamps to the last day of shorter months
        return current + relativedelta(months=interval)
    return current


def generate_occurrences(start: datetime, pattern: RecurrencePattern) -> list[Occurrence]:
    if pattern.type == "NONE":
        return [Occurrence(date=start, index=0, is_last=True)]

    max_occurrences = min(pattern.count or MAX_OCCURRENCES, MAX_OCCURRENCES)
    occurrences: list[Occurrence] = []
    current = start
    index = 0

    while index < max_occurrences:
        if pattern.end_date and current > pattern.end_date:
            break
        occurrences.append(Occurrence(date=current, index=index))
        current = next_occurrence(current, pattern)
        index += 1

    if occurrences:
        occurrences[-1].is_last = True
    return occurrences


def validate_pattern(pattern: RecurrencePattern, now: Optional[datetime] = None) -> tuple[bool, Optional[str]]:
    """Returns (is_valid, error_message)"""
    if pattern.type not in RECURRENCE_TYPES:
        return False, f"Invalid recurrence type: {pattern.type}"
    if pattern.type == "NONE":
        return True, None
    if pattern.interval is None or pattern.interval < 1:
        return False, "Recurrence interval must be at least 1"
    if not pattern.count and not pattern.end_date:
        return False, "Recurrence needs a number of occurrences or an end date"
    if pattern.count and pattern.count > MAX_OCCURRENCES:
        return False, f"Maximum number of occurrences is {MAX_OCCURRENCES}"
    if pattern.end_date and pattern.end_date < (now or datetime.utcnow()):
        return False, "Recurrence end date must be in the future"
    return True, None


def calculate_end_date(start: datetime, pattern: RecurrencePattern) -> Optional[datetime]:
    if pattern.type == "NONE":
        return None
    if pattern.end_date:
        return pattern.end_date
    if pattern.count:
        return generate_occurrences(start, pattern)[-1].date
    return None


def is_date_in_pattern(value: datetime, start: datetime, pattern: RecurrencePattern) -> bool:
    if pattern.type == "NONE":
        return value == start
    return any(occ.date.date() == value.date() for occ in generate_occurrences(start, pattern))


def expand_with_exclusions(
    start: datetime, pattern: RecurrencePattern, excluded: list[datetime]
) -> list[Occurrence]:
    """Occurrences whose calendar date is not excluded"""
    excluded_days = {d.date() for d in excluded}
    return [occ for occ in generate_occurrences(start, pattern) if occ.date.date() not in excluded_days]


def describe(pattern: RecurrencePattern) -> str:
    interval = pattern.interval or 1
    if pattern.type == "DAILY":
        return "Daily" if interval == 1 else f"Every {interval} days"
    if pattern.type == "WEEKLY":
        return "Weekly" if interval == 1 else f"Every {interval} weeks"
    if pattern.type == "BIWEEKLY":
        return "Every two weeks"
    if pattern.type == "MONTHLY":
        return "Monthly" if interval == 1 else f"Every {interval} months"
    return "No recurrence"


def new_group_id() -> str:
    return str(uuid.uuid4())
