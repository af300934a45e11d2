"""Date helpers. All datetimes are naive UTC, as stored in the database."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.utcnow()


def day_of_week(value: date) -> int:
    """Day of week with Sunday = 0 ... Saturday = 6"""
    return (value.weekday() + 1) % 7


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


def start_of_month(value: datetime) -> datetime:
    return datetime(value.year, value.month, 1)


def end_of_month(value: datetime) -> datetime:
    if value.month == 12:
        next_month = datetime(value.year + 1, 1, 1)
    else:
        next_month = datetime(value.year, value.month + 1, 1)
    return next_month - timedelta(microseconds=1)


def at_minutes(day: date, minutes: int) -> datetime:
    """Datetime for `day` at `minutes` past midnight"""
    return datetime.combine(day, time.min) + timedelta(minutes=minutes)


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap"""
    return start_a < end_b and end_a > start_b


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD or DD/MM/YYYY"""
    if not value:
        return None
    value = value.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date: {value}")


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
