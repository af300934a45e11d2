"""Unit tests for recurrence, slot generation and status transitions."""

from datetime import date, datetime, timedelta

import pytest

from app.domain.appointments.availability import AvailabilityConfig, filter_slots, generate_slots, working_periods
from app.domain.appointments.conflicts import check_advance, check_working_hours
from app.domain.appointments.recurrence import (
    MAX_OCCURRENCES,
    RecurrencePattern,
    calculate_end_date,
    describe,
    expand_with_exclusions,
    generate_occurrences,
    is_date_in_pattern,
    validate_pattern,
)
from app.domain.appointments.service import can_transition
from app.models import WorkingHours

MONDAY = date(2026, 10, 19)


def _schedule(**kwargs) -> WorkingHours:
    values = {"day_of_week": 1, "is_working_day": True, "start_time": "09:00", "end_time": "12:00"}
    values.update(kwargs)
    return WorkingHours(**values)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(MONDAY.year, MONDAY.month, MONDAY.day, hour, minute)


@pytest.mark.unit
class TestRecurrence:
    def test_weekly_count(self):
        occurrences = generate_occurrences(_at(10), RecurrencePattern(type="WEEKLY", count=4))
        assert [o.date for o in occurrences] == [_at(10) + timedelta(weeks=i) for i in range(4)]
        assert occurrences[-1].is_last
        assert not occurrences[0].is_last

    def test_monthly_clamps_to_shorter_months(self):
        start = datetime(2027, 1, 31, 10, 0)
        occurrences = generate_occurrences(start, RecurrencePattern(type="MONTHLY", count=2))
        assert occurrences[1].date == datetime(2027, 2, 28, 10, 0)

    def test_end_date_stops_generation(self):
        pattern = RecurrencePattern(type="DAILY", end_date=_at(10) + timedelta(days=2))
        assert len(generate_occurrences(_at(10), pattern)) == 3

    def test_occurrences_are_capped(self):
        pattern = RecurrencePattern(type="DAILY", end_date=_at(10) + timedelta(days=400))
        assert len(generate_occurrences(_at(10), pattern)) == MAX_OCCURRENCES

    def test_no_recurrence_is_a_single_occurrence(self):
        occurrences = generate_occurrences(_at(10), RecurrencePattern())
        assert len(occurrences) == 1 and occurrences[0].is_last

    def test_validation(self):
        now = _at(8)
        assert validate_pattern(RecurrencePattern(type="WEEKLY"), now) == (
            False,
            "Recurrence needs a number of occurrences or an end date",
        )
        assert not validate_pattern(RecurrencePattern(type="WEEKLY", count=MAX_OCCURRENCES + 1), now)[0]
        assert not validate_pattern(RecurrencePattern(type="YEARLY", count=2), now)[0]
        assert validate_pattern(RecurrencePattern(type="WEEKLY", count=4), now) == (True, None)

    def test_exclusions_skip_calendar_days(self):
        pattern = RecurrencePattern(type="WEEKLY", count=3)
        kept = expand_with_exclusions(_at(10), pattern, [_at(15) + timedelta(weeks=1)])
        assert [o.index for o in kept] == [0, 2]

    def test_end_date_and_membership(self):
        pattern = RecurrencePattern(type="BIWEEKLY", count=3)
        assert calculate_end_date(_at(10), pattern) == _at(10) + timedelta(weeks=4)
        assert calculate_end_date(_at(10), RecurrencePattern()) is None

        assert is_date_in_pattern(_at(15) + timedelta(weeks=2), _at(10), pattern)
        assert not is_date_in_pattern(_at(10) + timedelta(weeks=1), _at(10), pattern)

    def test_describe(self):
        assert describe(RecurrencePattern(type="WEEKLY", interval=2)) == "Every 2 weeks"
        assert describe(RecurrencePattern(type="MONTHLY")) == "Monthly"


@pytest.mark.unit
class TestSlots:
    def test_break_splits_the_day(self):
        periods = working_periods(_schedule(break_start="10:00", break_end="10:30"), MONDAY)
        assert periods == [(_at(9), _at(10)), (_at(10, 30), _at(12))]

    def test_day_off_has_no_periods(self):
        assert working_periods(_schedule(is_working_day=False), MONDAY) == []
        assert working_periods(None, MONDAY) == []

    def test_slots_fit_inside_periods(self):
        periods = working_periods(_schedule(break_start="10:00", break_end="10:30"), MONDAY)
        slots = generate_slots(periods, duration=30, interval=30)
        assert [start for start, _ in slots] == [_at(9), _at(9, 30), _at(10, 30), _at(11), _at(11, 30)]

    def test_long_service_needs_a_long_enough_gap(self):
        slots = generate_slots([(_at(9), _at(10))], duration=90, interval=30)
        assert slots == []

    def test_busy_slots_and_buffer_are_removed(self):
        slots = generate_slots([(_at(9), _at(12))], duration=30, interval=30)
        busy = [(_at(10), _at(10, 30))]
        now = _at(0)

        plain = filter_slots(slots, busy, [], AvailabilityConfig(min_advance=0), now)
        assert _at(10) not in [s for s, _ in plain]
        assert _at(9, 30) in [s for s, _ in plain]

        padded = filter_slots(slots, busy, [], AvailabilityConfig(min_advance=0, buffer=15), now)
        starts = [s for s, _ in padded]
        assert _at(9, 30) not in starts
        assert _at(10, 30) not in starts
        assert _at(11) in starts

    def test_minimum_advance_hides_early_slots(self):
        slots = generate_slots([(_at(9), _at(12))], duration=30, interval=30)
        available = filter_slots(slots, [], [], AvailabilityConfig(min_advance=120), _at(8, 30))
        assert available[0][0] == _at(10, 30)


@pytest.mark.unit
class TestConflictRules:
    def test_outside_working_hours(self):
        conflict = check_working_hours(_schedule(), _at(11, 30), _at(12, 30))
        assert conflict is not None and conflict.type == "OUTSIDE_WORKING_HOURS"

    def test_inside_working_hours(self):
        assert check_working_hours(_schedule(), _at(9), _at(10)) is None

    def test_break_overlap(self):
        conflict = check_working_hours(_schedule(break_start="10:00", break_end="10:30"), _at(9, 45), _at(10, 15))
        assert conflict is not None

    def test_advance_warnings(self):
        assert check_advance(_at(9, 30), now=_at(9)).type == "INSUFFICIENT_ADVANCE"
        assert check_advance(_at(9) + timedelta(days=40), now=_at(9)).type == "EXCEEDS_MAX_ADVANCE"
        assert check_advance(_at(12), now=_at(9)) is None


@pytest.mark.unit
class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("PENDING", "CONFIRMED"),
            ("CONFIRMED", "WAITING"),
            ("WAITING", "IN_PROGRESS"),
            ("IN_PROGRESS", "COMPLETED"),
            ("CONFIRMED", "NO_SHOW"),
            ("PENDING", "CANCELLED"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("PENDING", "COMPLETED"),
            ("COMPLETED", "CANCELLED"),
            ("CANCELLED", "CONFIRMED"),
            ("IN_PROGRESS", "CANCELLED"),
            ("PENDING", "NO_SHOW"),
        ],
    )
    def test_refused(self, current, target):
        assert not can_transition(current, target)
