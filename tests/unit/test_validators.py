"""Unit tests for the shared validators and date helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.shared.dates import day_of_week, end_of_month, overlaps, to_naive_utc
from app.shared.validators import (
    normalize_phone,
    slugify,
    time_to_minutes,
    validate_cpf,
    validate_email,
    validate_time,
)


@pytest.mark.unit
class TestNormalizePhone:
    def test_brazilian_national_number_gets_country_code(self):
        assert normalize_phone("(11) 98765-4321") == "+5511987654321"

    def test_country_code_without_plus_is_kept_once(self):
        assert normalize_phone("5511987654321") == "+5511987654321"

    def test_international_number_is_kept(self):
        assert normalize_phone("+1 (415) 555-0100") == "+14155550100"

    def test_empty_value_passes_through(self):
        assert normalize_phone(None) is None
        assert normalize_phone("") == ""

    def test_short_number_is_rejected(self):
        with pytest.raises(ValueError):
            normalize_phone("12345")


@pytest.mark.unit
class TestDocumentsAndText:
    def test_valid_cpf_is_normalized_to_digits(self):
        assert validate_cpf("529.982.247-25") == "52998224725"

    def test_cpf_with_wrong_check_digit_is_rejected(self):
        with pytest.raises(ValueError):
            validate_cpf("529.982.247-26")

    def test_cpf_with_repeated_digits_is_rejected(self):
        with pytest.raises(ValueError):
            validate_cpf("111.111.111-11")

    def test_email_is_lowercased(self):
        assert validate_email("  Maria@Example.COM ") == "maria@example.com"

    def test_invalid_email_is_rejected(self):
        with pytest.raises(ValueError):
            validate_email("maria@")

    def test_slugify_strips_accents_and_symbols(self):
        assert slugify("Salão Beleza & Cia") == "salao-beleza-cia"
        assert slugify("Corte Feminino") == "corte-feminino"

    def test_time_helpers(self):
        assert validate_time("09:30") == "09:30"
        assert time_to_minutes("09:30") == 570
        with pytest.raises(ValueError):
            validate_time("24:00")


@pytest.mark.unit
class TestDates:
    def test_sunday_is_day_zero(self):
        assert day_of_week(date(2026, 10, 18)) == 0  # a Sunday
        assert day_of_week(date(2026, 10, 19)) == 1

    def test_overlaps_is_half_open(self):
        start = datetime(2026, 10, 19, 9, 0)
        end = start + timedelta(minutes=30)
        assert overlaps(start, end, start + timedelta(minutes=15), end + timedelta(minutes=15))
        assert not overlaps(start, end, end, end + timedelta(minutes=30))

    def test_aware_datetimes_become_naive_utc(self):
        aware = datetime(2026, 10, 19, 9, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert to_naive_utc(aware) == datetime(2026, 10, 19, 12, 0)

    def test_end_of_month(self):
        assert end_of_month(datetime(2027, 2, 10)).date() == date(2027, 2, 28)
