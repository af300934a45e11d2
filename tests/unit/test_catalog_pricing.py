"""Tests for service price and duration calculation"""

import pytest

from app.domain.catalog.pricing import calculate_duration, calculate_price
from app.models import Service


def build_service(**overrides) -> Service:
    values = dict(
        name="Escova",
        price=100.0,
        duration=45,
        pricing_type="FIXED",
        service_type="SINGLE",
        options=[
            {"id": "longo", "name": "Cabelo longo", "price_adjustment": 20, "duration_adjustment": 15},
            {"id": "curto", "name": "Cabelo curto", "price_adjustment": -200, "duration_adjustment": -60},
        ],
        professional_prices={},
    )
    values.update(overrides)
    return Service(**values)


@pytest.mark.unit
class TestCalculatePrice:
    def test_base_price(self):
        result = calculate_price(build_service())
        assert result["final_price"] == 100.0
        assert result["applied_rules"] == []

    def test_option_adjustment(self):
        result = calculate_price(build_service(), option_id="longo")
        assert result["option_adjustment"] == 20.0
        assert result["final_price"] == 120.0
        assert result["applied_rules"] == ["Option: Cabelo longo"]

    def test_unknown_option_is_ignored(self):
        assert calculate_price(build_service(), option_id="nope")["final_price"] == 100.0

    def test_professional_price(self):
        service = build_service(pricing_type="BY_PROFESSIONAL", professional_prices={"p1": 150})

        assert calculate_price(service, professional_id="p1")["professional_adjustment"] == 50.0
        assert calculate_price(service, professional_id="p1")["final_price"] == 150.0
        assert calculate_price(service, professional_id="p2")["final_price"] == 100.0

    def test_professional_price_needs_pricing_type(self):
        service = build_service(professional_prices={"p1": 150})
        assert calculate_price(service, professional_id="p1")["final_price"] == 100.0

    def test_combo_discount_applies_after_adjustments(self):
        service = build_service(service_type="COMBO", combo_discount=10)
        result = calculate_price(service, option_id="longo")

        assert result["combo_discount"] == -12.0
        assert result["final_price"] == 108.0
        assert "Combo discount: 10%" in result["applied_rules"]

    def test_package_discount(self):
        service = build_service(service_type="PACKAGE", package_discount=25)
        result = calculate_price(service)
        assert result["package_discount"] == -25.0
        assert result["final_price"] == 75.0

    def test_never_negative(self):
        assert calculate_price(build_service(), option_id="curto")["final_price"] == 0.0


@pytest.mark.unit
class TestCalculateDuration:
    def test_with_option(self):
        assert calculate_duration(build_service(), option_id="longo") == {
            "base_duration": 45,
            "option_duration": 15,
            "total_duration": 60,
        }

    def test_never_negative(self):
        assert calculate_duration(build_service(), option_id="curto")["total_duration"] == 0
