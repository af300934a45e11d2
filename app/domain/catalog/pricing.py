"""Service price and duration calculation"""

from typing import Optional

from ...models import Service


def _find_option(service: Service, option_id: Optional[str]) -> Optional[dict]:
    if not option_id:
        return None
    for option in service.options or []:
        if option.get("id") == option_id:
            return option
    return None


def calculate_price(
    service: Service, option_id: Optional[str] = None, professional_id: Optional[str] = None
) -> dict:
    base_price = float(service.price or 0)
    option_adjustment = 0.0
    professional_adjustment = 0.0
    combo_discount = 0.0
    package_discount = 0.0
    applied_rules: list[str] = []

    option = _find_option(service, option_id)
    if option:
        option_adjustment = float(option.get("price_adjustment") or 0)
        applied_rules.append(f"Option: {option.get('name')}")

    if professional_id and service.pricing_type == "BY_PROFESSIONAL":
        professional_price = (service.professional_prices or {}).get(professional_id)
        if professional_price is not None:
            professional_adjustment = float(professional_price) - base_price
            applied_rules.append("Professional price")

    subtotal = base_price + option_adjustment + professional_adjustment

    if service.service_type == "COMBO" and service.combo_discount:
        combo_discount = -(subtotal * service.combo_discount / 100)
        applied_rules.append(f"Combo discount: {service.combo_discount:g}%")

    if service.service_type == "PACKAGE" and service.package_discount:
        package_discount = -(subtotal * service.package_discount / 100)
        applied_rules.append(f"Package discount: {service.package_discount:g}%")

    final_price = max(0.0, subtotal + combo_discount + package_discount)
    return {
        "base_price": round(base_price, 2),
        "option_adjustment": round(option_adjustment, 2),
        "professional_adjustment": round(professional_adjustment, 2),
        "combo_discount": round(combo_discount, 2),
        "package_discount": round(package_discount, 2),
        "final_price": round(final_price, 2),
        "applied_rules": applied_rules,
    }


def calculate_duration(service: Service, option_id: Optional[str] = None) -> dict:
    base_duration = int(service.duration or 0)
    option = _find_option(service, option_id)
    option_duration = int(option.get("duration_adjustment") or 0) if option else 0
    return {
        "base_duration": base_duration,
        "option_duration": option_duration,
        "total_duration": max(base_duration + option_duration, 0),
    }
