"""
Plan limits and feature flags for tenant subscriptions.
"""

import logging
from datetime import datetime

from fastapi import Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Professional, Service, ServiceCategory, Tenant, User
from .models_appointment import Appointment
from .models_customer import Customer
from .models_inventory import Product
from .models_marketing import Campaign
from .shared.dates import start_of_month

logger = logging.getLogger(__name__)

UNLIMITED = -1

ALL_FEATURES = (
    "online_booking",
    "marketing",
    "loyalty",
    "whatsapp",
    "inventory",
    "commissions",
    "financial_reports",
    "export_data",
    "sms_notifications",
    "api_access",
    "multi_location",
    "custom_branding",
)

_STARTER_FEATURES = {"online_booking", "financial_reports", "commissions"}
_PROFESSIONAL_FEATURES = _STARTER_FEATURES | {
    "marketing",
    "loyalty",
    "whatsapp",
    "inventory",
    "export_data",
    "sms_notifications",
}
_BUSINESS_FEATURES = _PROFESSIONAL_FEATURES | {"api_access", "custom_branding"}

PLAN_CONFIGS = {
    "FREE": {
        "limits": {
            "users": 1,
            "professionals": 1,
            "clients": 50,
            "appointments_per_month": 100,
            "categories": 5,
            "services": 20,
            "products": 10,
            "campaigns_per_month": 0,
        },
        "features": {"online_booking"},
    },
    "STARTER": {
        "limits": {
            "users": 3,
            "professionals": 3,
            "clients": 500,
            "appointments_per_month": 500,
            "categories": 20,
            "services": 100,
            "products": 50,
            "campaigns_per_month": 2,
        },
        "features": _STARTER_FEATURES,
    },
    "PROFESSIONAL": {
        "limits": {
            "users": 10,
            "professionals": 10,
            "clients": 2000,
            "appointments_per_month": 2000,
            "categories": 50,
            "services": 300,
            "products": 200,
            "campaigns_per_month": 10,
        },
        "features": _PROFESSIONAL_FEATURES,
    },
    "BUSINESS": {
        "limits": {
            "users": 30,
            "professionals": 30,
            "clients": 10000,
            "appointments_per_month": 10000,
            "categories": 200,
            "services": 1000,
            "products": 1000,
            "campaigns_per_month": 50,
        },
        "features": _BUSINESS_FEATURES,
    },
    "ENTERPRISE": {
        "limits": {
            "users": UNLIMITED,
            "professionals": UNLIMITED,
            "clients": UNLIMITED,
            "appointments_per_month": UNLIMITED,
            "categories": UNLIMITED,
            "services": UNLIMITED,
            "products": UNLIMITED,
            "campaigns_per_month": UNLIMITED,
        },
        "features": set(ALL_FEATURES),
    },
}


def get_plan_config(plan_type: str) -> dict:
    return PLAN_CONFIGS.get((plan_type or "FREE").upper(), PLAN_CONFIGS["FREE"])


def get_features(tenant: Tenant) -> dict[str, bool]:
    """Plan features with the tenant's overrides applied"""
    enabled = get_plan_config(tenant.plan_type)["features"]
    features = {name: name in enabled for name in ALL_FEATURES}
    for name, value in (tenant.feature_overrides or {}).items():
        features[name] = bool(value)
    return features


def has_feature(tenant: Tenant, feature: str) -> bool:
    return get_features(tenant).get(feature, False)


def _count_usage(db: Session, tenant_id: str, resource: str) -> int:
    month_start = start_of_month(datetime.utcnow())

    if resource == "users":
        return db.query(func.count(User.id)).filter(User.tenant_id == tenant_id).scalar()
    if resource == "professionals":
        return (
            db.query(func.count(Professional.id))
            .filter(Professional.tenant_id == tenant_id, Professional.deleted_at.is_(None))
            .scalar()
        )
    if resource == "clients":
        return (
            db.query(func.count(Customer.id))
            .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .scalar()
        )
    if resource == "appointments_per_month":
        return (
            db.query(func.count(Appointment.id))
            .filter(Appointment.tenant_id == tenant_id, Appointment.created_at >= month_start)
            .scalar()
        )
    if resource == "categories":
        return (
            db.query(func.count(ServiceCategory.id))
            .filter(ServiceCategory.tenant_id == tenant_id)
            .scalar()
        )
    if resource == "services":
        return (
            db.query(func.count(Service.id))
            .filter(Service.tenant_id == tenant_id, Service.deleted_at.is_(None))
            .scalar()
        )
    if resource == "products":
        return (
            db.query(func.count(Product.id))
            .filter(Product.tenant_id == tenant_id, Product.deleted_at.is_(None))
            .scalar()
        )
    if resource == "campaigns_per_month":
        return (
            db.query(func.count(Campaign.id))
            .filter(
                Campaign.tenant_id == tenant_id,
                Campaign.started_at.isnot(None),
                Campaign.started_at >= month_start,
            )
            .scalar()
        )
    raise ValueError(f"Unknown plan resource: {resource}")


def check_limit(db: Session, tenant: Tenant, resource: str, increment: int = 1) -> dict:
    """
    Check whether `increment` more of a resource fits in the tenant's plan.
    Returns {"allowed", "limit", "current"}; limit -1 means unlimited.
    """
    limit = get_plan_config(tenant.plan_type)["limits"][resource]
    current = _count_usage(db, tenant.id, resource)
    allowed = limit == UNLIMITED or current + increment <= limit
    return {"allowed": allowed, "limit": limit, "current": current}


def enforce_limit(db: Session, tenant: Tenant, resource: str, increment: int = 1) -> None:
    result = check_limit(db, tenant, resource, increment)
    if not result["allowed"]:
        logger.warning(
            f"⚠️ Tenant {tenant.id} reached {resource} limit ({result['current']}/{result['limit']})"
        )
        raise HTTPException(
            status_code=403,
            detail=f"Plan limit reached for {resource} ({result['current']}/{result['limit']}). "
            "Upgrade your plan to add more.",
        )


def get_usage(db: Session, tenant: Tenant) -> dict:
    """Current usage for every limited resource"""
    limits = get_plan_config(tenant.plan_type)["limits"]
    return {
        resource: {"limit": limit, "current": _count_usage(db, tenant.id, resource)}
        for resource, limit in limits.items()
    }


def enforce_feature(tenant: Tenant, feature: str) -> None:
    if not has_feature(tenant, feature):
        logger.warning(f"🚫 Feature '{feature}' not available for tenant {tenant.id}")
        raise HTTPException(
            status_code=403, detail=f"Feature '{feature}' is not available on your plan"
        )


def require_feature(feature: str):
    """FastAPI dependency factory: 403 unless the current tenant has `feature`"""
    from .auth import get_current_user

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        enforce_feature(current_user.tenant, feature)
        return current_user

    return dependency
