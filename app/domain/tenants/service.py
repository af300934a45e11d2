"""Tenant service - profile, booking settings and plan usage"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import invalidate_public_catalog
from ...models import Tenant, User
from ...plan_limits import get_features, get_usage
from .schemas import BookingSettingsUpdate, TenantUpdate

logger = logging.getLogger(__name__)

DEFAULT_BOOKING_SETTINGS = {
    "slot_interval": 30,
    "min_advance_hours": 1,
    "max_advance_days": 30,
    "auto_confirm": False,
    "allow_cancellation_hours": 2,
    "reminders": {"enabled": True, "hours_before": [24, 2], "channels": None},
}


def get_booking_settings(tenant: Tenant) -> dict:
    """Tenant booking settings merged over the defaults"""
    stored = (tenant.settings or {}).get("booking", {})
    merged = {**DEFAULT_BOOKING_SETTINGS, **stored}
    merged["reminders"] = {**DEFAULT_BOOKING_SETTINGS["reminders"], **stored.get("reminders", {})}
    return merged


class TenantService:
    def __init__(self, db: Session):
        self.db = db

    def _get_tenant(self, current_user: User) -> Tenant:
        tenant = self.db.query(Tenant).filter(Tenant.id == current_user.tenant_id).first()
        if not tenant:
            raise HTTPException(status_code=404, detail="Tenant not found")
        return tenant

    def get_current(self, current_user: User) -> dict:
        tenant = self._get_tenant(current_user)
        return self._serialize(tenant)

    def update(self, data: TenantUpdate, current_user: User) -> dict:
        tenant = self._get_tenant(current_user)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(tenant, key, value)
        self.db.commit()
        self.db.refresh(tenant)
        invalidate_public_catalog(tenant.slug)
        logger.info(f"✅ Tenant {tenant.id} profile updated")
        return self._serialize(tenant)

    def update_settings(self, data: BookingSettingsUpdate, current_user: User) -> dict:
        tenant = self._get_tenant(current_user)
        booking = get_booking_settings(tenant)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        booking.update(changes)

        # Reassign so SQLAlchemy notices the JSON change
        tenant.settings = {**(tenant.settings or {}), "booking": booking}
        self.db.commit()
        self.db.refresh(tenant)
        invalidate_public_catalog(tenant.slug)
        return booking

    def get_usage(self, current_user: User) -> dict:
        tenant = self._get_tenant(current_user)
        return {
            "plan_type": tenant.plan_type,
            "usage": get_usage(self.db, tenant),
            "features": get_features(tenant),
        }

    @staticmethod
    def _serialize(tenant: Tenant) -> dict:
        return {
            "id": tenant.id,
            "name": tenant.name,
            "slug": tenant.slug,
            "email": tenant.email,
            "phone": tenant.phone,
            "logo_url": tenant.logo_url,
            "timezone": tenant.timezone,
            "address": tenant.address,
            "status": tenant.status,
            "plan_type": tenant.plan_type,
            "trial_ends_at": tenant.trial_ends_at,
            "settings": {**(tenant.settings or {}), "booking": get_booking_settings(tenant)},
            "features": get_features(tenant),
            "created_at": tenant.created_at,
        }
