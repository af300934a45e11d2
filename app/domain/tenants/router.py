"""Tenant router - current tenant profile, settings and usage"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from .schemas import BookingSettingsUpdate, TenantResponse, TenantUpdate, UsageResponse
from .service import TenantService

router = APIRouter(prefix="/api/v1/tenants", tags=["Tenants"])


def get_tenant_service(db: Session = Depends(get_db)) -> TenantService:
    return TenantService(db)


@router.get("/me", response_model=TenantResponse)
async def get_my_tenant(
    current_user: User = Depends(get_current_user),
    service: TenantService = Depends(get_tenant_service),
):
    return service.get_current(current_user)


@router.patch("/me", response_model=TenantResponse)
async def update_my_tenant(
    data: TenantUpdate,
    current_user: User = Depends(require_roles("OWNER")),
    service: TenantService = Depends(get_tenant_service),
):
    """Update the business profile (owner only)"""
    return service.update(data, current_user)


@router.get("/me/usage", response_model=UsageResponse)
async def get_usage(
    current_user: User = Depends(get_current_user),
    service: TenantService = Depends(get_tenant_service),
):
    """Every plan limit with the tenant's current usage"""
    return service.get_usage(current_user)


@router.patch("/me/settings")
async def update_booking_settings(
    data: BookingSettingsUpdate,
    current_user: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    service: TenantService = Depends(get_tenant_service),
):
    return service.update_settings(data, current_user)
