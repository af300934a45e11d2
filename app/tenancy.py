"""
Tenant context for the current request.

The authenticated tenant is kept in a ContextVar so services and jobs can
read it without threading it through every call. Queries are still scoped
explicitly with tenant_query(), and PostgreSQL RLS enforces the same filter
at the database level.
"""

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Query, Session

from .models import Tenant

logger = logging.getLogger(__name__)

TENANT_STATUSES = ("TRIAL", "ACTIVE", "SUSPENDED", "CANCELLED")


@dataclass
class TenantContext:
    tenant_id: str
    slug: str
    plan_type: str
    status: str
    features: dict = field(default_factory=dict)


_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar("current_tenant", default=None)


def set_tenant_context(ctx: TenantContext) -> None:
    _current_tenant.set(ctx)


def get_tenant_context() -> TenantContext:
    ctx = _current_tenant.get()
    if ctx is None:
        raise HTTPException(status_code=403, detail="Tenant context not available")
    return ctx


def clear_tenant_context() -> None:
    _current_tenant.set(None)


def build_tenant_context(tenant: Tenant) -> TenantContext:
    from .plan_limits import get_features

    return TenantContext(
        tenant_id=tenant.id,
        slug=tenant.slug,
        plan_type=tenant.plan_type,
        status=tenant.status,
        features=get_features(tenant),
    )


def validate_tenant(tenant: Optional[Tenant]) -> tuple[bool, Optional[str]]:
    """
    Check whether a tenant may use the platform.
    Returns (is_valid, error_message).
    """
    if tenant is None:
        return False, "Tenant not found"
    if tenant.status == "SUSPENDED":
        return False, "Tenant account is suspended"
    if tenant.status == "CANCELLED":
        return False, "Tenant account is cancelled"
    if tenant.status == "TRIAL" and tenant.trial_ends_at and tenant.trial_ends_at < datetime.utcnow():
        return False, "Trial period has expired"
    return True, None


def ensure_valid_tenant(tenant: Optional[Tenant]) -> Tenant:
    is_valid, error = validate_tenant(tenant)
    if not is_valid:
        logger.warning(f"🚫 Tenant rejected: {error}")
        raise HTTPException(status_code=403, detail=error)
    return tenant


def tenant_query(db: Session, model, tenant_id: Optional[str] = None, include_deleted: bool = False) -> Query:
    """
    Query a tenant-owned model, scoped to the tenant and excluding soft-deleted rows.
    Without `tenant_id` the tenant of the current request is used.
    """
    tenant_id = tenant_id or get_tenant_context().tenant_id
    query = db.query(model).filter(model.tenant_id == tenant_id)
    if not include_deleted and hasattr(model, "deleted_at"):
        query = query.filter(model.deleted_at.is_(None))
    return query
