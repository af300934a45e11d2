"""Tests for tenant validation, request context and scoped queries"""

from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.models_customer import Customer
from app.tenancy import (
    build_tenant_context,
    clear_tenant_context,
    ensure_valid_tenant,
    get_tenant_context,
    set_tenant_context,
    tenant_query,
    validate_tenant,
)


@pytest.fixture
def context(tenant):
    set_tenant_context(build_tenant_context(tenant))
    yield
    clear_tenant_context()


@pytest.mark.unit
class TestValidateTenant:
    def test_active(self, tenant):
        assert validate_tenant(tenant) == (True, None)

    @pytest.mark.parametrize(
        "status,message",
        [("SUSPENDED", "suspended"), ("CANCELLED", "cancelled")],
    )
    def test_blocked_statuses(self, tenant, status, message):
        tenant.status = status
        valid, error = validate_tenant(tenant)
        assert not valid
        assert message in error

    def test_expired_trial(self, tenant):
        tenant.status = "TRIAL"
        tenant.trial_ends_at = datetime.utcnow() - timedelta(days=1)
        with pytest.raises(HTTPException) as exc:
            ensure_valid_tenant(tenant)
        assert exc.value.status_code == 403

    def test_missing(self):
        assert validate_tenant(None) == (False, "Tenant not found")


@pytest.mark.unit
class TestTenantContext:
    def test_context_carries_plan_features(self, tenant, context):
        ctx = get_tenant_context()
        assert ctx.tenant_id == tenant.id
        assert ctx.slug == "studio-bella"
        assert ctx.features["inventory"] is True

    def test_missing_context_is_forbidden(self):
        clear_tenant_context()
        with pytest.raises(HTTPException) as exc:
            get_tenant_context()
        assert exc.value.status_code == 403

    def test_query_defaults_to_current_tenant(self, db, tenant, context, make_customer):
        mine = make_customer()
        gone = make_customer(name="Ex Cliente", phone="+5511911110000")
        gone.deleted_at = datetime.utcnow()
        db.add(Customer(tenant_id="other-tenant", name="Outra", phone="+5511933334444", tags=[]))
        db.commit()

        assert [c.id for c in tenant_query(db, Customer)] == [mine.id]
        assert tenant_query(db, Customer, include_deleted=True).count() == 2
