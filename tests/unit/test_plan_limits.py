"""Tests for plan limits and feature flags"""

from datetime import datetime

import pytest
from fastapi import HTTPException

from app.plan_limits import (
    ALL_FEATURES,
    UNLIMITED,
    check_limit,
    enforce_limit,
    get_features,
    get_plan_config,
    get_usage,
    has_feature,
    require_feature,
)


@pytest.fixture
def free_tenant(db, tenant):
    tenant.plan_type = "FREE"
    db.commit()
    return tenant


@pytest.mark.unit
class TestFeatures:
    def test_free_plan_only_books_online(self, free_tenant):
        features = get_features(free_tenant)
        assert [name for name, enabled in features.items() if enabled] == ["online_booking"]

    def test_enterprise_has_everything(self, tenant):
        assert all(has_feature(tenant, name) for name in ALL_FEATURES)

    def test_override_enables_feature(self, db, free_tenant):
        free_tenant.feature_overrides = {"marketing": True}
        db.commit()
        assert has_feature(free_tenant, "marketing")
        assert not has_feature(free_tenant, "loyalty")

    def test_unknown_plan_falls_back_to_free(self):
        assert get_plan_config("GOLD") == get_plan_config("FREE")
        assert get_plan_config(None) == get_plan_config("FREE")

    def test_require_feature_dependency(self, free_tenant, owner):
        dependency = require_feature("inventory")
        with pytest.raises(HTTPException) as exc:
            dependency(current_user=owner)
        assert exc.value.status_code == 403
        assert "inventory" in exc.value.detail

        assert require_feature("online_booking")(current_user=owner) is owner


@pytest.mark.unit
class TestLimits:
    def test_enterprise_is_unlimited(self, db, tenant, owner):
        result = check_limit(db, tenant, "users", 500)
        assert result == {"allowed": True, "limit": UNLIMITED, "current": 1}

    def test_free_plan_allows_one_user(self, db, free_tenant, owner):
        result = check_limit(db, free_tenant, "users")
        assert result == {"allowed": False, "limit": 1, "current": 1}

        with pytest.raises(HTTPException) as exc:
            enforce_limit(db, free_tenant, "users")
        assert exc.value.status_code == 403
        assert "(1/1)" in exc.value.detail

    def test_counts_only_live_records(self, db, free_tenant, make_customer):
        make_customer()
        make_customer(name="Joana", phone="+5511911112222")
        make_customer(name="Lia", phone="+5511933334444", deleted_at=datetime.utcnow())
        assert check_limit(db, free_tenant, "clients")["current"] == 2

    def test_usage_lists_every_resource(self, db, free_tenant, owner):
        usage = get_usage(db, free_tenant)
        assert usage["users"] == {"limit": 1, "current": 1}
        assert usage["campaigns_per_month"] == {"limit": 0, "current": 0}

    def test_unknown_resource(self, db, tenant):
        with pytest.raises(KeyError):
            check_limit(db, tenant, "spaceships")
