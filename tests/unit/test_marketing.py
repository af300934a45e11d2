"""Unit tests for coupons, referrals and the loyalty program."""

from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.domain.marketing.loyalty import LoyaltyService, points_for_purchase, tier_for_points
from app.domain.marketing.schemas import (
    CouponCreate,
    CouponRedeemRequest,
    LoyaltyProgramCreate,
    ReferralProgramCreate,
)
from app.domain.marketing.service import MarketingService, coupon_discount, expire_referrals, referral_code
from app.models_marketing import Coupon, LoyaltyProgram, LoyaltyTransaction, Referral


@pytest.mark.unit
class TestCoupons:
    def test_discount_caps(self):
        percentage = Coupon(type="PERCENTAGE", value=20, max_discount=15)
        fixed = Coupon(type="FIXED", value=50, max_discount=None)
        assert coupon_discount(percentage, 50) == 10.0
        assert coupon_discount(percentage, 100) == 15.0
        assert coupon_discount(fixed, 30) == 30.0

    def test_validation_messages(self, db, tenant, owner):
        service = MarketingService(db)
        service.create_coupon(CouponCreate(code="bemvinda", type="PERCENTAGE", value=10, min_purchase=50), owner)
        inactive = service.create_coupon(CouponCreate(code="OLD10", type="FIXED", value=10), owner)
        service.deactivate_coupon(inactive.id, owner)
        service.create_coupon(
            CouponCreate(code="NATAL", type="FIXED", value=10, valid_from=datetime.utcnow() + timedelta(days=30)),
            owner,
        )

        assert service.validate_coupon(tenant.id, "NOPE", 100)["message"] == "Coupon not found"
        assert service.validate_coupon(tenant.id, "OLD10", 100)["message"] == "Coupon is not active"
        assert service.validate_coupon(tenant.id, "NATAL", 100)["message"] == "Coupon is outside its validity period"
        assert service.validate_coupon(tenant.id, "bemvinda", 40)["message"] == "Minimum purchase of 50.00 required"

        ok = service.validate_coupon(tenant.id, " bemvinda ", 80)
        assert ok["valid"] is True
        assert ok["discount_amount"] == 8.0

    def test_duplicate_code(self, db, owner):
        service = MarketingService(db)
        service.create_coupon(CouponCreate(code="VERAO", type="FIXED", value=5), owner)
        with pytest.raises(HTTPException) as exc:
            service.create_coupon(CouponCreate(code="verao", type="FIXED", value=7), owner)
        assert exc.value.status_code == 409

    def test_redemption_tracks_usage(self, db, tenant, owner, make_customer):
        customer = make_customer()
        other = make_customer(name="Joana", phone="+5511911112222")
        service = MarketingService(db)
        coupon = service.create_coupon(
            CouponCreate(code="UMAVEZ", type="FIXED", value=20, total_uses=2, uses_per_customer=1), owner
        )

        redemption = service.redeem_coupon(
            CouponRedeemRequest(code="UMAVEZ", customer_id=customer.id, amount=120), owner
        )
        assert redemption.final_amount == 100.0

        with pytest.raises(HTTPException) as exc:
            service.redeem_coupon(CouponRedeemRequest(code="UMAVEZ", customer_id=customer.id, amount=120), owner)
        assert exc.value.detail == "Customer already used this coupon the maximum number of times"

        service.redeem_coupon(CouponRedeemRequest(code="UMAVEZ", customer_id=other.id, amount=50), owner)
        db.refresh(coupon)
        assert coupon.used_count == 2
        assert coupon.total_discount_given == 40.0
        assert service.validate_coupon(tenant.id, "UMAVEZ", 50)["message"] == "Coupon usage limit reached"


@pytest.mark.unit
class TestReferrals:
    @pytest.fixture
    def program(self, db, owner):
        return MarketingService(db).create_referral_program(
            ReferralProgramCreate(name="Indique uma amiga", referrer_reward_value=100, referee_reward_value=50), owner
        )

    def test_code_format(self):
        code = referral_code()
        assert code.startswith("REF-")
        assert len(code) == 10

    def test_completion_rewards_both_sides(self, db, owner, program, make_customer):
        referrer = make_customer()
        referee = make_customer(name="Bruna", phone="+5511933334444")
        service = MarketingService(db)

        referral = service.create_referral(referrer.id, owner)
        assert referral.status == "PENDING"

        completed = service.complete_referral(referral.code.lower(), referee.id, owner)
        assert completed.status == "REWARDED"
        db.refresh(referrer)
        db.refresh(referee)
        assert referrer.loyalty_points == 100
        assert referee.loyalty_points == 50
        assert referee.referred_by_id == referrer.id

        with pytest.raises(HTTPException) as exc:
            service.complete_referral(referral.code, referee.id, owner)
        assert exc.value.detail == "Referral already processed or expired"

    def test_self_referral_is_refused(self, db, owner, program, make_customer):
        referrer = make_customer()
        service = MarketingService(db)
        referral = service.create_referral(referrer.id, owner)
        with pytest.raises(HTTPException) as exc:
            service.complete_referral(referral.code, referrer.id, owner)
        assert exc.value.status_code == 400

    def test_late_completion_expires_referral(self, db, owner, program, make_customer):
        referrer = make_customer()
        referee = make_customer(name="Bruna", phone="+5511933334444")
        service = MarketingService(db)
        referral = service.create_referral(referrer.id, owner)

        with pytest.raises(HTTPException) as exc:
            service.complete_referral(referral.code, referee.id, owner, now=referral.expires_at + timedelta(days=1))
        assert exc.value.detail == "Referral expired"
        db.refresh(referral)
        assert referral.status == "EXPIRED"

    def test_expiry_job(self, db, tenant, owner, program, make_customer):
        service = MarketingService(db)
        referral = service.create_referral(make_customer().id, owner)

        assert expire_referrals(db, now=datetime.utcnow())["expired"] == 0
        assert expire_referrals(db, tenant.id, now=referral.expires_at + timedelta(minutes=1)) == {"expired": 1}
        assert db.query(Referral).filter(Referral.status == "EXPIRED").count() == 1

    def test_referral_requires_program(self, db, owner, make_customer):
        with pytest.raises(HTTPException) as exc:
            MarketingService(db).create_referral(make_customer().id, owner)
        assert exc.value.status_code == 404


@pytest.mark.unit
class TestLoyalty:
    def test_tiers(self):
        assert tier_for_points(0)["name"] == "BRONZE"
        assert tier_for_points(999)["name"] == "BRONZE"
        assert tier_for_points(1000)["name"] == "SILVER"
        assert tier_for_points(20000)["name"] == "DIAMOND"

    def test_points_for_purchase_uses_multiplier(self):
        program = LoyaltyProgram(points_per_currency=1.0, tiers=None)
        assert points_for_purchase(150.0, program, "BRONZE") == 150
        assert points_for_purchase(150.0, program, "GOLD") == 225
        assert points_for_purchase(99.99, program, None) == 99

    def test_earn_redeem_and_summary(self, db, tenant, make_customer):
        customer = make_customer()
        service = LoyaltyService(db)
        service.create_program(tenant.id, LoyaltyProgramCreate(name="Clube Bella"))

        service.earn_points(tenant.id, customer.id, 1200, "Welcome")
        db.refresh(customer)
        assert customer.loyalty_tier == "SILVER"

        with pytest.raises(HTTPException):
            service.redeem_points(tenant.id, customer.id, 50)
        with pytest.raises(HTTPException):
            service.redeem_points(tenant.id, customer.id, 5000)

        result = service.redeem_points(tenant.id, customer.id, 500)
        assert result["credit_value"] == 5.0
        assert result["transaction"].balance_after == 700

        summary = service.customer_summary(tenant.id, customer.id)
        assert summary["points"] == 700
        assert summary["lifetime_points"] == 1200
        assert summary["redeemed_points"] == 500
        assert summary["credit_value"] == 7.0

    def test_adjustment_cannot_go_negative(self, db, tenant, make_customer):
        customer = make_customer()
        service = LoyaltyService(db)
        with pytest.raises(HTTPException):
            service.adjust_points(tenant.id, customer.id, -10, "Correction")
        service.adjust_points(tenant.id, customer.id, 30, "Goodwill")
        assert db.query(LoyaltyTransaction).filter(LoyaltyTransaction.type == "ADJUST").count() == 1

    def test_new_program_replaces_active_one(self, db, tenant):
        service = LoyaltyService(db)
        first = service.create_program(tenant.id, LoyaltyProgramCreate(name="V1"))
        second = service.create_program(tenant.id, LoyaltyProgramCreate(name="V2"))
        db.refresh(first)
        assert first.is_active is False
        assert service.active_program(tenant.id).id == second.id
