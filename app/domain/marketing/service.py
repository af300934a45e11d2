"""Marketing service - campaigns, coupons, referrals and marketing stats"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import User
from ...models_customer import Customer
from ...models_marketing import (
    Campaign,
    Coupon,
    CouponRedemption,
    Referral,
    ReferralProgram,
)
from ...plan_limits import enforce_limit
from ..customers.segmentation import SegmentService
from ..notifications.service import NotificationService
from .loyalty import LoyaltyService, record_points
from .schemas import (
    CampaignCreate,
    CampaignUpdate,
    CouponCreate,
    CouponRedeemRequest,
    CouponUpdate,
    CouponValidateRequest,
    ReferralProgramCreate,
    ReferralProgramUpdate,
)

logger = logging.getLogger(__name__)

OPT_IN_FIELDS = {
    "EMAIL": "accepts_email_marketing",
    "SMS": "accepts_sms_marketing",
    "WHATSAPP": "accepts_whatsapp_marketing",
}
CODE_ALPHABET = string.ascii_uppercase + string.digits


def coupon_discount(coupon: Coupon, amount: float) -> float:
    """Discount for `amount`, capped by max_discount and by the amount itself"""
    if coupon.type == "PERCENTAGE":
        discount = amount * coupon.value / 100
    else:
        discount = coupon.value
    if coupon.max_discount is not None:
        discount = min(discount, coupon.max_discount)
    return round(min(discount, amount), 2)


def referral_code() -> str:
    return "REF-" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))


def expire_referrals(db: Session, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Cron entry point: PENDING referrals past their expiry become EXPIRED"""
    now = now or datetime.utcnow()
    query = db.query(Referral).filter(Referral.status == "PENDING", Referral.expires_at < now)
    if tenant_id:
        query = query.filter(Referral.tenant_id == tenant_id)
    try:
        expired = 0
        for referral in query.all():
            referral.status = "EXPIRED"
            expired += 1
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Referral expiry failed: {e}")
        raise
    if expired:
        logger.info(f"⌛ Expired {expired} referral(s)")
    return {"expired": expired}


class MarketingService:
    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # Campaigns
    # ========================================================================

    def _get_campaign(self, campaign_id: str, tenant_id: str) -> Campaign:
        campaign = (
            self.db.query(Campaign).filter(Campaign.id == campaign_id, Campaign.tenant_id == tenant_id).first()
        )
        if not campaign:
            raise HTTPException(status_code=404, detail="Campaign not found")
        return campaign

    def get_campaign(self, campaign_id: str, user: User) -> Campaign:
        return self._get_campaign(campaign_id, user.tenant_id)

    def campaigns_query(self, user: User, status: Optional[str] = None, type_: Optional[str] = None):
        query = self.db.query(Campaign).filter(Campaign.tenant_id == user.tenant_id)
        if status:
            query = query.filter(Campaign.status == status.upper())
        if type_:
            query = query.filter(Campaign.type == type_.upper())
        return query.order_by(Campaign.created_at.desc())

    def create_campaign(self, data: CampaignCreate, user: User) -> Campaign:
        if data.coupon_id:
            self._get_coupon(data.coupon_id, user.tenant_id)
        campaign = Campaign(
            tenant_id=user.tenant_id,
            status="SCHEDULED" if data.scheduled_at else "DRAFT",
            stats={},
            created_by=user.id,
            **data.model_dump(),
        )
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"📣 Campaign {campaign.name} created ({campaign.type})")
        return campaign

    def update_campaign(self, campaign_id: str, data: CampaignUpdate, user: User) -> Campaign:
        campaign = self._get_campaign(campaign_id, user.tenant_id)
        if campaign.status != "DRAFT":
            raise HTTPException(status_code=400, detail="Only draft campaigns can be edited")
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(campaign, field, value)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def campaign_recipients(self, campaign: Campaign) -> list[Customer]:
        query = self.db.query(Customer).filter(
            Customer.tenant_id == campaign.tenant_id,
            Customer.deleted_at.is_(None),
            Customer.merged_into_id.is_(None),
        )
        if campaign.segment_ids:
            ids = SegmentService(self.db).member_ids(campaign.segment_ids, campaign.tenant_id)
            if not ids:
                return []
            query = query.filter(Customer.id.in_(ids))
        opt_in = OPT_IN_FIELDS.get(campaign.type)
        if opt_in:
            query = query.filter(getattr(Customer, opt_in).is_(True))
        return query.all()

    def start_campaign(self, campaign_id: str, user: User) -> Campaign:
        campaign = self._get_campaign(campaign_id, user.tenant_id)
        if campaign.status not in ("DRAFT", "SCHEDULED"):
            raise HTTPException(status_code=400, detail="Campaign cannot be started")
        enforce_limit(self.db, user.tenant, "campaigns_per_month")

        notifications = NotificationService(self.db)
        template_code = None
        if campaign.template_id:
            template_code = notifications.get_template(campaign.template_id, user.tenant_id).code
        coupon = self._get_coupon(campaign.coupon_id, user.tenant_id) if campaign.coupon_id else None

        recipients = self.campaign_recipients(campaign)
        queued = 0
        for customer in recipients:
            notification = notifications.send(
                tenant_id=user.tenant_id,
                channel=campaign.type,
                body=campaign.content,
                subject=campaign.subject,
                recipient_type="CUSTOMER",
                recipient_id=customer.id,
                category="MARKETING",
                template_code=template_code,
                variables={
                    "customer_name": customer.name,
                    "salon_name": user.tenant.name,
                    "coupon_code": coupon.code if coupon else None,
                },
                scheduled_at=campaign.scheduled_at,
                reference_type="CAMPAIGN",
                reference_id=campaign.id,
                commit=False,
            )
            if notification.status == "PENDING":
                queued += 1

        campaign.status = "ACTIVE"
        campaign.started_at = datetime.utcnow()
        campaign.stats = {**(campaign.stats or {}), "total_recipients": len(recipients), "queued": queued}
        self.db.commit()
        self.db.refresh(campaign)
        logger.info(f"🚀 Campaign {campaign.id} started: {queued}/{len(recipients)} notification(s) queued")
        return campaign

    def pause_campaign(self, campaign_id: str, user: User) -> Campaign:
        campaign = self._get_campaign(campaign_id, user.tenant_id)
        if campaign.status != "ACTIVE":
            raise HTTPException(status_code=400, detail="Campaign is not active")
        campaign.status = "PAUSED"
        campaign.paused_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def complete_campaign(self, campaign_id: str, user: User) -> Campaign:
        campaign = self._get_campaign(campaign_id, user.tenant_id)
        campaign.status = "COMPLETED"
        campaign.completed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def delete_campaign(self, campaign_id: str, user: User) -> dict:
        campaign = self._get_campaign(campaign_id, user.tenant_id)
        if campaign.status == "ACTIVE":
            raise HTTPException(status_code=400, detail="Active campaigns cannot be deleted")
        self.db.delete(campaign)
        self.db.commit()
        return {"message": "Campaign deleted"}

    # ========================================================================
    # Coupons
    # ========================================================================

    def _get_coupon(self, coupon_id: str, tenant_id: str) -> Coupon:
        coupon = self.db.query(Coupon).filter(Coupon.id == coupon_id, Coupon.tenant_id == tenant_id).first()
        if not coupon:
            raise HTTPException(status_code=404, detail="Coupon not found")
        return coupon

    def get_coupon(self, coupon_id: str, user: User) -> Coupon:
        return self._get_coupon(coupon_id, user.tenant_id)

    def coupons_query(self, user: User, status: Optional[str] = None):
        query = self.db.query(Coupon).filter(Coupon.tenant_id == user.tenant_id)
        if status:
            query = query.filter(Coupon.status == status.upper())
        return query.order_by(Coupon.created_at.desc())

    def create_coupon(self, data: CouponCreate, user: User) -> Coupon:
        exists = self.db.query(Coupon.id).filter(Coupon.tenant_id == user.tenant_id, Coupon.code == data.code).first()
        if exists:
            raise HTTPException(status_code=409, detail="A coupon with this code already exists")
        coupon = Coupon(tenant_id=user.tenant_id, **data.model_dump())
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        logger.info(f"🎟️ Coupon {coupon.code} created")
        return coupon

    def update_coupon(self, coupon_id: str, data: CouponUpdate, user: User) -> Coupon:
        coupon = self._get_coupon(coupon_id, user.tenant_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(coupon, field, value)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def deactivate_coupon(self, coupon_id: str, user: User) -> Coupon:
        coupon = self._get_coupon(coupon_id, user.tenant_id)
        coupon.status = "INACTIVE"
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def validate_coupon(
        self,
        tenant_id: str,
        code: str,
        amount: float,
        customer_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.utcnow()
        coupon = (
            self.db.query(Coupon)
            .filter(Coupon.tenant_id == tenant_id, Coupon.code == code.strip().upper())
            .first()
        )
        if not coupon:
            return {"valid": False, "discount_amount": 0, "message": "Coupon not found"}
        result = {"valid": False, "discount_amount": 0, "coupon_id": coupon.id}
        if coupon.status != "ACTIVE":
            return {**result, "message": "Coupon is not active"}
        if (coupon.valid_from and now < coupon.valid_from) or (coupon.valid_to and now > coupon.valid_to):
            return {**result, "message": "Coupon is outside its validity period"}
        if coupon.total_uses is not None and coupon.used_count >= coupon.total_uses:
            return {**result, "message": "Coupon usage limit reached"}
        if customer_id and coupon.uses_per_customer is not None:
            used = (
                self.db.query(func.count(CouponRedemption.id))
                .filter(CouponRedemption.coupon_id == coupon.id, CouponRedemption.customer_id == customer_id)
                .scalar()
            )
            if used >= coupon.uses_per_customer:
                return {**result, "message": "Customer already used this coupon the maximum number of times"}
        if coupon.min_purchase is not None and amount < coupon.min_purchase:
            return {**result, "message": f"Minimum purchase of {coupon.min_purchase:.2f} required"}
        return {**result, "valid": True, "discount_amount": coupon_discount(coupon, amount), "message": None}

    def validate_request(self, data: CouponValidateRequest, user: User) -> dict:
        return self.validate_coupon(user.tenant_id, data.code, data.amount, data.customer_id)

    def redeem_coupon(self, data: CouponRedeemRequest, user: User) -> CouponRedemption:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == data.customer_id, Customer.tenant_id == user.tenant_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        validation = self.validate_coupon(user.tenant_id, data.code, data.amount, data.customer_id)
        if not validation["valid"]:
            raise HTTPException(status_code=400, detail=validation["message"])

        coupon = self._get_coupon(validation["coupon_id"], user.tenant_id)
        discount = validation["discount_amount"]
        redemption = CouponRedemption(
            tenant_id=user.tenant_id,
            coupon_id=coupon.id,
            customer_id=customer.id,
            appointment_id=data.appointment_id,
            original_amount=data.amount,
            discount_amount=discount,
            final_amount=round(data.amount - discount, 2),
        )
        self.db.add(redemption)
        coupon.used_count = (coupon.used_count or 0) + 1
        coupon.total_discount_given = round((coupon.total_discount_given or 0) + discount, 2)
        self.db.commit()
        self.db.refresh(redemption)
        logger.info(f"🎟️ Coupon {coupon.code} redeemed by {customer.id}: -{discount:.2f}")
        return redemption

    # ========================================================================
    # Referrals
    # ========================================================================

    def active_referral_program(self, tenant_id: str) -> Optional[ReferralProgram]:
        return (
            self.db.query(ReferralProgram)
            .filter(ReferralProgram.tenant_id == tenant_id, ReferralProgram.is_active.is_(True))
            .first()
        )

    def _require_referral_program(self, tenant_id: str) -> ReferralProgram:
        program = self.active_referral_program(tenant_id)
        if not program:
            raise HTTPException(status_code=404, detail="No active referral program")
        return program

    def create_referral_program(self, data: ReferralProgramCreate, user: User) -> ReferralProgram:
        previous = self.active_referral_program(user.tenant_id)
        if previous:
            previous.is_active = False
        program = ReferralProgram(tenant_id=user.tenant_id, is_active=True, **data.model_dump())
        self.db.add(program)
        self.db.commit()
        self.db.refresh(program)
        return program

    def update_referral_program(self, program_id: str, data: ReferralProgramUpdate, user: User) -> ReferralProgram:
        program = (
            self.db.query(ReferralProgram)
            .filter(ReferralProgram.id == program_id, ReferralProgram.tenant_id == user.tenant_id)
            .first()
        )
        if not program:
            raise HTTPException(status_code=404, detail="Referral program not found")
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(program, field, value)
        self.db.commit()
        self.db.refresh(program)
        return program

    def _customer(self, tenant_id: str, customer_id: str) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def referrals_query(self, user: User, status: Optional[str] = None, referrer_id: Optional[str] = None):
        query = self.db.query(Referral).filter(Referral.tenant_id == user.tenant_id)
        if status:
            query = query.filter(Referral.status == status.upper())
        if referrer_id:
            query = query.filter(Referral.referrer_id == referrer_id)
        return query.order_by(Referral.created_at.desc())

    def create_referral(self, referrer_id: str, user: User) -> Referral:
        program = self._require_referral_program(user.tenant_id)
        referrer = self._customer(user.tenant_id, referrer_id)
        if program.max_referrals_per_customer:
            count = (
                self.db.query(func.count(Referral.id))
                .filter(Referral.tenant_id == user.tenant_id, Referral.referrer_id == referrer.id)
                .scalar()
            )
            if count >= program.max_referrals_per_customer:
                raise HTTPException(status_code=400, detail="Referral limit reached for this customer")

        code = referral_code()
        while self.db.query(Referral.id).filter(Referral.tenant_id == user.tenant_id, Referral.code == code).first():
            code = referral_code()
        referral = Referral(
            tenant_id=user.tenant_id,
            program_id=program.id,
            referrer_id=referrer.id,
            code=code,
            status="PENDING",
            expires_at=datetime.utcnow() + timedelta(days=program.valid_days),
        )
        self.db.add(referral)
        self.db.commit()
        self.db.refresh(referral)
        logger.info(f"🤝 Referral {code} created for customer {referrer.id}")
        return referral

    def complete_referral(self, code: str, referee_id: str, user: User, now: Optional[datetime] = None) -> Referral:
        now = now or datetime.utcnow()
        referral = (
            self.db.query(Referral)
            .filter(Referral.tenant_id == user.tenant_id, Referral.code == code.strip().upper())
            .first()
        )
        if not referral:
            raise HTTPException(status_code=404, detail="Referral not found")
        if referral.status != "PENDING":
            raise HTTPException(status_code=400, detail="Referral already processed or expired")
        if now > referral.expires_at:
            referral.status = "EXPIRED"
            self.db.commit()
            raise HTTPException(status_code=400, detail="Referral expired")

        referee = self._customer(user.tenant_id, referee_id)
        if referee.id == referral.referrer_id:
            raise HTTPException(status_code=400, detail="Customers cannot refer themselves")

        referral.referee_id = referee.id
        referral.status = "COMPLETED"
        referral.completed_at = now
        if not referee.referred_by_id:
            referee.referred_by_id = referral.referrer_id

        program = self.db.query(ReferralProgram).filter(ReferralProgram.id == referral.program_id).first()
        self._apply_rewards(referral, program, referee)
        referral.status = "REWARDED"
        referral.rewarded_at = now
        self.db.commit()
        self.db.refresh(referral)
        logger.info(f"🎉 Referral {referral.code} completed by {referee.id}")
        return referral

    def _apply_rewards(self, referral: Referral, program: Optional[ReferralProgram], referee: Customer) -> None:
        if not program:
            return
        tiers = None
        loyalty = LoyaltyService(self.db).active_program(referral.tenant_id)
        if loyalty:
            tiers = loyalty.tiers
        if program.referrer_reward_type == "POINTS" and program.referrer_reward_value > 0:
            referrer = self._customer(referral.tenant_id, referral.referrer_id)
            record_points(
                self.db, referrer, int(program.referrer_reward_value), "EARN",
                "Referral bonus", "REFERRAL", referral.id, tiers=tiers,
            )
        if program.referee_reward_type == "POINTS" and program.referee_reward_value > 0:
            record_points(
                self.db, referee, int(program.referee_reward_value), "EARN",
                "Welcome bonus", "REFERRAL", referral.id, tiers=tiers,
            )

    # ========================================================================
    # Stats
    # ========================================================================

    def stats(self, user: User) -> dict:
        tenant_id = user.tenant_id
        campaigns = dict(
            self.db.query(Campaign.status, func.count(Campaign.id))
            .filter(Campaign.tenant_id == tenant_id)
            .group_by(Campaign.status)
            .all()
        )
        coupon_count, coupon_uses, coupon_discount_total = (
            self.db.query(
                func.count(Coupon.id),
                func.coalesce(func.sum(Coupon.used_count), 0),
                func.coalesce(func.sum(Coupon.total_discount_given), 0),
            )
            .filter(Coupon.tenant_id == tenant_id)
            .one()
        )
        active_coupons = (
            self.db.query(func.count(Coupon.id))
            .filter(Coupon.tenant_id == tenant_id, Coupon.status == "ACTIVE")
            .scalar()
        )
        referrals = dict(
            self.db.query(Referral.status, func.count(Referral.id))
            .filter(Referral.tenant_id == tenant_id)
            .group_by(Referral.status)
            .all()
        )
        total_referrals = sum(referrals.values())
        converted = referrals.get("COMPLETED", 0) + referrals.get("REWARDED", 0)
        return {
            "campaigns": {"total": sum(campaigns.values()), "by_status": campaigns},
            "coupons": {
                "total": coupon_count,
                "active": active_coupons,
                "redemptions": int(coupon_uses or 0),
                "discount_given": round(float(coupon_discount_total or 0), 2),
            },
            "loyalty": LoyaltyService(self.db).stats(tenant_id),
            "referrals": {
                "total": total_referrals,
                "by_status": referrals,
                "conversion_rate": round(converted / total_referrals * 100, 2) if total_referrals else 0,
            },
        }
