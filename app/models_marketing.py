from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base
from .models import generate_uuid


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # EMAIL, SMS, WHATSAPP, PUSH
    # DRAFT, SCHEDULED, ACTIVE, PAUSED, COMPLETED, CANCELLED
    status = Column(String(20), default="DRAFT", nullable=False)
    segment_ids = Column(JSON, default=list, nullable=True)
    template_id = Column(String(36), nullable=True)
    subject = Column(String(255), nullable=True)
    content = Column(Text, nullable=True)
    coupon_id = Column(String(36), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    stats = Column(JSON, default=dict, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_coupon_code"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    code = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # PERCENTAGE, FIXED
    value = Column(Float, nullable=False)
    min_purchase = Column(Float, nullable=True)
    max_discount = Column(Float, nullable=True)
    total_uses = Column(Integer, nullable=True)  # None means unlimited
    uses_per_customer = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)
    total_discount_given = Column(Float, default=0, nullable=False)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, INACTIVE, EXPIRED
    created_at = Column(DateTime, default=datetime.utcnow)


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    coupon_id = Column(String(36), ForeignKey("coupons.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    appointment_id = Column(String(36), nullable=True)
    original_amount = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False)
    final_amount = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class LoyaltyProgram(Base):
    __tablename__ = "loyalty_programs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    points_per_currency = Column(Float, default=1, nullable=False)
    currency_per_point = Column(Float, default=0.01, nullable=False)
    min_points_redemption = Column(Integer, default=100, nullable=False)
    tiers = Column(JSON, default=list, nullable=True)  # [{name, min_points, multiplier}]
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)  # EARN, REDEEM, ADJUST, EXPIRE
    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    reference_type = Column(String(30), nullable=True)
    reference_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ReferralProgram(Base):
    __tablename__ = "referral_programs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    referrer_reward_type = Column(String(20), default="POINTS", nullable=False)  # POINTS, DISCOUNT
    referrer_reward_value = Column(Float, default=0, nullable=False)
    referee_reward_type = Column(String(20), default="POINTS", nullable=False)
    referee_reward_value = Column(Float, default=0, nullable=False)
    valid_days = Column(Integer, default=30, nullable=False)
    max_referrals_per_customer = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_referral_code"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    program_id = Column(String(36), ForeignKey("referral_programs.id"), nullable=False)
    referrer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    referee_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    code = Column(String(20), nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, COMPLETED, REWARDED, EXPIRED
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    rewarded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
