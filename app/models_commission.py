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
)
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_uuid


class CommissionRule(Base):
    __tablename__ = "commission_rules"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), default="PERCENTAGE", nullable=False)  # PERCENTAGE, FIXED, TIERED, MIXED
    trigger = Column(String(30), default="SERVICE_COMPLETED", nullable=False)
    percentage = Column(Float, nullable=True)
    fixed_amount = Column(Float, nullable=True)
    tiers = Column(JSON, default=list, nullable=True)  # [{min_value, max_value, percentage, fixed_amount}]
    conditions = Column(JSON, default=dict, nullable=True)
    priority = Column(Integer, default=0, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    valid_from = Column(DateTime, default=datetime.utcnow, nullable=False)
    valid_to = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProfessionalCommissionConfig(Base):
    __tablename__ = "professional_commission_configs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(
        String(36), ForeignKey("professionals.id"), unique=True, index=True, nullable=False
    )
    default_percentage = Column(Float, nullable=True)
    service_overrides = Column(JSON, default=dict, nullable=True)  # {service_id: {type, value}}
    product_overrides = Column(JSON, default=dict, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CommissionEntry(Base):
    __tablename__ = "commission_entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    rule_id = Column(String(36), nullable=True)
    payment_id = Column(String(36), ForeignKey("commission_payments.id"), index=True, nullable=True)
    source_type = Column(String(20), nullable=False)  # APPOINTMENT, SALE, REFERRAL, BONUS
    source_id = Column(String(36), nullable=True)
    service_id = Column(String(36), nullable=True)
    product_id = Column(String(36), nullable=True)
    description = Column(Text, nullable=True)
    base_amount = Column(Float, default=0, nullable=False)
    commission_type = Column(String(20), nullable=True)
    percentage = Column(Float, nullable=True)
    calculated_amount = Column(Float, default=0, nullable=False)
    final_amount = Column(Float, default=0, nullable=False)
    breakdown = Column(JSON, default=list, nullable=True)
    status = Column(String(20), default="PENDING", index=True, nullable=False)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    reference_date = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    adjustments = relationship(
        "CommissionAdjustment", back_populates="entry", cascade="all, delete-orphan"
    )


class CommissionAdjustment(Base):
    __tablename__ = "commission_adjustments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    entry_id = Column(String(36), ForeignKey("commission_entries.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)  # BONUS, DEDUCTION, CORRECTION
    amount = Column(Float, nullable=False)
    reason = Column(Text, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    entry = relationship("CommissionEntry", back_populates="adjustments")


class CommissionPayment(Base):
    __tablename__ = "commission_payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    gross_amount = Column(Float, default=0, nullable=False)
    deductions = Column(Float, default=0, nullable=False)
    bonuses = Column(Float, default=0, nullable=False)
    net_amount = Column(Float, default=0, nullable=False)
    entry_count = Column(Integer, default=0, nullable=False)
    payment_method = Column(String(20), nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PAID, CANCELLED
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CommissionGoal(Base):
    __tablename__ = "commission_goals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=True)
    name = Column(String(255), nullable=False)
    type = Column(String(30), nullable=False)  # REVENUE, APPOINTMENTS, NEW_CUSTOMERS, ...
    period = Column(String(20), default="MONTHLY", nullable=False)
    target_value = Column(Float, nullable=False)
    current_value = Column(Float, default=0, nullable=False)
    bonus_amount = Column(Float, nullable=True)
    bonus_percentage = Column(Float, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    achieved_at = Column(DateTime, nullable=True)
    bonus_entry_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
