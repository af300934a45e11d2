"""
Customer models: customers, notes, segments and merge history.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_uuid


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True, nullable=True)
    phone = Column(String(30), index=True, nullable=True)
    cpf = Column(String(11), index=True, nullable=True)  # digits only
    birth_date = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, default=list, nullable=True)
    source = Column(String(30), default="ADMIN", nullable=True)  # ADMIN, ONLINE, IMPORT, REFERRAL
    referred_by_id = Column(String(36), nullable=True)
    address = Column(JSON, nullable=True)
    accepts_email_marketing = Column(Boolean, default=True, nullable=False)
    accepts_sms_marketing = Column(Boolean, default=True, nullable=False)
    accepts_whatsapp_marketing = Column(Boolean, default=True, nullable=False)

    # Loyalty
    loyalty_points = Column(Integer, default=0, nullable=False)
    lifetime_points = Column(Integer, default=0, nullable=False)
    loyalty_tier = Column(String(20), default="BRONZE", nullable=False)

    # Cached metrics, refreshed by recalculate_metrics
    total_appointments = Column(Integer, default=0, nullable=False)
    completed_appointments = Column(Integer, default=0, nullable=False)
    cancelled_appointments = Column(Integer, default=0, nullable=False)
    no_show_count = Column(Integer, default=0, nullable=False)
    total_spent = Column(Float, default=0, nullable=False)
    average_ticket = Column(Float, default=0, nullable=False)
    visit_frequency = Column(Integer, default=0, nullable=False)  # average days between visits
    last_visit_at = Column(DateTime, nullable=True)
    metrics_updated_at = Column(DateTime, nullable=True)

    merged_into_id = Column(String(36), nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    deletion_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer_notes = relationship(
        "CustomerNote", back_populates="customer", cascade="all, delete-orphan"
    )
    segment_memberships = relationship(
        "SegmentMember", back_populates="customer", cascade="all, delete-orphan"
    )


class CustomerNote(Base):
    __tablename__ = "customer_notes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    author_id = Column(String(36), nullable=True)
    content = Column(Text, nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="customer_notes")


class Segment(Base):
    __tablename__ = "segments"
    __table_args__ = (UniqueConstraint("tenant_id", "slug", name="uq_segment_slug"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), default="MANUAL", nullable=False)  # MANUAL, SMART, AUTOMATIC
    rules = Column(JSON, nullable=True)  # {"operator": "AND", "rules": [...]}
    color = Column(String(7), nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    customer_count = Column(Integer, default=0, nullable=False)
    last_evaluated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("SegmentMember", back_populates="segment", cascade="all, delete-orphan")


class SegmentMember(Base):
    __tablename__ = "segment_members"
    __table_args__ = (UniqueConstraint("segment_id", "customer_id", name="uq_segment_member"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    segment_id = Column(String(36), ForeignKey("segments.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    segment = relationship("Segment", back_populates="members")
    customer = relationship("Customer", back_populates="segment_memberships")


class CustomerMergeLog(Base):
    __tablename__ = "customer_merge_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    primary_customer_id = Column(String(36), nullable=False)
    merged_customer_ids = Column(JSON, nullable=False)
    strategy = Column(String(20), nullable=False)
    transferred = Column(JSON, nullable=True)  # counts of moved records
    merged_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
