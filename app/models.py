import uuid
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
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    logo_url = Column(String(500), nullable=True)
    timezone = Column(String(50), default="America/Sao_Paulo", nullable=False)
    address = Column(JSON, nullable=True)
    status = Column(String(20), default="TRIAL", nullable=False)  # TRIAL, ACTIVE, SUSPENDED, CANCELLED
    plan_type = Column(String(20), default="FREE", nullable=False)
    trial_ends_at = Column(DateTime, nullable=True)
    feature_overrides = Column(JSON, default=dict, nullable=True)  # {"marketing": true}
    settings = Column(JSON, default=dict, nullable=True)  # booking settings, reminders
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", back_populates="tenant")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    role = Column(String(20), default="OWNER", nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, ACTIVE, INACTIVE, SUSPENDED
    email_verified_at = Column(DateTime, nullable=True)
    verification_code = Column(String(10), nullable=True)
    verification_expires_at = Column(DateTime, nullable=True)
    reset_code = Column(String(10), nullable=True)
    reset_expires_at = Column(DateTime, nullable=True)
    failed_logins = Column(Integer, default=0, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class RefreshToken(Base):
    """Issued refresh tokens, keyed by a hash of the token jti"""

    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    jti_hash = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="refresh_tokens")


professional_services = Table(
    "professional_services",
    Base.metadata,
    Column("professional_id", String(36), ForeignKey("professionals.id"), primary_key=True),
    Column("service_id", String(36), ForeignKey("services.id"), primary_key=True),
)


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String(500), nullable=True)
    color = Column(String(7), nullable=True)  # e.g., #RRGGBB
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, INACTIVE, ON_VACATION
    slot_interval = Column(Integer, nullable=True)  # minutes, falls back to tenant setting
    buffer_time = Column(Integer, default=0, nullable=False)
    accepts_online_booking = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    commission_percentage = Column(Float, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    working_hours = relationship(
        "WorkingHours",
        back_populates="professional",
        cascade="all, delete-orphan",
        order_by="WorkingHours.day_of_week",
    )
    schedule_blocks = relationship(
        "ScheduleBlock", back_populates="professional", cascade="all, delete-orphan"
    )
    services = relationship("Service", secondary=professional_services, back_populates="professionals")


class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("professional_id", "day_of_week", name="uq_working_hours_day"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    is_working_day = Column(Boolean, default=True, nullable=False)
    start_time = Column(String(5), nullable=True)  # "HH:MM"
    end_time = Column(String(5), nullable=True)
    break_start = Column(String(5), nullable=True)
    break_end = Column(String(5), nullable=True)

    professional = relationship("Professional", back_populates="working_hours")


class ScheduleBlock(Base):
    __tablename__ = "schedule_blocks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    type = Column(String(20), default="OTHER", nullable=False)  # VACATION, DAY_OFF, PERSONAL, TRAINING, OTHER
    title = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    all_day = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, APPROVED, REJECTED
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    professional = relationship("Professional", back_populates="schedule_blocks")


class ServiceCategory(Base):
    __tablename__ = "service_categories"
    __table_args__ = (UniqueConstraint("tenant_id", "slug", name="uq_service_category_slug"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    services = relationship("Service", back_populates="category")


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (UniqueConstraint("tenant_id", "slug", name="uq_service_slug"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    category_id = Column(String(36), ForeignKey("service_categories.id"), nullable=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, default=30, nullable=False)  # minutes
    price = Column(Float, default=0, nullable=False)
    cost_price = Column(Float, nullable=True)
    pricing_type = Column(String(20), default="FIXED", nullable=False)  # FIXED, FROM, BY_PROFESSIONAL
    service_type = Column(String(20), default="SINGLE", nullable=False)  # SINGLE, COMBO, PACKAGE
    combo_discount = Column(Float, nullable=True)  # percentage
    package_discount = Column(Float, nullable=True)  # percentage
    included_service_ids = Column(JSON, default=list, nullable=True)
    professional_prices = Column(JSON, default=dict, nullable=True)  # {professional_id: price}
    options = Column(JSON, default=list, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_online_bookable = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("ServiceCategory", back_populates="services")
    professionals = relationship(
        "Professional", secondary=professional_services, back_populates="services"
    )
