from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base
from .models import generate_uuid


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"
    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_notification_template_code"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    code = Column(String(100), nullable=False)  # e.g. appointment_reminder
    name = Column(String(255), nullable=False)
    channel = Column(String(20), nullable=False)  # EMAIL, SMS, WHATSAPP, PUSH, IN_APP
    category = Column(String(20), default="SYSTEM", nullable=False)
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    html_body = Column(Text, nullable=True)
    variables = Column(JSON, default=list, nullable=True)  # required variable names
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Notification(Base):
    """Outbound message; PENDING rows form the delivery outbox"""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    recipient_type = Column(String(20), default="CUSTOMER", nullable=False)  # CUSTOMER, USER, PROFESSIONAL
    recipient_id = Column(String(36), index=True, nullable=True)
    recipient_address = Column(String(255), nullable=True)  # email, phone or device token
    channel = Column(String(20), nullable=False)
    category = Column(String(20), default="SYSTEM", nullable=False)
    priority = Column(String(10), default="NORMAL", nullable=False)
    template_id = Column(String(36), nullable=True)
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)
    html_body = Column(Text, nullable=True)
    data = Column(JSON, default=dict, nullable=True)
    # PENDING, SENT, DELIVERED, FAILED, CANCELLED, READ
    status = Column(String(20), default="PENDING", index=True, nullable=False)
    scheduled_at = Column(DateTime, index=True, nullable=True)
    next_attempt_at = Column(DateTime, index=True, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    provider_message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    reference_type = Column(String(30), nullable=True)  # APPOINTMENT, CAMPAIGN, INVOICE
    reference_id = Column(String(36), index=True, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint("tenant_id", "recipient_type", "recipient_id", name="uq_notification_pref"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    recipient_type = Column(String(20), default="CUSTOMER", nullable=False)
    recipient_id = Column(String(36), nullable=False)
    channels = Column(JSON, nullable=False)  # {"email": true, "sms": true, ...}
    categories = Column(JSON, nullable=False)
    quiet_hours_enabled = Column(Boolean, default=False, nullable=False)
    quiet_hours_start = Column(String(5), default="22:00", nullable=False)
    quiet_hours_end = Column(String(5), default="08:00", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DeviceToken(Base):
    __tablename__ = "device_tokens"
    __table_args__ = (UniqueConstraint("tenant_id", "token", name="uq_device_token"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    recipient_type = Column(String(20), default="USER", nullable=False)
    recipient_id = Column(String(36), index=True, nullable=False)
    token = Column(String(500), nullable=False)
    platform = Column(String(20), nullable=False)  # ios, android, web
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
