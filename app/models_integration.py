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
)
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_uuid


class Integration(Base):
    __tablename__ = "integrations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    # WHATSAPP, GOOGLE_CALENDAR, TWILIO, PAYMENT_GATEWAY, CUSTOM
    provider = Column(String(30), nullable=False)
    name = Column(String(255), nullable=False)
    encrypted_credentials = Column(Text, nullable=True)  # Fernet encrypted JSON
    config = Column(JSON, default=dict, nullable=True)
    status = Column(String(20), default="INACTIVE", nullable=False)  # ACTIVE, INACTIVE, ERROR
    last_error = Column(Text, nullable=True)
    last_tested_at = Column(DateTime, nullable=True)
    last_test_result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Webhook(Base):
    __tablename__ = "webhooks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False)
    events = Column(JSON, default=list, nullable=False)
    secret = Column(String(255), nullable=False)
    headers = Column(JSON, default=dict, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    retry_interval = Column(Integer, default=60, nullable=False)  # seconds
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    deliveries = relationship("WebhookDelivery", back_populates="webhook", cascade="all, delete-orphan")


class WebhookDelivery(Base):
    __tablename__ = "webhook_deliveries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    webhook_id = Column(String(36), ForeignKey("webhooks.id"), index=True, nullable=False)
    event = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), default="PENDING", index=True, nullable=False)  # PENDING, SENT, RETRYING, FAILED
    attempts = Column(Integer, default=0, nullable=False)
    http_status = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    next_retry_at = Column(DateTime, index=True, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    webhook = relationship("Webhook", back_populates="deliveries")


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    prefix = Column(String(8), index=True, nullable=False)
    key_hash = Column(String(64), unique=True, nullable=False)  # sha256 hex
    scopes = Column(JSON, default=list, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class WhatsAppMessage(Base):
    """Inbound WhatsApp messages and delivery status updates"""

    __tablename__ = "whatsapp_messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=True)
    wa_message_id = Column(String(255), index=True, nullable=False)
    direction = Column(String(10), default="INBOUND", nullable=False)
    from_phone = Column(String(30), nullable=True)
    customer_id = Column(String(36), nullable=True)
    message_type = Column(String(20), nullable=True)
    body = Column(Text, nullable=True)
    status = Column(String(20), nullable=True)  # received, sent, delivered, read, failed
    raw = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
