"""Notification domain schemas"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_time

CHANNELS = ("EMAIL", "SMS", "WHATSAPP", "PUSH", "IN_APP")
CATEGORIES = ("APPOINTMENT", "PAYMENT", "MARKETING", "SYSTEM", "REMINDER")
PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
STATUSES = ("PENDING", "SENT", "DELIVERED", "FAILED", "CANCELLED", "READ")
RECIPIENT_TYPES = ("CUSTOMER", "USER", "PROFESSIONAL")


def _choice(value: Optional[str], allowed: tuple, label: str) -> Optional[str]:
    if value is None:
        return value
    value = value.upper()
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


class TemplateCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    channel: str
    category: str = "SYSTEM"
    subject: Optional[str] = None
    body: str = Field(..., min_length=1)
    html_body: Optional[str] = None
    variables: list[str] = []

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        return _choice(v, CHANNELS, "Channel")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _choice(v, CATEGORIES, "Category")


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    html_body: Optional[str] = None
    variables: Optional[list[str]] = None
    is_active: Optional[bool] = None


class TemplateResponse(BaseModel):
    id: str
    code: str
    name: str
    channel: str
    category: str
    subject: Optional[str] = None
    body: str
    html_body: Optional[str] = None
    variables: Optional[list[str]] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TemplatePreviewRequest(BaseModel):
    variables: dict[str, Any] = {}


class SendNotificationRequest(BaseModel):
    channel: str
    recipient_type: str = "CUSTOMER"
    recipient_id: Optional[str] = None
    recipient_address: Optional[str] = None
    category: str = "SYSTEM"
    priority: str = "NORMAL"
    template_code: Optional[str] = None
    variables: dict[str, Any] = {}
    subject: Optional[str] = None
    body: Optional[str] = None
    html_body: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    send_now: bool = False

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        return _choice(v, CHANNELS, "Channel")

    @field_validator("recipient_type")
    @classmethod
    def validate_recipient_type(cls, v):
        return _choice(v, RECIPIENT_TYPES, "Recipient type")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _choice(v, CATEGORIES, "Category")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _choice(v, PRIORITIES, "Priority")


class BulkSendRequest(BaseModel):
    channel: str
    customer_ids: list[str] = []
    segment_id: Optional[str] = None
    category: str = "MARKETING"
    template_code: Optional[str] = None
    variables: dict[str, Any] = {}
    subject: Optional[str] = None
    body: Optional[str] = None

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        return _choice(v, CHANNELS, "Channel")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _choice(v, CATEGORIES, "Category")


class NotificationResponse(BaseModel):
    id: str
    recipient_type: str
    recipient_id: Optional[str] = None
    recipient_address: Optional[str] = None
    channel: str
    category: str
    priority: str
    subject: Optional[str] = None
    body: str
    status: str
    scheduled_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    retry_count: int
    max_retries: int
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreferenceUpdate(BaseModel):
    channels: Optional[dict[str, bool]] = None
    categories: Optional[dict[str, bool]] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def check_time(cls, v):
        return validate_time(v)


class PreferenceResponse(BaseModel):
    recipient_type: str
    recipient_id: str
    channels: dict[str, bool]
    categories: dict[str, bool]
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=10, max_length=500)
    platform: str

    @field_validator("platform")
    @classmethod
    def validate_platform(cls, v):
        v = v.lower()
        if v not in ("ios", "android", "web"):
            raise ValueError("Platform must be ios, android or web")
        return v
