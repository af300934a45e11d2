"""Tenant domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import normalize_phone


class TenantResponse(BaseModel):
    id: str
    name: str
    slug: str
    email: Optional[str] = None
    phone: Optional[str] = None
    logo_url: Optional[str] = None
    timezone: str
    address: Optional[dict] = None
    status: str
    plan_type: str
    trial_ends_at: Optional[datetime] = None
    settings: Optional[dict] = None
    features: dict[str, bool] = {}
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    logo_url: Optional[str] = None
    timezone: Optional[str] = None
    address: Optional[dict] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v


class ReminderSettings(BaseModel):
    enabled: bool = True
    hours_before: list[int] = [24, 2]
    channels: Optional[list[str]] = None  # same channels for every reminder when set


class BookingSettingsUpdate(BaseModel):
    slot_interval: Optional[int] = Field(None, ge=5, le=240)
    min_advance_hours: Optional[int] = Field(None, ge=0, le=720)
    max_advance_days: Optional[int] = Field(None, ge=1, le=365)
    auto_confirm: Optional[bool] = None
    allow_cancellation_hours: Optional[int] = Field(None, ge=0, le=720)
    reminders: Optional[ReminderSettings] = None


class UsageItem(BaseModel):
    limit: int
    current: int


class UsageResponse(BaseModel):
    plan_type: str
    usage: dict[str, UsageItem]
    features: dict[str, bool]
