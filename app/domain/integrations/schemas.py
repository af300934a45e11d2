"""Integration domain schemas"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from .webhooks import WEBHOOK_EVENTS

PROVIDERS = ("WHATSAPP", "GOOGLE_CALENDAR", "TWILIO", "PAYMENT_GATEWAY", "CUSTOM")


class IntegrationCreate(BaseModel):
    provider: str
    name: str = Field(..., min_length=1, max_length=255)
    credentials: dict[str, Any] = {}
    config: dict[str, Any] = {}

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        v = v.upper()
        if v not in PROVIDERS:
            raise ValueError(f"Provider must be one of: {', '.join(PROVIDERS)}")
        return v


class IntegrationUpdate(BaseModel):
    name: Optional[str] = None
    credentials: Optional[dict[str, Any]] = None
    config: Optional[dict[str, Any]] = None


class IntegrationResponse(BaseModel):
    id: str
    provider: str
    name: str
    config: Optional[dict] = None
    status: str
    has_credentials: bool = False
    last_error: Optional[str] = None
    last_tested_at: Optional[datetime] = None
    last_test_result: Optional[dict] = None
    created_at: Optional[datetime] = None


class WebhookCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: HttpUrl
    events: list[str]
    headers: dict[str, str] = {}
    max_retries: int = Field(3, ge=0, le=10)
    retry_interval: int = Field(60, ge=10, le=3600)

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        if not v:
            raise ValueError("At least one event is required")
        unknown = [e for e in v if e != "*" and e not in WEBHOOK_EVENTS]
        if unknown:
            raise ValueError(f"Unknown events: {', '.join(unknown)}")
        return v


class WebhookUpdate(BaseModel):
    name: Optional[str] = None
    url: Optional[HttpUrl] = None
    events: Optional[list[str]] = None
    headers: Optional[dict[str, str]] = None
    is_active: Optional[bool] = None
    max_retries: Optional[int] = Field(None, ge=0, le=10)
    retry_interval: Optional[int] = Field(None, ge=10, le=3600)

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        if v is not None:
            unknown = [e for e in v if e != "*" and e not in WEBHOOK_EVENTS]
            if unknown:
                raise ValueError(f"Unknown events: {', '.join(unknown)}")
        return v


class WebhookResponse(BaseModel):
    id: str
    name: str
    url: str
    events: list[str]
    headers: Optional[dict] = None
    is_active: bool
    max_retries: int
    retry_interval: int
    success_count: int
    failure_count: int
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WebhookCreatedResponse(WebhookResponse):
    secret: str


class DeliveryResponse(BaseModel):
    id: str
    webhook_id: str
    event: str
    payload: dict
    status: str
    attempts: int
    http_status: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    scopes: list[str] = []
    expires_at: Optional[datetime] = None


class ApiKeyResponse(BaseModel):
    id: str
    name: str
    prefix: str
    scopes: Optional[list[str]] = None
    is_active: bool
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApiKeyCreatedResponse(ApiKeyResponse):
    key: str


class WhatsAppSendRequest(BaseModel):
    to: str
    body: Optional[str] = None
    template_name: Optional[str] = None
    language: str = "pt_BR"
    parameters: list[str] = []
