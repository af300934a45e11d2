"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.dates import to_naive_utc
from .recurrence import RECURRENCE_TYPES

APPOINTMENT_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "WAITING",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    "NO_SHOW",
)
APPOINTMENT_SOURCES = ("ADMIN", "ONLINE", "WHATSAPP", "PHONE")
CANCELLATION_REASONS = (
    "CLIENT_REQUEST",
    "PROFESSIONAL_UNAVAILABLE",
    "SCHEDULE_CONFLICT",
    "NO_PAYMENT",
    "AUTO_CANCELLED",
    "OTHER",
)


class AppointmentServiceItem(BaseModel):
    service_id: str
    quantity: int = Field(1, ge=1, le=20)
    custom_price: Optional[float] = Field(None, ge=0)


class RecurrenceRequest(BaseModel):
    type: str = "NONE"
    interval: int = Field(1, ge=1)
    count: Optional[int] = Field(None, ge=1)
    end_date: Optional[datetime] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        v = v.upper()
        if v not in RECURRENCE_TYPES:
            raise ValueError(f"type must be one of: {', '.join(RECURRENCE_TYPES)}")
        return v


class AppointmentCreate(BaseModel):
    customer_id: str
    professional_id: str
    scheduled_at: datetime
    services: list[AppointmentServiceItem] = []
    discount: float = Field(0, ge=0)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    source: str = "ADMIN"
    skip_conflict_check: bool = False
    recurrence: Optional[RecurrenceRequest] = None

    @field_validator("source")
    @classmethod
    def validate_source(cls, v):
        v = v.upper()
        if v not in APPOINTMENT_SOURCES:
            raise ValueError(f"source must be one of: {', '.join(APPOINTMENT_SOURCES)}")
        return v

    @field_validator("scheduled_at")
    @classmethod
    def naive_utc(cls, v: datetime):
        return to_naive_utc(v)


class AppointmentUpdate(BaseModel):
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    discount: Optional[float] = Field(None, ge=0)


class RescheduleRequest(BaseModel):
    scheduled_at: datetime
    professional_id: Optional[str] = None
    skip_conflict_check: bool = False

    @field_validator("scheduled_at")
    @classmethod
    def naive_utc(cls, v: datetime):
        return to_naive_utc(v)


class CancelRequest(BaseModel):
    reason: str = "CLIENT_REQUEST"
    description: Optional[str] = None
    cancelled_by_client: bool = False

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.upper()
        if v not in CANCELLATION_REASONS:
            raise ValueError(f"reason must be one of: {', '.join(CANCELLATION_REASONS)}")
        return v


class ConflictCheckRequest(BaseModel):
    professional_id: str
    scheduled_at: datetime
    duration: Optional[int] = Field(None, ge=5, le=720)
    service_ids: list[str] = []
    customer_id: Optional[str] = None
    exclude_id: Optional[str] = None


class AppointmentServiceResponse(BaseModel):
    id: str
    service_id: str
    service_name: Optional[str] = None
    quantity: int
    price: float
    duration: int
    custom_price: Optional[float] = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: str
    customer_id: str
    professional_id: str
    scheduled_at: datetime
    end_time: datetime
    total_duration: int
    total_price: float
    discount: float
    final_price: float
    status: str
    source: str
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    recurrence_group_id: Optional[str] = None
    recurrence_index: Optional[int] = None
    recurrence_rule: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancellation_description: Optional[str] = None
    cancelled_by_client: bool = False
    hours_before_scheduled: Optional[float] = None
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    services: list[AppointmentServiceResponse] = []

    class Config:
        from_attributes = True


class AppointmentCreatedResponse(BaseModel):
    appointments: list[AppointmentResponse]
    conflicts: list[dict] = []
