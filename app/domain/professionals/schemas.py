"""Professional domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import normalize_phone, time_to_minutes, validate_time

PROFESSIONAL_STATUSES = ("ACTIVE", "INACTIVE", "ON_VACATION")
BLOCK_TYPES = ("VACATION", "DAY_OFF", "PERSONAL", "TRAINING", "OTHER")


class ProfessionalCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    user_id: Optional[str] = None
    slot_interval: Optional[int] = Field(None, ge=5, le=240)
    buffer_time: int = Field(0, ge=0, le=240)
    accepts_online_booking: bool = True
    commission_percentage: Optional[float] = Field(None, ge=0, le=100)
    service_ids: list[str] = []

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v):
        return v.lower() if v else v


class ProfessionalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    status: Optional[str] = None
    slot_interval: Optional[int] = Field(None, ge=5, le=240)
    buffer_time: Optional[int] = Field(None, ge=0, le=240)
    accepts_online_booking: Optional[bool] = None
    commission_percentage: Optional[float] = Field(None, ge=0, le=100)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in PROFESSIONAL_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(PROFESSIONAL_STATUSES)}")
        return v


class WorkingHoursItem(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = Sunday
    is_working_day: bool = True
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def check_time(cls, v):
        return validate_time(v)

    @model_validator(mode="after")
    def check_ranges(self):
        if not self.is_working_day:
            return self
        if not self.start_time or not self.end_time:
            raise ValueError("Working days need start_time and end_time")
        start = time_to_minutes(self.start_time)
        end = time_to_minutes(self.end_time)
        if start >= end:
            raise ValueError("start_time must be before end_time")

        if self.break_start or self.break_end:
            if not (self.break_start and self.break_end):
                raise ValueError("break_start and break_end must be set together")
            b_start = time_to_minutes(self.break_start)
            b_end = time_to_minutes(self.break_end)
            if b_start >= b_end:
                raise ValueError("break_start must be before break_end")
            if b_start < start or b_end > end:
                raise ValueError("Break must be inside working hours")
        return self


class WorkingHoursReplace(BaseModel):
    days: list[WorkingHoursItem]

    @field_validator("days")
    @classmethod
    def unique_days(cls, v):
        days = [d.day_of_week for d in v]
        if len(days) != len(set(days)):
            raise ValueError("Each day_of_week may appear only once")
        return v


class WorkingHoursResponse(BaseModel):
    day_of_week: int
    is_working_day: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    class Config:
        from_attributes = True


class ServiceAssignment(BaseModel):
    service_ids: list[str]


class ReorderRequest(BaseModel):
    ids: list[str]


class ScheduleBlockCreate(BaseModel):
    type: str = "OTHER"
    title: Optional[str] = None
    reason: Optional[str] = None
    start_date: datetime
    end_date: datetime
    all_day: bool = False

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        v = v.upper()
        if v not in BLOCK_TYPES:
            raise ValueError(f"Type must be one of: {', '.join(BLOCK_TYPES)}")
        return v


class ScheduleBlockUpdate(BaseModel):
    type: Optional[str] = None
    title: Optional[str] = None
    reason: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    all_day: Optional[bool] = None


class BlockRejectRequest(BaseModel):
    reason: Optional[str] = None


class ScheduleBlockResponse(BaseModel):
    id: str
    professional_id: str
    type: str
    title: Optional[str] = None
    reason: Optional[str] = None
    start_date: datetime
    end_date: datetime
    all_day: bool
    status: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ServiceSummary(BaseModel):
    id: str
    name: str
    duration: int
    price: float

    class Config:
        from_attributes = True


class ProfessionalResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    color: Optional[str] = None
    status: str
    slot_interval: Optional[int] = None
    buffer_time: int
    accepts_online_booking: bool
    display_order: int
    commission_percentage: Optional[float] = None
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    working_hours: list[WorkingHoursResponse] = []
    services: list[ServiceSummary] = []

    class Config:
        from_attributes = True
