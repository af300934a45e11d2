"""Public booking schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.dates import to_naive_utc
from ...shared.validators import normalize_phone, validate_email


class PublicBookingRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    professional_id: str
    service_ids: list[str] = Field(..., min_length=1)
    scheduled_at: datetime
    notes: Optional[str] = Field(None, max_length=1000)
    accepts_marketing: bool = False

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v) if v else v

    @field_validator("scheduled_at")
    @classmethod
    def naive_utc(cls, v: datetime):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_contact(self):
        if not self.phone and not self.email:
            raise ValueError("Provide a phone or an email")
        return self


class PublicCancelRequest(BaseModel):
    phone: str
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v)


class BookingConfirmation(BaseModel):
    appointment_id: str
    status: str
    scheduled_at: datetime
    end_time: datetime
    professional_name: str
    services: list[str]
    total_price: float
    salon_name: str
    message: str
