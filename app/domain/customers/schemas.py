"""Customer domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import normalize_phone, validate_cpf, validate_email
from .segmentation import SEGMENT_TYPES, validate_rules

CUSTOMER_SOURCES = ("ADMIN", "ONLINE", "IMPORT", "REFERRAL", "WHATSAPP")
TAG_ACTIONS = ("add", "remove", "set")
BULK_ACTIONS = ("update", "add_tags", "remove_tags", "delete")


class _ContactValidators(BaseModel):
    @field_validator("phone", check_fields=False)
    @classmethod
    def validate_phone(cls, v):
        if v:
            return normalize_phone(v)
        return v

    @field_validator("email", check_fields=False)
    @classmethod
    def validate_email_field(cls, v):
        if v:
            return validate_email(v)
        return v

    @field_validator("cpf", check_fields=False)
    @classmethod
    def validate_cpf_field(cls, v):
        if v:
            return validate_cpf(v)
        return v


class CustomerCreate(_ContactValidators):
    name: str = Field(..., min_length=2, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = []
    source: str = "ADMIN"
    referred_by_id: Optional[str] = None
    address: Optional[dict] = None
    accepts_email_marketing: bool = True
    accepts_sms_marketing: bool = True
    accepts_whatsapp_marketing: bool = True

    @field_validator("source")
    @classmethod
    def validate_source(cls, v):
        v = v.upper()
        if v not in CUSTOMER_SOURCES:
            raise ValueError(f"source must be one of: {', '.join(CUSTOMER_SOURCES)}")
        return v

    @model_validator(mode="after")
    def require_contact(self):
        if not self.phone and not self.email:
            raise ValueError("Phone or email is required")
        return self


class CustomerUpdate(_ContactValidators):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    address: Optional[dict] = None
    accepts_email_marketing: Optional[bool] = None
    accepts_sms_marketing: Optional[bool] = None
    accepts_whatsapp_marketing: Optional[bool] = None


class CustomerResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = []
    source: Optional[str] = None
    referred_by_id: Optional[str] = None
    address: Optional[dict] = None
    accepts_email_marketing: bool
    accepts_sms_marketing: bool
    accepts_whatsapp_marketing: bool
    loyalty_points: int = 0
    loyalty_tier: str = "BRONZE"
    total_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    no_show_count: int = 0
    total_spent: float = 0
    average_ticket: float = 0
    visit_frequency: int = 0
    last_visit_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("tags", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []


class CustomerDelete(BaseModel):
    reason: Optional[str] = None


class TagsUpdate(BaseModel):
    action: str = "add"
    tags: list[str]

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        v = v.lower()
        if v not in TAG_ACTIONS:
            raise ValueError(f"action must be one of: {', '.join(TAG_ACTIONS)}")
        return v


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    is_private: bool = False


class NoteResponse(BaseModel):
    id: str
    content: str
    is_private: bool
    author_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkCustomerAction(BaseModel):
    action: str
    customer_ids: list[str] = Field(..., min_length=1, max_length=500)
    data: Optional[CustomerUpdate] = None
    tags: list[str] = []
    reason: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        v = v.lower()
        if v not in BULK_ACTIONS:
            raise ValueError(f"action must be one of: {', '.join(BULK_ACTIONS)}")
        return v


class LoyaltyPointsRequest(BaseModel):
    points: int
    description: Optional[str] = None

    @field_validator("points")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("points must not be zero")
        return v


# ============================================================================
# Segments
# ============================================================================


class SegmentCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    type: str = "MANUAL"
    rules: Optional[dict[str, Any]] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        v = v.upper()
        if v not in SEGMENT_TYPES:
            raise ValueError(f"type must be one of: {', '.join(SEGMENT_TYPES)}")
        return v

    @field_validator("rules")
    @classmethod
    def check_rules(cls, v):
        if v is not None:
            validate_rules(v)
        return v

    @model_validator(mode="after")
    def rules_for_smart(self):
        if self.type != "MANUAL" and not self.rules:
            raise ValueError("SMART and AUTOMATIC segments need rules")
        return self


class SegmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    rules: Optional[dict[str, Any]] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_active: Optional[bool] = None

    @field_validator("rules")
    @classmethod
    def check_rules(cls, v):
        if v is not None:
            validate_rules(v)
        return v


class SegmentResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    type: str
    rules: Optional[dict[str, Any]] = None
    color: Optional[str] = None
    is_system: bool
    is_active: bool
    customer_count: int = 0
    last_evaluated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SegmentMembersRequest(BaseModel):
    customer_ids: list[str] = Field(..., min_length=1)


# ============================================================================
# Duplicates / merge / import
# ============================================================================


class FindDuplicatesRequest(BaseModel):
    fields: list[str] = ["phone", "email", "cpf"]
    include_name_similarity: bool = False
    similarity_threshold: float = Field(0.8, ge=0.5, le=1)


class MergeRequest(BaseModel):
    primary_customer_id: str
    merge_customer_ids: list[str] = Field(..., min_length=1)
    strategy: str = "merge"
