"""Commission domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .calculation import COMMISSION_TYPES, TRIGGERS
from .goals import GOAL_PERIODS, GOAL_TYPES

ADJUSTMENT_TYPES = ("BONUS", "DEDUCTION", "CORRECTION")
SOURCE_TYPES = ("APPOINTMENT", "SALE", "REFERRAL", "BONUS")


def _choice(value: str, allowed: tuple, label: str) -> str:
    value = value.upper()
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


class CommissionTier(BaseModel):
    min_value: float = Field(0, ge=0)
    max_value: Optional[float] = None
    percentage: Optional[float] = Field(None, ge=0, le=100)
    fixed_amount: Optional[float] = Field(None, ge=0)


class RuleConditions(BaseModel):
    service_ids: list[str] = []
    product_ids: list[str] = []
    professional_ids: list[str] = []
    min_transaction_value: Optional[float] = None
    max_transaction_value: Optional[float] = None
    days_of_week: list[int] = []

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days_of_week values must be 0 (Sunday) to 6 (Saturday)")
        return v


class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: str = "PERCENTAGE"
    trigger: str = "SERVICE_COMPLETED"
    percentage: Optional[float] = Field(None, ge=0, le=100)
    fixed_amount: Optional[float] = Field(None, ge=0)
    tiers: list[CommissionTier] = []
    conditions: Optional[RuleConditions] = None
    priority: int = 0
    is_default: bool = False
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, COMMISSION_TYPES, "type")

    @field_validator("trigger")
    @classmethod
    def validate_trigger(cls, v):
        return _choice(v, TRIGGERS, "trigger")

    @model_validator(mode="after")
    def check_values(self):
        if self.type == "PERCENTAGE" and self.percentage is None:
            raise ValueError("percentage is required for PERCENTAGE rules")
        if self.type == "FIXED" and self.fixed_amount is None:
            raise ValueError("fixed_amount is required for FIXED rules")
        if self.type == "TIERED" and not self.tiers:
            raise ValueError("tiers are required for TIERED rules")
        if self.type == "MIXED" and (self.percentage is None or self.fixed_amount is None):
            raise ValueError("MIXED rules need both percentage and fixed_amount")
        return self


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    percentage: Optional[float] = Field(None, ge=0, le=100)
    fixed_amount: Optional[float] = Field(None, ge=0)
    tiers: Optional[list[CommissionTier]] = None
    conditions: Optional[RuleConditions] = None
    priority: Optional[int] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    valid_to: Optional[datetime] = None


class RuleResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    type: str
    trigger: str
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None
    tiers: Optional[list] = None
    conditions: Optional[dict] = None
    priority: int
    is_default: bool
    is_active: bool
    valid_from: datetime
    valid_to: Optional[datetime] = None

    class Config:
        from_attributes = True


class Override(BaseModel):
    type: str = "PERCENTAGE"
    value: float = Field(..., ge=0)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, ("PERCENTAGE", "FIXED"), "type")


class ProfessionalConfigCreate(BaseModel):
    professional_id: str
    default_percentage: Optional[float] = Field(None, ge=0, le=100)
    service_overrides: dict[str, Override] = {}
    product_overrides: dict[str, Override] = {}
    is_active: bool = True


class ProfessionalConfigUpdate(BaseModel):
    default_percentage: Optional[float] = Field(None, ge=0, le=100)
    service_overrides: Optional[dict[str, Override]] = None
    product_overrides: Optional[dict[str, Override]] = None
    is_active: Optional[bool] = None


class ProfessionalConfigResponse(BaseModel):
    id: str
    professional_id: str
    default_percentage: Optional[float] = None
    service_overrides: Optional[dict] = None
    product_overrides: Optional[dict] = None
    is_active: bool

    class Config:
        from_attributes = True


class CalculateRequest(BaseModel):
    professional_id: str
    base_amount: float = Field(..., ge=0)
    source_type: str = "APPOINTMENT"
    service_id: Optional[str] = None
    product_id: Optional[str] = None

    @field_validator("source_type")
    @classmethod
    def validate_source(cls, v):
        return _choice(v, SOURCE_TYPES, "source_type")


class EntryCreate(CalculateRequest):
    source_id: Optional[str] = None
    description: Optional[str] = None


class EntryIds(BaseModel):
    entry_ids: list[str] = Field(..., min_length=1)


class AdjustmentRequest(BaseModel):
    type: str
    amount: float = Field(..., gt=0)
    reason: str = Field(..., min_length=1)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, ADJUSTMENT_TYPES, "type")


class CancelEntryRequest(BaseModel):
    reason: Optional[str] = None


class AdjustmentResponse(BaseModel):
    id: str
    type: str
    amount: float
    reason: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EntryResponse(BaseModel):
    id: str
    professional_id: str
    rule_id: Optional[str] = None
    payment_id: Optional[str] = None
    source_type: str
    source_id: Optional[str] = None
    service_id: Optional[str] = None
    product_id: Optional[str] = None
    description: Optional[str] = None
    base_amount: float
    commission_type: Optional[str] = None
    percentage: Optional[float] = None
    calculated_amount: float
    final_amount: float
    breakdown: Optional[list] = None
    status: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    reference_date: datetime
    adjustments: list[AdjustmentResponse] = []

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    professional_id: str
    entry_ids: Optional[list[str]] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    deductions: float = Field(0, ge=0)
    bonuses: float = Field(0, ge=0)
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_source(self):
        if not self.entry_ids and not (self.period_start and self.period_end):
            raise ValueError("Provide entry_ids or a period")
        return self


class PaymentResponse(BaseModel):
    id: str
    professional_id: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    gross_amount: float
    deductions: float
    bonuses: float
    net_amount: float
    entry_count: int
    payment_method: Optional[str] = None
    status: str
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GoalCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    professional_id: Optional[str] = None
    type: str
    period: str = "MONTHLY"
    target_value: float = Field(..., gt=0)
    bonus_amount: Optional[float] = Field(None, ge=0)
    bonus_percentage: Optional[float] = Field(None, ge=0, le=100)
    start_date: datetime
    end_date: datetime

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, GOAL_TYPES, "type")

    @field_validator("period")
    @classmethod
    def validate_period(cls, v):
        return _choice(v, GOAL_PERIODS, "period")

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class GoalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    target_value: Optional[float] = Field(None, gt=0)
    bonus_amount: Optional[float] = Field(None, ge=0)
    bonus_percentage: Optional[float] = Field(None, ge=0, le=100)
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None


class GoalResponse(BaseModel):
    id: str
    name: str
    professional_id: Optional[str] = None
    type: str
    period: str
    target_value: float
    current_value: float
    bonus_amount: Optional[float] = None
    bonus_percentage: Optional[float] = None
    start_date: datetime
    end_date: datetime
    is_active: bool
    achieved_at: Optional[datetime] = None
    bonus_entry_id: Optional[str] = None

    class Config:
        from_attributes = True
