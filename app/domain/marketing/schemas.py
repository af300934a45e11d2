"""Marketing domain schemas - campaigns, coupons, loyalty and referrals"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

CAMPAIGN_TYPES = ("EMAIL", "SMS", "WHATSAPP", "PUSH")
CAMPAIGN_STATUSES = ("DRAFT", "SCHEDULED", "ACTIVE", "PAUSED", "COMPLETED", "CANCELLED")
COUPON_TYPES = ("PERCENTAGE", "FIXED")
COUPON_STATUSES = ("ACTIVE", "INACTIVE", "EXPIRED")
REWARD_TYPES = ("POINTS", "DISCOUNT")


def _choice(value: str, allowed: tuple, label: str) -> str:
    value = value.upper()
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


# ============================================================================
# Campaigns
# ============================================================================


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: str
    segment_ids: list[str] = []
    template_id: Optional[str] = None
    subject: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    coupon_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, CAMPAIGN_TYPES, "type")

    @model_validator(mode="after")
    def check_content(self):
        if not self.template_id and not self.content:
            raise ValueError("Provide a template_id or content")
        return self


class CampaignUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    segment_ids: Optional[list[str]] = None
    template_id: Optional[str] = None
    subject: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    coupon_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class CampaignResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    type: str
    status: str
    segment_ids: Optional[list] = None
    template_id: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    coupon_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stats: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Coupons
# ============================================================================


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    description: Optional[str] = None
    type: str
    value: float = Field(..., gt=0)
    min_purchase: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, gt=0)
    total_uses: Optional[int] = Field(None, ge=1)
    uses_per_customer: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, COUPON_TYPES, "type")

    @model_validator(mode="after")
    def check_values(self):
        if self.type == "PERCENTAGE" and self.value > 100:
            raise ValueError("Percentage coupons cannot exceed 100")
        if self.valid_from and self.valid_to and self.valid_to <= self.valid_from:
            raise ValueError("valid_to must be after valid_from")
        return self


class CouponUpdate(BaseModel):
    description: Optional[str] = None
    value: Optional[float] = Field(None, gt=0)
    min_purchase: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, gt=0)
    total_uses: Optional[int] = Field(None, ge=1)
    uses_per_customer: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _choice(v, COUPON_STATUSES, "status") if v else v


class CouponResponse(BaseModel):
    id: str
    code: str
    description: Optional[str] = None
    type: str
    value: float
    min_purchase: Optional[float] = None
    max_discount: Optional[float] = None
    total_uses: Optional[int] = None
    uses_per_customer: Optional[int] = None
    used_count: int
    total_discount_given: float
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CouponValidateRequest(BaseModel):
    code: str
    customer_id: Optional[str] = None
    amount: float = Field(..., ge=0)


class CouponRedeemRequest(CouponValidateRequest):
    customer_id: str
    appointment_id: Optional[str] = None


class CouponValidation(BaseModel):
    valid: bool
    discount_amount: float = 0
    message: Optional[str] = None
    coupon_id: Optional[str] = None


class RedemptionResponse(BaseModel):
    id: str
    coupon_id: str
    customer_id: str
    appointment_id: Optional[str] = None
    original_amount: float
    discount_amount: float
    final_amount: float
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Loyalty
# ============================================================================


class LoyaltyTier(BaseModel):
    name: str = Field(..., min_length=1, max_length=30)
    min_points: int = Field(..., ge=0)
    multiplier: float = Field(1.0, gt=0)

    @field_validator("name")
    @classmethod
    def upper_name(cls, v):
        return v.strip().upper()


class LoyaltyProgramCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    points_per_currency: float = Field(1, gt=0)
    currency_per_point: float = Field(0.01, gt=0)
    min_points_redemption: int = Field(100, ge=1)
    tiers: Optional[list[LoyaltyTier]] = None


class LoyaltyProgramUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    points_per_currency: Optional[float] = Field(None, gt=0)
    currency_per_point: Optional[float] = Field(None, gt=0)
    min_points_redemption: Optional[int] = Field(None, ge=1)
    tiers: Optional[list[LoyaltyTier]] = None


class LoyaltyProgramResponse(BaseModel):
    id: str
    name: str
    points_per_currency: float
    currency_per_point: float
    min_points_redemption: int
    tiers: Optional[list] = None
    is_active: bool

    class Config:
        from_attributes = True


class EarnPointsRequest(BaseModel):
    customer_id: str
    points: int = Field(..., gt=0)
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None


class RedeemPointsRequest(BaseModel):
    customer_id: str
    points: int = Field(..., gt=0)
    description: Optional[str] = None


class AdjustPointsRequest(BaseModel):
    customer_id: str
    points: int
    reason: Optional[str] = None

    @field_validator("points")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("points cannot be zero")
        return v


class LoyaltyTransactionResponse(BaseModel):
    id: str
    customer_id: str
    type: str
    points: int
    balance_after: int
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedeemPointsResponse(BaseModel):
    transaction: LoyaltyTransactionResponse
    credit_value: float


# ============================================================================
# Referrals
# ============================================================================


class ReferralProgramCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    referrer_reward_type: str = "POINTS"
    referrer_reward_value: float = Field(0, ge=0)
    referee_reward_type: str = "POINTS"
    referee_reward_value: float = Field(0, ge=0)
    valid_days: int = Field(30, ge=1)
    max_referrals_per_customer: Optional[int] = Field(None, ge=1)

    @field_validator("referrer_reward_type", "referee_reward_type")
    @classmethod
    def validate_reward(cls, v):
        return _choice(v, REWARD_TYPES, "reward type")


class ReferralProgramUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    referrer_reward_value: Optional[float] = Field(None, ge=0)
    referee_reward_value: Optional[float] = Field(None, ge=0)
    valid_days: Optional[int] = Field(None, ge=1)
    max_referrals_per_customer: Optional[int] = Field(None, ge=1)


class ReferralProgramResponse(BaseModel):
    id: str
    name: str
    referrer_reward_type: str
    referrer_reward_value: float
    referee_reward_type: str
    referee_reward_value: float
    valid_days: int
    max_referrals_per_customer: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True


class ReferralCreate(BaseModel):
    referrer_id: str


class ReferralComplete(BaseModel):
    code: str
    referee_id: str

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class ReferralResponse(BaseModel):
    id: str
    program_id: str
    referrer_id: str
    referee_id: Optional[str] = None
    code: str
    status: str
    expires_at: datetime
    completed_at: Optional[datetime] = None
    rewarded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
