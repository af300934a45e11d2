"""Catalog domain schemas - categories and services"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

PRICING_TYPES = ("FIXED", "FROM", "BY_PROFESSIONAL")
SERVICE_TYPES = ("SINGLE", "COMBO", "PACKAGE")
BULK_ACTIONS = ("activate", "deactivate", "change_category", "adjust_price")


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_active: Optional[bool] = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    display_order: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ServiceOption(BaseModel):
    id: str
    name: str
    price_adjustment: float = 0
    duration_adjustment: int = 0


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category_id: Optional[str] = None
    description: Optional[str] = None
    duration: int = Field(30, ge=5, le=720)
    price: float = Field(0, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    pricing_type: str = "FIXED"
    service_type: str = "SINGLE"
    combo_discount: Optional[float] = Field(None, ge=0, le=100)
    package_discount: Optional[float] = Field(None, ge=0, le=100)
    included_service_ids: list[str] = []
    professional_prices: dict[str, float] = {}
    options: list[ServiceOption] = []
    is_active: bool = True
    is_online_bookable: bool = True
    is_featured: bool = False

    @field_validator("pricing_type")
    @classmethod
    def validate_pricing_type(cls, v):
        v = v.upper()
        if v not in PRICING_TYPES:
            raise ValueError(f"pricing_type must be one of: {', '.join(PRICING_TYPES)}")
        return v

    @field_validator("service_type")
    @classmethod
    def validate_service_type(cls, v):
        v = v.upper()
        if v not in SERVICE_TYPES:
            raise ValueError(f"service_type must be one of: {', '.join(SERVICE_TYPES)}")
        return v


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category_id: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[int] = Field(None, ge=5, le=720)
    price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    pricing_type: Optional[str] = None
    service_type: Optional[str] = None
    combo_discount: Optional[float] = Field(None, ge=0, le=100)
    package_discount: Optional[float] = Field(None, ge=0, le=100)
    included_service_ids: Optional[list[str]] = None
    professional_prices: Optional[dict[str, float]] = None
    options: Optional[list[ServiceOption]] = None
    is_active: Optional[bool] = None
    is_online_bookable: Optional[bool] = None
    is_featured: Optional[bool] = None

    @field_validator("pricing_type")
    @classmethod
    def validate_pricing_type(cls, v):
        if v is not None and v.upper() not in PRICING_TYPES:
            raise ValueError(f"pricing_type must be one of: {', '.join(PRICING_TYPES)}")
        return v.upper() if v else v

    @field_validator("service_type")
    @classmethod
    def validate_service_type(cls, v):
        if v is not None and v.upper() not in SERVICE_TYPES:
            raise ValueError(f"service_type must be one of: {', '.join(SERVICE_TYPES)}")
        return v.upper() if v else v


class ServiceResponse(BaseModel):
    id: str
    category_id: Optional[str] = None
    name: str
    slug: str
    description: Optional[str] = None
    duration: int
    price: float
    cost_price: Optional[float] = None
    pricing_type: str
    service_type: str
    combo_discount: Optional[float] = None
    package_discount: Optional[float] = None
    included_service_ids: Optional[list[str]] = None
    professional_prices: Optional[dict[str, float]] = None
    options: Optional[list[ServiceOption]] = None
    is_active: bool
    is_online_bookable: bool
    is_featured: bool
    display_order: int
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkServiceUpdate(BaseModel):
    service_ids: list[str] = Field(..., min_length=1)
    action: str
    category_id: Optional[str] = None
    percentage: Optional[float] = Field(None, ge=-90, le=500)

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        if v not in BULK_ACTIONS:
            raise ValueError(f"action must be one of: {', '.join(BULK_ACTIONS)}")
        return v


class ReorderRequest(BaseModel):
    ids: list[str]
