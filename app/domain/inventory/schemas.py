"""Inventory domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

PRODUCT_STATUSES = ("ACTIVE", "INACTIVE", "OUT_OF_STOCK", "DISCONTINUED")
MOVEMENT_TYPES = ("IN", "OUT", "ADJUSTMENT", "TRANSFER", "LOSS", "RETURN")
MOVEMENT_REASONS = (
    "PURCHASE",
    "SALE",
    "SERVICE_USAGE",
    "INVENTORY_COUNT",
    "DAMAGE",
    "EXPIRED",
    "RETURN",
    "OTHER",
)
ALERT_STATUSES = ("OPEN", "ACKNOWLEDGED", "RESOLVED", "IGNORED")


def _choice(value: str, allowed: tuple, label: str) -> str:
    value = value.upper()
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


# ============================================================================
# Products
# ============================================================================


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    barcode: Optional[str] = Field(None, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    supplier_id: Optional[str] = None
    unit: str = "UN"
    cost_price: float = Field(0, ge=0)
    sale_price: float = Field(0, ge=0)
    quantity: float = Field(0, ge=0)
    min_stock: float = Field(0, ge=0)
    max_stock: Optional[float] = Field(None, ge=0)
    reorder_point: Optional[float] = Field(None, ge=0)
    track_inventory: bool = True
    allow_negative_stock: bool = False
    is_for_sale: bool = True

    @field_validator("sku")
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper()


class ProductUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    barcode: Optional[str] = Field(None, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    supplier_id: Optional[str] = None
    unit: Optional[str] = None
    cost_price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    min_stock: Optional[float] = Field(None, ge=0)
    max_stock: Optional[float] = Field(None, ge=0)
    reorder_point: Optional[float] = Field(None, ge=0)
    track_inventory: Optional[bool] = None
    allow_negative_stock: Optional[bool] = None
    is_for_sale: Optional[bool] = None
    status: Optional[str] = None

    @field_validator("sku")
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper() if v else v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _choice(v, PRODUCT_STATUSES, "status") if v else v


class ProductResponse(BaseModel):
    id: str
    sku: str
    barcode: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    supplier_id: Optional[str] = None
    unit: str
    cost_price: float
    sale_price: float
    status: str
    quantity: float
    reserved_quantity: float
    available_quantity: float
    min_stock: float
    max_stock: Optional[float] = None
    reorder_point: Optional[float] = None
    track_inventory: bool
    allow_negative_stock: bool
    is_for_sale: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Movements and alerts
# ============================================================================


class MovementCreate(BaseModel):
    product_id: str
    type: str
    reason: str = "OTHER"
    quantity: float
    unit_cost: Optional[float] = Field(None, ge=0)
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _choice(v, MOVEMENT_TYPES, "type")

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _choice(v, MOVEMENT_REASONS, "reason")

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("quantity cannot be zero")
        return v


class BulkAdjustItem(BaseModel):
    product_id: str
    quantity: float


class BulkAdjustRequest(BaseModel):
    items: list[BulkAdjustItem] = Field(..., min_length=1)
    reason: str = "INVENTORY_COUNT"
    notes: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        return _choice(v, MOVEMENT_REASONS, "reason")


class MovementResponse(BaseModel):
    id: str
    product_id: str
    type: str
    reason: str
    quantity: float
    previous_quantity: float
    new_quantity: float
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReserveRequest(BaseModel):
    quantity: float = Field(..., gt=0)


class AlertResponse(BaseModel):
    id: str
    product_id: str
    type: str
    status: str
    message: Optional[str] = None
    current_quantity: Optional[float] = None
    threshold: Optional[float] = None
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Suppliers and purchase orders
# ============================================================================


class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    address: Optional[dict] = None
    notes: Optional[str] = None


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    address: Optional[dict] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class SupplierResponse(BaseModel):
    id: str
    name: str
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    address: Optional[dict] = None
    notes: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class PurchaseOrderItem(BaseModel):
    product_id: str
    quantity: float = Field(..., gt=0)
    unit_cost: float = Field(..., ge=0)


class PurchaseOrderCreate(BaseModel):
    supplier_id: str
    items: list[PurchaseOrderItem] = Field(..., min_length=1)
    discount: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    expected_at: Optional[datetime] = None
    notes: Optional[str] = None


class PurchaseOrderUpdate(BaseModel):
    items: Optional[list[PurchaseOrderItem]] = None
    discount: Optional[float] = Field(None, ge=0)
    shipping: Optional[float] = Field(None, ge=0)
    tax: Optional[float] = Field(None, ge=0)
    expected_at: Optional[datetime] = None
    notes: Optional[str] = None


class ReceiveItem(BaseModel):
    product_id: str
    quantity: float = Field(..., gt=0)


class ReceiveRequest(BaseModel):
    items: Optional[list[ReceiveItem]] = None


class PurchaseOrderResponse(BaseModel):
    id: str
    supplier_id: str
    number: str
    status: str
    items: list[dict]
    subtotal: float
    discount: float
    shipping: float
    tax: float
    total: float
    expected_at: Optional[datetime] = None
    notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Inventory counts
# ============================================================================


class CountStart(BaseModel):
    product_ids: Optional[list[str]] = None
    notes: Optional[str] = None


class CountedItem(BaseModel):
    product_id: str
    counted_quantity: float = Field(..., ge=0)


class CountSubmit(BaseModel):
    items: list[CountedItem] = Field(..., min_length=1)


class CountResponse(BaseModel):
    id: str
    status: str
    items: list[dict]
    notes: Optional[str] = None
    started_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    total_difference: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
