"""Financial domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

PAYMENT_METHODS = (
    "CASH",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "PIX",
    "BANK_TRANSFER",
    "DIGITAL_WALLET",
    "VOUCHER",
    "CREDIT",
)
PAYMENT_STATUSES = (
    "PENDING",
    "PROCESSING",
    "COMPLETED",
    "FAILED",
    "CANCELLED",
    "REFUNDED",
    "PARTIALLY_REFUNDED",
)
TRANSACTION_TYPES = (
    "PAYMENT",
    "REFUND",
    "ADJUSTMENT",
    "FEE",
    "TRANSFER",
    "WITHDRAWAL",
    "DEPOSIT",
    "COMMISSION",
    "TIP",
)
TRANSACTION_CATEGORIES = (
    "SERVICE",
    "PRODUCT",
    "PACKAGE",
    "GIFT_CARD",
    "MEMBERSHIP",
    "COMMISSION",
    "EXPENSE",
    "OTHER",
)
INVOICE_STATUSES = ("DRAFT", "PENDING", "SENT", "PAID", "PARTIAL", "OVERDUE", "CANCELLED")


def _upper_choice(value: str, allowed: tuple, label: str) -> str:
    value = value.upper()
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


# ============================================================================
# Payments
# ============================================================================


class PaymentCreate(BaseModel):
    method: str
    amount: float = Field(..., gt=0)
    tip: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    fees: float = Field(0, ge=0)
    installments: int = Field(1, ge=1, le=24)
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    invoice_id: Optional[str] = None
    category: str = "SERVICE"
    description: Optional[str] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        return _upper_choice(v, PAYMENT_METHODS, "method")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _upper_choice(v, TRANSACTION_CATEGORIES, "category")


class PixPaymentCreate(BaseModel):
    amount: float = Field(..., gt=0)
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    invoice_id: Optional[str] = None
    description: Optional[str] = None
    expiration_minutes: int = Field(30, ge=5, le=1440)


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    invoice_id: Optional[str] = None
    method: str
    status: str
    amount: float
    tip: float
    discount: float
    fees: float
    net_amount: float
    refunded_amount: float
    installments: int
    description: Optional[str] = None
    pix_code: Optional[str] = None
    pix_expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Transactions
# ============================================================================


class TransactionCreate(BaseModel):
    type: str
    category: str = "OTHER"
    amount: float
    description: Optional[str] = None
    reference_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _upper_choice(v, TRANSACTION_TYPES, "type")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        return _upper_choice(v, TRANSACTION_CATEGORIES, "category")


class TransactionResponse(BaseModel):
    id: str
    payment_id: Optional[str] = None
    type: str
    category: str
    amount: float
    balance_before: float
    balance_after: float
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Invoices
# ============================================================================


class InvoiceItem(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: float = Field(1, gt=0)
    unit_price: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)


class InvoiceCreate(BaseModel):
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    items: list[InvoiceItem] = Field(..., min_length=1)
    discount: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: str = "DRAFT"

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = v.upper()
        if v not in ("DRAFT", "PENDING"):
            raise ValueError("New invoices must be DRAFT or PENDING")
        return v


class InvoiceUpdate(BaseModel):
    items: Optional[list[InvoiceItem]] = None
    discount: Optional[float] = Field(None, ge=0)
    tax: Optional[float] = Field(None, ge=0)
    due_date: Optional[datetime] = None
    notes: Optional[str] = None


class InvoicePaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    method: str = "CASH"

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        return _upper_choice(v, PAYMENT_METHODS, "method")


class InvoiceResponse(BaseModel):
    id: str
    number: str
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    status: str
    items: list[dict]
    subtotal: float
    discount: float
    tax: float
    total: float
    amount_paid: float
    amount_due: float
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Cash flow and closings
# ============================================================================


class CashFlowCreate(BaseModel):
    type: str
    category: str = Field(..., min_length=1, max_length=50)
    amount: float = Field(..., gt=0)
    description: Optional[str] = None
    date: datetime
    is_projected: bool = False

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _upper_choice(v, ("INFLOW", "OUTFLOW"), "type")


class CashFlowResponse(BaseModel):
    id: str
    type: str
    category: str
    amount: float
    description: Optional[str] = None
    date: datetime
    is_projected: bool

    class Config:
        from_attributes = True


class DailyClosingRequest(BaseModel):
    closing_date: Optional[date] = None
    notes: Optional[str] = None
