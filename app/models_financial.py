"""
Financial models: payments, ledger transactions, invoices, cash flow and closings.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base
from .models import generate_uuid


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), index=True, nullable=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), index=True, nullable=True)
    method = Column(String(20), nullable=False)  # CASH, CREDIT_CARD, DEBIT_CARD, PIX, ...
    status = Column(String(20), default="PENDING", index=True, nullable=False)
    amount = Column(Float, nullable=False)
    tip = Column(Float, default=0, nullable=False)
    discount = Column(Float, default=0, nullable=False)
    fees = Column(Float, default=0, nullable=False)
    net_amount = Column(Float, default=0, nullable=False)
    refunded_amount = Column(Float, default=0, nullable=False)
    installments = Column(Integer, default=1, nullable=False)
    description = Column(Text, nullable=True)
    pix_code = Column(Text, nullable=True)
    pix_expires_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    payment_metadata = Column(JSON, default=dict, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Transaction(Base):
    """Ledger entry with running balance"""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=True)
    type = Column(String(20), nullable=False)  # PAYMENT, REFUND, ADJUSTMENT, FEE, ...
    category = Column(String(20), default="SERVICE", nullable=False)
    amount = Column(Float, nullable=False)
    balance_before = Column(Float, default=0, nullable=False)
    balance_after = Column(Float, default=0, nullable=False)
    description = Column(Text, nullable=True)
    reference_id = Column(String(36), nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("tenant_id", "number", name="uq_invoice_number"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), index=True, nullable=True)
    appointment_id = Column(String(36), nullable=True)
    number = Column(String(30), nullable=False)  # INV-YYYYMM-NNNN
    status = Column(String(20), default="DRAFT", index=True, nullable=False)
    items = Column(JSON, default=list, nullable=False)
    subtotal = Column(Float, default=0, nullable=False)
    discount = Column(Float, default=0, nullable=False)
    tax = Column(Float, default=0, nullable=False)
    total = Column(Float, default=0, nullable=False)
    amount_paid = Column(Float, default=0, nullable=False)
    amount_due = Column(Float, default=0, nullable=False)
    due_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CashFlowEntry(Base):
    __tablename__ = "cash_flow_entries"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    type = Column(String(10), nullable=False)  # INFLOW, OUTFLOW
    category = Column(String(50), nullable=False)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, index=True, nullable=False)
    is_projected = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class DailyClosing(Base):
    __tablename__ = "daily_closings"
    __table_args__ = (UniqueConstraint("tenant_id", "date", name="uq_daily_closing_date"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    date = Column(Date, nullable=False)
    cash_total = Column(Float, default=0, nullable=False)
    card_total = Column(Float, default=0, nullable=False)
    pix_total = Column(Float, default=0, nullable=False)
    other_total = Column(Float, default=0, nullable=False)
    total_sales = Column(Float, default=0, nullable=False)
    sales_count = Column(Integer, default=0, nullable=False)
    total_tips = Column(Float, default=0, nullable=False)
    total_discounts = Column(Float, default=0, nullable=False)
    net_amount = Column(Float, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    closed_by = Column(String(36), nullable=True)
    closed_at = Column(DateTime, default=datetime.utcnow)
