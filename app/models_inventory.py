from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base
from .models import generate_uuid


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    document = Column(String(20), nullable=True)  # CNPJ
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    contact_name = Column(String(255), nullable=True)
    address = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_sku"),
        UniqueConstraint("tenant_id", "barcode", name="uq_product_barcode"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), nullable=True)
    sku = Column(String(100), nullable=False)
    barcode = Column(String(100), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    brand = Column(String(100), nullable=True)
    unit = Column(String(20), default="UN", nullable=False)
    cost_price = Column(Float, default=0, nullable=False)
    sale_price = Column(Float, default=0, nullable=False)
    # ACTIVE, INACTIVE, OUT_OF_STOCK, DISCONTINUED
    status = Column(String(20), default="ACTIVE", nullable=False)
    quantity = Column(Float, default=0, nullable=False)
    reserved_quantity = Column(Float, default=0, nullable=False)
    min_stock = Column(Float, default=0, nullable=False)
    max_stock = Column(Float, nullable=True)
    reorder_point = Column(Float, nullable=True)
    track_inventory = Column(Boolean, default=True, nullable=False)
    allow_negative_stock = Column(Boolean, default=False, nullable=False)
    is_for_sale = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def available_quantity(self) -> float:
        return (self.quantity or 0) - (self.reserved_quantity or 0)


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)  # IN, OUT, ADJUSTMENT, TRANSFER, LOSS, RETURN
    reason = Column(String(30), nullable=False)
    quantity = Column(Float, nullable=False)
    previous_quantity = Column(Float, nullable=False)
    new_quantity = Column(Float, nullable=False)
    unit_cost = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    reference_type = Column(String(30), nullable=True)  # PURCHASE_ORDER, INVENTORY_COUNT, APPOINTMENT
    reference_id = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class StockAlert(Base):
    __tablename__ = "stock_alerts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)  # LOW_STOCK, OUT_OF_STOCK, REORDER_POINT
    status = Column(String(20), default="OPEN", nullable=False)  # OPEN, ACKNOWLEDGED, RESOLVED, IGNORED
    message = Column(Text, nullable=True)
    current_quantity = Column(Float, nullable=True)
    threshold = Column(Float, nullable=True)
    acknowledged_by = Column(String(36), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), index=True, nullable=False)
    number = Column(String(30), nullable=False)
    # DRAFT, APPROVED, ORDERED, PARTIAL, RECEIVED, CANCELLED
    status = Column(String(20), default="DRAFT", nullable=False)
    items = Column(JSON, default=list, nullable=False)
    subtotal = Column(Float, default=0, nullable=False)
    discount = Column(Float, default=0, nullable=False)
    shipping = Column(Float, default=0, nullable=False)
    tax = Column(Float, default=0, nullable=False)
    total = Column(Float, default=0, nullable=False)
    expected_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    received_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class InventoryCount(Base):
    __tablename__ = "inventory_counts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), index=True, nullable=False)
    status = Column(String(20), default="IN_PROGRESS", nullable=False)  # IN_PROGRESS, COMPLETED
    items = Column(JSON, default=list, nullable=False)  # [{product_id, system_quantity, counted_quantity}]
    notes = Column(Text, nullable=True)
    started_by = Column(String(36), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    total_difference = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
