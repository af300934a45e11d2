"""Inventory service - products, stock, alerts, suppliers, purchase orders and counts"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import User
from ...models_inventory import (
    InventoryCount,
    Product,
    PurchaseOrder,
    StockAlert,
    StockMovement,
    Supplier,
)
from ...plan_limits import enforce_limit
from .schemas import (
    BulkAdjustRequest,
    CountStart,
    CountSubmit,
    MovementCreate,
    ProductCreate,
    ProductUpdate,
    PurchaseOrderCreate,
    PurchaseOrderUpdate,
    ReceiveRequest,
    SupplierCreate,
    SupplierUpdate,
)
from .stock import apply_movement, check_alerts

logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = ("APPROVED", "ORDERED", "PARTIAL")


class InventoryService:
    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # Products
    # ========================================================================

    def _get_product(self, product_id: str, tenant_id: str) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.tenant_id == tenant_id, Product.deleted_at.is_(None))
            .first()
        )
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    def _check_unique(self, tenant_id: str, sku=None, barcode=None, exclude_id=None) -> None:
        if sku:
            query = self.db.query(Product.id).filter(Product.tenant_id == tenant_id, Product.sku == sku)
            if exclude_id:
                query = query.filter(Product.id != exclude_id)
            if query.first():
                raise HTTPException(status_code=409, detail="A product with this SKU already exists")
        if barcode:
            query = self.db.query(Product.id).filter(Product.tenant_id == tenant_id, Product.barcode == barcode)
            if exclude_id:
                query = query.filter(Product.id != exclude_id)
            if query.first():
                raise HTTPException(status_code=409, detail="A product with this barcode already exists")

    def _check_supplier(self, tenant_id: str, supplier_id: Optional[str]) -> None:
        if supplier_id:
            self._get_supplier(supplier_id, tenant_id)

    def get_product(self, product_id: str, user: User) -> Product:
        return self._get_product(product_id, user.tenant_id)

    def products_query(
        self,
        user: User,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        supplier_id: Optional[str] = None,
        low_stock: bool = False,
    ):
        query = self.db.query(Product).filter(Product.tenant_id == user.tenant_id, Product.deleted_at.is_(None))
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term), Product.barcode.ilike(term)))
        if category:
            query = query.filter(Product.category == category)
        if status:
            query = query.filter(Product.status == status.upper())
        if supplier_id:
            query = query.filter(Product.supplier_id == supplier_id)
        if low_stock:
            query = query.filter(Product.track_inventory.is_(True), Product.quantity <= Product.min_stock)
        return query.order_by(Product.name)

    def create_product(self, data: ProductCreate, user: User) -> Product:
        enforce_limit(self.db, user.tenant, "products")
        self._check_unique(user.tenant_id, data.sku, data.barcode)
        self._check_supplier(user.tenant_id, data.supplier_id)

        values = data.model_dump(exclude={"quantity"})
        product = Product(tenant_id=user.tenant_id, quantity=0, **values)
        self.db.add(product)
        self.db.flush()

        if data.quantity > 0:
            apply_movement(
                self.db,
                product,
                "IN",
                data.quantity,
                reason="PURCHASE",
                unit_cost=data.cost_price,
                notes="Initial stock",
                created_by=user.id,
            )
        else:
            check_alerts(self.db, product)
        self.db.commit()
        self.db.refresh(product)
        logger.info(f"📦 Product {product.sku} created for tenant {user.tenant_id}")
        return product

    def update_product(self, product_id: str, data: ProductUpdate, user: User) -> Product:
        product = self._get_product(product_id, user.tenant_id)
        changes = data.model_dump(exclude_unset=True)
        self._check_unique(user.tenant_id, changes.get("sku"), changes.get("barcode"), exclude_id=product.id)
        self._check_supplier(user.tenant_id, changes.get("supplier_id"))
        for field, value in changes.items():
            setattr(product, field, value)
        if {"min_stock", "reorder_point", "track_inventory"} & changes.keys():
            check_alerts(self.db, product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def delete_product(self, product_id: str, user: User) -> dict:
        product = self._get_product(product_id, user.tenant_id)
        product.deleted_at = datetime.utcnow()
        product.status = "DISCONTINUED"
        self.db.commit()
        logger.info(f"🗑️ Product {product.sku} deleted")
        return {"message": "Product deleted"}

    # ========================================================================
    # Movements
    # ========================================================================

    def movements_query(
        self,
        user: User,
        product_id: Optional[str] = None,
        type_: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        query = self.db.query(StockMovement).filter(StockMovement.tenant_id == user.tenant_id)
        if product_id:
            query = query.filter(StockMovement.product_id == product_id)
        if type_:
            query = query.filter(StockMovement.type == type_.upper())
        if start:
            query = query.filter(StockMovement.created_at >= start)
        if end:
            query = query.filter(StockMovement.created_at <= end)
        return query.order_by(StockMovement.created_at.desc())

    def create_movement(self, data: MovementCreate, user: User) -> StockMovement:
        product = self._get_product(data.product_id, user.tenant_id)
        movement = apply_movement(
            self.db,
            product,
            data.type,
            data.quantity,
            reason=data.reason,
            unit_cost=data.unit_cost,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            notes=data.notes,
            created_by=user.id,
        )
        self.db.commit()
        self.db.refresh(movement)
        logger.info(
            f"📦 {data.type} {data.quantity} of {product.sku}: {movement.previous_quantity} -> {movement.new_quantity}"
        )
        return movement

    def bulk_adjust(self, data: BulkAdjustRequest, user: User) -> list[StockMovement]:
        movements = []
        try:
            for item in data.items:
                product = self._get_product(item.product_id, user.tenant_id)
                movements.append(
                    apply_movement(
                        self.db,
                        product,
                        "ADJUSTMENT",
                        item.quantity,
                        reason=data.reason,
                        notes=data.notes,
                        created_by=user.id,
                    )
                )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        for movement in movements:
            self.db.refresh(movement)
        return movements

    def reserve(self, product_id: str, quantity: float, user: User) -> Product:
        product = self._get_product(product_id, user.tenant_id)
        if quantity > product.available_quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Only {product.available_quantity} units available to reserve",
            )
        product.reserved_quantity = (product.reserved_quantity or 0) + quantity
        self.db.commit()
        self.db.refresh(product)
        return product

    def release(self, product_id: str, quantity: float, user: User) -> Product:
        product = self._get_product(product_id, user.tenant_id)
        product.reserved_quantity = max(0, (product.reserved_quantity or 0) - quantity)
        self.db.commit()
        self.db.refresh(product)
        return product

    # ========================================================================
    # Alerts
    # ========================================================================

    def _get_alert(self, alert_id: str, tenant_id: str) -> StockAlert:
        alert = (
            self.db.query(StockAlert).filter(StockAlert.id == alert_id, StockAlert.tenant_id == tenant_id).first()
        )
        if not alert:
            raise HTTPException(status_code=404, detail="Alert not found")
        return alert

    def list_alerts(self, user: User, status: Optional[str] = None, type_: Optional[str] = None) -> list[StockAlert]:
        query = self.db.query(StockAlert).filter(StockAlert.tenant_id == user.tenant_id)
        if status:
            query = query.filter(StockAlert.status == status.upper())
        if type_:
            query = query.filter(StockAlert.type == type_.upper())
        return query.order_by(StockAlert.created_at.desc()).all()

    def acknowledge_alert(self, alert_id: str, user: User) -> StockAlert:
        alert = self._get_alert(alert_id, user.tenant_id)
        if alert.status != "OPEN":
            raise HTTPException(status_code=400, detail="Only open alerts can be acknowledged")
        alert.status = "ACKNOWLEDGED"
        alert.acknowledged_by = user.id
        alert.acknowledged_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(alert)
        return alert

    def resolve_alert(self, alert_id: str, user: User) -> StockAlert:
        alert = self._get_alert(alert_id, user.tenant_id)
        alert.status = "RESOLVED"
        alert.resolved_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(alert)
        return alert

    def ignore_alert(self, alert_id: str, user: User) -> StockAlert:
        alert = self._get_alert(alert_id, user.tenant_id)
        alert.status = "IGNORED"
        self.db.commit()
        self.db.refresh(alert)
        return alert

    # ========================================================================
    # Suppliers
    # ========================================================================

    def _get_supplier(self, supplier_id: str, tenant_id: str) -> Supplier:
        supplier = (
            self.db.query(Supplier)
            .filter(Supplier.id == supplier_id, Supplier.tenant_id == tenant_id, Supplier.deleted_at.is_(None))
            .first()
        )
        if not supplier:
            raise HTTPException(status_code=404, detail="Supplier not found")
        return supplier

    def get_supplier(self, supplier_id: str, user: User) -> Supplier:
        return self._get_supplier(supplier_id, user.tenant_id)

    def list_suppliers(self, user: User, active_only: bool = False) -> list[Supplier]:
        query = self.db.query(Supplier).filter(Supplier.tenant_id == user.tenant_id, Supplier.deleted_at.is_(None))
        if active_only:
            query = query.filter(Supplier.is_active.is_(True))
        return query.order_by(Supplier.name).all()

    def create_supplier(self, data: SupplierCreate, user: User) -> Supplier:
        supplier = Supplier(tenant_id=user.tenant_id, **data.model_dump())
        self.db.add(supplier)
        self.db.commit()
        self.db.refresh(supplier)
        return supplier

    def update_supplier(self, supplier_id: str, data: SupplierUpdate, user: User) -> Supplier:
        supplier = self._get_supplier(supplier_id, user.tenant_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(supplier, field, value)
        self.db.commit()
        self.db.refresh(supplier)
        return supplier

    def delete_supplier(self, supplier_id: str, user: User) -> dict:
        supplier = self._get_supplier(supplier_id, user.tenant_id)
        supplier.deleted_at = datetime.utcnow()
        supplier.is_active = False
        self.db.commit()
        return {"message": "Supplier deleted"}

    # ========================================================================
    # Purchase orders
    # ========================================================================

    def _get_order(self, order_id: str, tenant_id: str) -> PurchaseOrder:
        order = (
            self.db.query(PurchaseOrder)
            .filter(PurchaseOrder.id == order_id, PurchaseOrder.tenant_id == tenant_id)
            .first()
        )
        if not order:
            raise HTTPException(status_code=404, detail="Purchase order not found")
        return order

    def _order_items(self, tenant_id: str, items) -> list[dict]:
        snapshot = []
        for item in items:
            product = self._get_product(item.product_id, tenant_id)
            snapshot.append(
                {
                    "product_id": product.id,
                    "product_name": product.name,
                    "sku": product.sku,
                    "quantity": item.quantity,
                    "unit_cost": item.unit_cost,
                    "total": round(item.quantity * item.unit_cost, 2),
                    "received_quantity": 0,
                }
            )
        return snapshot

    @staticmethod
    def _apply_totals(order: PurchaseOrder) -> None:
        order.subtotal = round(sum(i["total"] for i in order.items), 2)
        order.total = round(
            order.subtotal - (order.discount or 0) + (order.shipping or 0) + (order.tax or 0), 2
        )

    def _next_order_number(self, tenant_id: str) -> str:
        count = self.db.query(func.count(PurchaseOrder.id)).filter(PurchaseOrder.tenant_id == tenant_id).scalar()
        return f"PO-{datetime.utcnow():%Y%m}-{(count or 0) + 1:04d}"

    def get_order(self, order_id: str, user: User) -> PurchaseOrder:
        return self._get_order(order_id, user.tenant_id)

    def orders_query(self, user: User, status: Optional[str] = None, supplier_id: Optional[str] = None):
        query = self.db.query(PurchaseOrder).filter(PurchaseOrder.tenant_id == user.tenant_id)
        if status:
            query = query.filter(PurchaseOrder.status == status.upper())
        if supplier_id:
            query = query.filter(PurchaseOrder.supplier_id == supplier_id)
        return query.order_by(PurchaseOrder.created_at.desc())

    def create_order(self, data: PurchaseOrderCreate, user: User) -> PurchaseOrder:
        self._get_supplier(data.supplier_id, user.tenant_id)
        order = PurchaseOrder(
            tenant_id=user.tenant_id,
            supplier_id=data.supplier_id,
            number=self._next_order_number(user.tenant_id),
            items=self._order_items(user.tenant_id, data.items),
            discount=data.discount,
            shipping=data.shipping,
            tax=data.tax,
            expected_at=data.expected_at,
            notes=data.notes,
            created_by=user.id,
        )
        self._apply_totals(order)
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"🧾 Purchase order {order.number} created ({order.total:.2f})")
        return order

    def update_order(self, order_id: str, data: PurchaseOrderUpdate, user: User) -> PurchaseOrder:
        order = self._get_order(order_id, user.tenant_id)
        if order.status != "DRAFT":
            raise HTTPException(status_code=400, detail="Only draft purchase orders can be edited")
        changes = data.model_dump(exclude_unset=True, exclude={"items"})
        for field, value in changes.items():
            setattr(order, field, value)
        if data.items is not None:
            order.items = self._order_items(user.tenant_id, data.items)
        self._apply_totals(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def approve_order(self, order_id: str, user: User) -> PurchaseOrder:
        order = self._get_order(order_id, user.tenant_id)
        if order.status != "DRAFT":
            raise HTTPException(status_code=400, detail="Only draft purchase orders can be approved")
        order.status = "APPROVED"
        order.approved_by = user.id
        order.approved_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(order)
        return order

    def mark_ordered(self, order_id: str, user: User) -> PurchaseOrder:
        order = self._get_order(order_id, user.tenant_id)
        if order.status != "APPROVED":
            raise HTTPException(status_code=400, detail="Only approved purchase orders can be sent to the supplier")
        order.status = "ORDERED"
        self.db.commit()
        self.db.refresh(order)
        return order

    def receive_order(self, order_id: str, data: ReceiveRequest, user: User) -> PurchaseOrder:
        order = self._get_order(order_id, user.tenant_id)
        if order.status not in RECEIVABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot receive a purchase order in status {order.status}")

        items = [dict(i) for i in order.items]
        if data.items:
            received = {}
            for item in data.items:
                received[item.product_id] = received.get(item.product_id, 0) + item.quantity
        else:
            received = {
                i["product_id"]: i["quantity"] - i.get("received_quantity", 0)
                for i in items
                if i["quantity"] > i.get("received_quantity", 0)
            }

        try:
            for item in items:
                qty = received.pop(item["product_id"], 0)
                if qty <= 0:
                    continue
                product = self._get_product(item["product_id"], user.tenant_id)
                apply_movement(
                    self.db,
                    product,
                    "IN",
                    qty,
                    reason="PURCHASE",
                    unit_cost=item["unit_cost"],
                    reference_type="PURCHASE_ORDER",
                    reference_id=order.id,
                    created_by=user.id,
                )
                item["received_quantity"] = item.get("received_quantity", 0) + qty
            if received:
                raise HTTPException(status_code=400, detail="Received items are not part of this purchase order")
        except HTTPException:
            self.db.rollback()
            raise

        order.items = items
        if all(i["received_quantity"] >= i["quantity"] for i in items):
            order.status = "RECEIVED"
            order.received_at = datetime.utcnow()
        else:
            order.status = "PARTIAL"
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"📥 Purchase order {order.number} received ({order.status})")
        return order

    def cancel_order(self, order_id: str, user: User) -> PurchaseOrder:
        order = self._get_order(order_id, user.tenant_id)
        if order.status in ("RECEIVED", "CANCELLED"):
            raise HTTPException(status_code=400, detail=f"Cannot cancel a purchase order in status {order.status}")
        order.status = "CANCELLED"
        order.cancelled_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(order)
        return order

    # ========================================================================
    # Inventory counts
    # ========================================================================

    def _get_count(self, count_id: str, tenant_id: str) -> InventoryCount:
        count = (
            self.db.query(InventoryCount)
            .filter(InventoryCount.id == count_id, InventoryCount.tenant_id == tenant_id)
            .first()
        )
        if not count:
            raise HTTPException(status_code=404, detail="Inventory count not found")
        return count

    def get_count(self, count_id: str, user: User) -> InventoryCount:
        return self._get_count(count_id, user.tenant_id)

    def list_counts(self, user: User) -> list[InventoryCount]:
        return (
            self.db.query(InventoryCount)
            .filter(InventoryCount.tenant_id == user.tenant_id)
            .order_by(InventoryCount.created_at.desc())
            .all()
        )

    def start_count(self, data: CountStart, user: User) -> InventoryCount:
        query = self.db.query(Product).filter(
            Product.tenant_id == user.tenant_id,
            Product.deleted_at.is_(None),
            Product.track_inventory.is_(True),
        )
        if data.product_ids:
            query = query.filter(Product.id.in_(data.product_ids))
        items = [
            {
                "product_id": p.id,
                "product_name": p.name,
                "sku": p.sku,
                "system_quantity": p.quantity,
                "counted_quantity": None,
            }
            for p in query.order_by(Product.name)
        ]
        count = InventoryCount(tenant_id=user.tenant_id, items=items, notes=data.notes, started_by=user.id)
        self.db.add(count)
        self.db.commit()
        self.db.refresh(count)
        return count

    def submit_count(self, count_id: str, data: CountSubmit, user: User) -> InventoryCount:
        count = self._get_count(count_id, user.tenant_id)
        if count.status != "IN_PROGRESS":
            raise HTTPException(status_code=400, detail="Inventory count is not in progress")

        counted = {item.product_id: item.counted_quantity for item in data.items}
        items = [dict(i) for i in count.items]
        total_difference = 0.0
        try:
            for item in items:
                if item["product_id"] not in counted:
                    continue
                product = self._get_product(item["product_id"], user.tenant_id)
                item["counted_quantity"] = counted[item["product_id"]]
                difference = item["counted_quantity"] - (product.quantity or 0)
                item["difference"] = difference
                total_difference += difference
                if difference:
                    apply_movement(
                        self.db,
                        product,
                        "ADJUSTMENT",
                        difference,
                        reason="INVENTORY_COUNT",
                        reference_type="INVENTORY_COUNT",
                        reference_id=count.id,
                        created_by=user.id,
                    )
        except HTTPException:
            self.db.rollback()
            raise

        count.items = items
        count.status = "COMPLETED"
        count.completed_at = datetime.utcnow()
        count.total_difference = round(total_difference, 3)
        self.db.commit()
        self.db.refresh(count)
        logger.info(f"🧮 Inventory count {count.id} completed, difference {count.total_difference}")
        return count

    # ========================================================================
    # Stats
    # ========================================================================

    def stats(self, user: User) -> dict:
        products = (
            self.db.query(Product)
            .filter(Product.tenant_id == user.tenant_id, Product.deleted_at.is_(None))
            .all()
        )
        tracked = [p for p in products if p.track_inventory]
        open_alerts = (
            self.db.query(StockAlert)
            .filter(StockAlert.tenant_id == user.tenant_id, StockAlert.status == "OPEN")
            .count()
        )
        return {
            "total_products": len(products),
            "active_products": sum(1 for p in products if p.status == "ACTIVE"),
            "stock_value": round(sum(max(p.quantity or 0, 0) * (p.cost_price or 0) for p in tracked), 2),
            "low_stock": sum(1 for p in tracked if 0 < (p.quantity or 0) <= (p.min_stock or 0)),
            "out_of_stock": sum(1 for p in tracked if (p.quantity or 0) <= 0),
            "open_alerts": open_alerts,
        }
