"""Stock movements and alert bookkeeping shared by every inventory flow"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models_inventory import Product, StockAlert, StockMovement

logger = logging.getLogger(__name__)

ADDING_TYPES = ("IN", "RETURN")


def quantity_delta(movement_type: str, quantity: float) -> float:
    if movement_type in ADDING_TYPES:
        return abs(quantity)
    if movement_type == "ADJUSTMENT":
        return quantity
    return -abs(quantity)


def _open_alert(db: Session, product: Product, alert_type: str) -> Optional[StockAlert]:
    return (
        db.query(StockAlert)
        .filter(
            StockAlert.product_id == product.id,
            StockAlert.type == alert_type,
            StockAlert.status.in_(("OPEN", "ACKNOWLEDGED")),
        )
        .first()
    )


def _raise_alert(db: Session, product: Product, alert_type: str, threshold: float, message: str) -> None:
    if _open_alert(db, product, alert_type):
        return
    db.add(
        StockAlert(
            tenant_id=product.tenant_id,
            product_id=product.id,
            type=alert_type,
            message=message,
            current_quantity=product.quantity,
            threshold=threshold,
        )
    )
    logger.info(f"🔔 {alert_type} alert for product {product.sku} ({product.quantity})")


def check_alerts(db: Session, product: Product) -> None:
    """Open alerts for the thresholds the product crossed and resolve the rest"""
    if not product.track_inventory:
        return
    qty = product.quantity or 0
    min_stock = product.min_stock or 0
    active = set()

    if qty <= 0:
        active.add("OUT_OF_STOCK")
        _raise_alert(db, product, "OUT_OF_STOCK", 0, f"{product.name} is out of stock")
    elif qty <= min_stock:
        active.add("LOW_STOCK")
        _raise_alert(
            db, product, "LOW_STOCK", min_stock, f"{product.name} is below minimum stock ({qty}/{min_stock})"
        )
    if product.reorder_point is not None and qty <= product.reorder_point:
        active.add("REORDER_POINT")
        _raise_alert(
            db,
            product,
            "REORDER_POINT",
            product.reorder_point,
            f"{product.name} reached its reorder point ({qty}/{product.reorder_point})",
        )

    now = datetime.utcnow()
    stale = db.query(StockAlert).filter(
        StockAlert.product_id == product.id,
        StockAlert.status.in_(("OPEN", "ACKNOWLEDGED")),
    )
    for alert in stale:
        if alert.type not in active:
            alert.status = "RESOLVED"
            alert.resolved_at = now


def apply_movement(
    db: Session,
    product: Product,
    movement_type: str,
    quantity: float,
    reason: str = "OTHER",
    unit_cost: Optional[float] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> StockMovement:
    """Move stock and record the movement. Flushes, does not commit"""
    previous = product.quantity or 0
    new_quantity = previous + quantity_delta(movement_type, quantity)
    if new_quantity < 0 and not product.allow_negative_stock:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient stock for {product.sku}: {previous} available",
        )

    cost = unit_cost if unit_cost is not None else product.cost_price
    movement = StockMovement(
        tenant_id=product.tenant_id,
        product_id=product.id,
        type=movement_type,
        reason=reason,
        quantity=quantity,
        previous_quantity=previous,
        new_quantity=new_quantity,
        unit_cost=cost,
        total_cost=round(abs(quantity) * (cost or 0), 2),
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    db.add(movement)

    product.quantity = new_quantity
    if product.status in ("ACTIVE", "OUT_OF_STOCK"):
        product.status = "OUT_OF_STOCK" if new_quantity <= 0 else "ACTIVE"
    if movement_type == "IN" and unit_cost is not None:
        product.cost_price = unit_cost
    check_alerts(db, product)
    db.flush()
    return movement
