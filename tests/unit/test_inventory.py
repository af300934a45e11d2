"""Unit tests for stock movements, alerts, purchase orders and counts."""

import pytest
from fastapi import HTTPException

from app.domain.inventory.schemas import (
    BulkAdjustItem,
    BulkAdjustRequest,
    CountedItem,
    CountStart,
    CountSubmit,
    MovementCreate,
    ProductCreate,
    PurchaseOrderCreate,
    PurchaseOrderItem,
    ReceiveItem,
    ReceiveRequest,
    SupplierCreate,
)
from app.domain.inventory.service import InventoryService
from app.domain.inventory.stock import apply_movement, quantity_delta
from app.models_inventory import Product, StockAlert, StockMovement


@pytest.fixture
def make_product(db, tenant):
    def factory(sku="SHAMP-500", quantity=10.0, **kwargs) -> Product:
        values = {"name": "Shampoo 500ml", "cost_price": 12.0, "sale_price": 30.0, "min_stock": 0}
        values.update(kwargs)
        product = Product(tenant_id=tenant.id, sku=sku, quantity=quantity, **values)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return factory


def _open_alert_types(db, product) -> set:
    rows = db.query(StockAlert).filter(StockAlert.product_id == product.id, StockAlert.status == "OPEN").all()
    return {a.type for a in rows}


@pytest.mark.unit
class TestStockMovements:
    @pytest.mark.parametrize(
        "movement_type,quantity,expected",
        [("IN", 5, 5), ("RETURN", -2, 2), ("OUT", 3, -3), ("LOSS", 1, -1), ("ADJUSTMENT", -4, -4)],
    )
    def test_quantity_delta(self, movement_type, quantity, expected):
        assert quantity_delta(movement_type, quantity) == expected

    def test_thresholds_raise_and_resolve_alerts(self, db, make_product):
        product = make_product(min_stock=3, reorder_point=5)

        apply_movement(db, product, "OUT", 6, reason="SALE")
        assert product.quantity == 4
        assert _open_alert_types(db, product) == {"REORDER_POINT"}

        apply_movement(db, product, "OUT", 4, reason="SALE")
        assert product.status == "OUT_OF_STOCK"
        assert _open_alert_types(db, product) == {"REORDER_POINT", "OUT_OF_STOCK"}

        apply_movement(db, product, "IN", 20, reason="PURCHASE", unit_cost=10.0)
        db.commit()
        assert product.status == "ACTIVE"
        assert product.cost_price == 10.0
        assert _open_alert_types(db, product) == set()

    def test_movement_records_before_and_after(self, db, make_product):
        product = make_product()
        movement = apply_movement(db, product, "OUT", 2, reason="INTERNAL_USE")
        assert (movement.previous_quantity, movement.new_quantity) == (10.0, 8.0)
        assert movement.total_cost == 24.0

    def test_insufficient_stock(self, db, make_product):
        product = make_product(quantity=2.0)
        with pytest.raises(HTTPException) as exc:
            apply_movement(db, product, "OUT", 5)
        assert exc.value.status_code == 400
        assert "Insufficient stock" in exc.value.detail
        assert product.quantity == 2.0

    def test_negative_stock_when_allowed(self, db, make_product):
        product = make_product(quantity=1.0, allow_negative_stock=True)
        apply_movement(db, product, "OUT", 3)
        assert product.quantity == -2.0


@pytest.mark.unit
class TestInventoryService:
    def test_initial_stock_is_a_movement(self, db, owner):
        service = InventoryService(db)
        product = service.create_product(
            ProductCreate(sku="COND-1", name="Condicionador", cost_price=8, quantity=15, min_stock=2), owner
        )
        movements = db.query(StockMovement).filter(StockMovement.product_id == product.id).all()
        assert product.quantity == 15
        assert len(movements) == 1
        assert movements[0].notes == "Initial stock"

    def test_duplicate_sku(self, db, owner, make_product):
        make_product(sku="DUP-1")
        with pytest.raises(HTTPException) as exc:
            InventoryService(db).create_product(ProductCreate(sku="DUP-1", name="Other"), owner)
        assert exc.value.status_code == 409

    def test_movement_through_service(self, db, owner, make_product):
        product = make_product()
        movement = InventoryService(db).create_movement(
            MovementCreate(product_id=product.id, type="OUT", reason="SALE", quantity=3), owner
        )
        assert movement.new_quantity == 7
        assert movement.created_by == owner.id

    def test_reserve_uses_available_quantity(self, db, owner, make_product):
        product = make_product()
        service = InventoryService(db)
        service.reserve(product.id, 8, owner)
        with pytest.raises(HTTPException) as exc:
            service.reserve(product.id, 3, owner)
        assert exc.value.status_code == 400

        released = service.release(product.id, 5, owner)
        assert released.reserved_quantity == 3

    def test_bulk_adjust_is_all_or_nothing(self, db, owner, make_product):
        first = make_product(sku="A-1")
        second = make_product(sku="B-1", quantity=1.0)
        with pytest.raises(HTTPException):
            InventoryService(db).bulk_adjust(
                BulkAdjustRequest(
                    items=[
                        BulkAdjustItem(product_id=first.id, quantity=5),
                        BulkAdjustItem(product_id=second.id, quantity=-10),
                    ]
                ),
                owner,
            )
        db.refresh(first)
        assert first.quantity == 10.0

    def test_purchase_order_partial_then_full_receipt(self, db, owner, make_product):
        product = make_product(quantity=0.0)
        service = InventoryService(db)
        supplier = service.create_supplier(SupplierCreate(name="Distribuidora Beleza"), owner)

        order = service.create_order(
            PurchaseOrderCreate(
                supplier_id=supplier.id,
                items=[PurchaseOrderItem(product_id=product.id, quantity=10, unit_cost=9.5)],
                shipping=5,
            ),
            owner,
        )
        assert order.status == "DRAFT"
        assert order.total == 100.0

        with pytest.raises(HTTPException):
            service.receive_order(order.id, ReceiveRequest(), owner)

        service.approve_order(order.id, owner)
        service.mark_ordered(order.id, owner)

        order = service.receive_order(
            order.id, ReceiveRequest(items=[ReceiveItem(product_id=product.id, quantity=4)]), owner
        )
        assert order.status == "PARTIAL"
        db.refresh(product)
        assert product.quantity == 4
        assert product.cost_price == 9.5

        order = service.receive_order(order.id, ReceiveRequest(), owner)
        assert order.status == "RECEIVED"
        db.refresh(product)
        assert product.quantity == 10

        with pytest.raises(HTTPException):
            service.cancel_order(order.id, owner)

    def test_receiving_unknown_product_is_refused(self, db, owner, make_product):
        product = make_product()
        stranger = make_product(sku="OTHER-1")
        service = InventoryService(db)
        supplier = service.create_supplier(SupplierCreate(name="Fornecedor"), owner)
        order = service.create_order(
            PurchaseOrderCreate(
                supplier_id=supplier.id, items=[PurchaseOrderItem(product_id=product.id, quantity=2, unit_cost=1)]
            ),
            owner,
        )
        service.approve_order(order.id, owner)

        with pytest.raises(HTTPException) as exc:
            service.receive_order(
                order.id, ReceiveRequest(items=[ReceiveItem(product_id=stranger.id, quantity=1)]), owner
            )
        assert exc.value.status_code == 400

    def test_count_adjusts_to_counted_quantity(self, db, owner, make_product):
        product = make_product()
        service = InventoryService(db)
        count = service.start_count(CountStart(product_ids=[product.id]), owner)
        assert count.items[0]["system_quantity"] == 10.0

        count = service.submit_count(
            count.id, CountSubmit(items=[CountedItem(product_id=product.id, counted_quantity=7)]), owner
        )
        assert count.status == "COMPLETED"
        assert count.total_difference == -3
        db.refresh(product)
        assert product.quantity == 7

    def test_delete_discontinues(self, db, owner, make_product):
        product = make_product()
        InventoryService(db).delete_product(product.id, owner)
        db.refresh(product)
        assert product.status == "DISCONTINUED"
        assert product.deleted_at is not None
