"""Inventory router - Products, stock movements, alerts, suppliers, purchase orders"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES
from ...database import get_db
from ...models import User
from ...plan_limits import require_feature
from ...shared.pagination import Page, PageParams, page_params, paginate
from .schemas import (
    AlertResponse,
    BulkAdjustRequest,
    CountResponse,
    CountStart,
    CountSubmit,
    MovementCreate,
    MovementResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    PurchaseOrderCreate,
    PurchaseOrderResponse,
    PurchaseOrderUpdate,
    ReceiveRequest,
    ReserveRequest,
    SupplierCreate,
    SupplierResponse,
    SupplierUpdate,
)
from .service import InventoryService

router = APIRouter(prefix="/api/v1/inventory", tags=["Inventory"])

feature_user = require_feature("inventory")


def manager(current_user: User = Depends(feature_user)) -> User:
    if current_user.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return current_user


def get_inventory_service(db: Session = Depends(get_db)) -> InventoryService:
    return InventoryService(db)


@router.get("/stats")
async def inventory_stats(
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.stats(current_user)


# ============================================================================
# PRODUCTS
# ============================================================================


@router.get("/products", response_model=Page[ProductResponse])
async def list_products(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    supplier_id: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    query = service.products_query(current_user, search, category, status, supplier_id, low_stock)
    return paginate(query, params)


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    data: ProductCreate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.create_product(data, current_user)


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.get_product(product_id, current_user)


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    data: ProductUpdate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.update_product(product_id, data, current_user)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.delete_product(product_id, current_user)


@router.post("/products/{product_id}/reserve", response_model=ProductResponse)
async def reserve_stock(
    product_id: str,
    data: ReserveRequest,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.reserve(product_id, data.quantity, current_user)


@router.post("/products/{product_id}/release", response_model=ProductResponse)
async def release_stock(
    product_id: str,
    data: ReserveRequest,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.release(product_id, data.quantity, current_user)


# ============================================================================
# MOVEMENTS
# ============================================================================


@router.get("/movements", response_model=Page[MovementResponse])
async def list_movements(
    product_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return paginate(service.movements_query(current_user, product_id, type, start, end), params)


@router.post("/movements", response_model=MovementResponse, status_code=201)
async def create_movement(
    data: MovementCreate,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.create_movement(data, current_user)


@router.post("/movements/bulk-adjust", response_model=list[MovementResponse])
async def bulk_adjust(
    data: BulkAdjustRequest,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.bulk_adjust(data, current_user)


# ============================================================================
# ALERTS
# ============================================================================


@router.get("/alerts", response_model=list[AlertResponse])
async def list_alerts(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.list_alerts(current_user, status, type)


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.acknowledge_alert(alert_id, current_user)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: str,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.resolve_alert(alert_id, current_user)


@router.post("/alerts/{alert_id}/ignore", response_model=AlertResponse)
async def ignore_alert(
    alert_id: str,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.ignore_alert(alert_id, current_user)


# ============================================================================
# SUPPLIERS
# ============================================================================


@router.get("/suppliers", response_model=list[SupplierResponse])
async def list_suppliers(
    active_only: bool = Query(False),
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.list_suppliers(current_user, active_only)


@router.post("/suppliers", response_model=SupplierResponse, status_code=201)
async def create_supplier(
    data: SupplierCreate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.create_supplier(data, current_user)


@router.get("/suppliers/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: str,
    current_user: User = Depends(feature_user),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.get_supplier(supplier_id, current_user)


@router.patch("/suppliers/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: str,
    data: SupplierUpdate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.update_supplier(supplier_id, data, current_user)


@router.delete("/suppliers/{supplier_id}")
async def delete_supplier(
    supplier_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.delete_supplier(supplier_id, current_user)


# ============================================================================
# PURCHASE ORDERS
# ============================================================================


@router.get("/purchase-orders", response_model=Page[PurchaseOrderResponse])
async def list_purchase_orders(
    status: Optional[str] = Query(None),
    supplier_id: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return paginate(service.orders_query(current_user, status, supplier_id), params)


@router.post("/purchase-orders", response_model=PurchaseOrderResponse, status_code=201)
async def create_purchase_order(
    data: PurchaseOrderCreate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.create_order(data, current_user)


@router.get("/purchase-orders/{order_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(
    order_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.get_order(order_id, current_user)


@router.patch("/purchase-orders/{order_id}", response_model=PurchaseOrderResponse)
async def update_purchase_order(
    order_id: str,
    data: PurchaseOrderUpdate,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.update_order(order_id, data, current_user)


@router.post("/purchase-orders/{order_id}/approve", response_model=PurchaseOrderResponse)
async def approve_purchase_order(
    order_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.approve_order(order_id, current_user)


@router.post("/purchase-orders/{order_id}/order", response_model=PurchaseOrderResponse)
async def send_purchase_order(
    order_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.mark_ordered(order_id, current_user)


@router.post("/purchase-orders/{order_id}/receive", response_model=PurchaseOrderResponse)
async def receive_purchase_order(
    order_id: str,
    data: ReceiveRequest,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.receive_order(order_id, data, current_user)


@router.post("/purchase-orders/{order_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order(
    order_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.cancel_order(order_id, current_user)


# ============================================================================
# INVENTORY COUNTS
# ============================================================================


@router.get("/counts", response_model=list[CountResponse])
async def list_counts(
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.list_counts(current_user)


@router.post("/counts", response_model=CountResponse, status_code=201)
async def start_count(
    data: CountStart,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.start_count(data, current_user)


@router.get("/counts/{count_id}", response_model=CountResponse)
async def get_count(
    count_id: str,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.get_count(count_id, current_user)


@router.post("/counts/{count_id}/submit", response_model=CountResponse)
async def submit_count(
    count_id: str,
    data: CountSubmit,
    current_user: User = Depends(manager),
    service: InventoryService = Depends(get_inventory_service),
):
    return service.submit_count(count_id, data, current_user)
