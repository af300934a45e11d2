"""Catalog router - service categories and services"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.pagination import Page, PageParams, page_params, paginate
from .schemas import (
    BulkServiceUpdate,
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    ReorderRequest,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
)
from .service import CatalogService

router = APIRouter(prefix="/api/v1", tags=["Catalog"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


# ============================================================================
# CATEGORIES
# ============================================================================


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    active_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_categories(current_user, active_only)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_category(data, current_user)


@router.put("/categories/reorder", response_model=list[CategoryResponse])
async def reorder_categories(
    data: ReorderRequest,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.reorder_categories(data.ids, current_user)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_category(category_id, data, current_user)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    """Refused while the category still has services"""
    return service.delete_category(category_id, current_user)


# ============================================================================
# SERVICES
# ============================================================================


@router.get("/services", response_model=Page[ServiceResponse])
async def list_services(
    category_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    include_deleted: bool = Query(False),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    query = service.list_services_query(current_user, category_id, search, is_active, include_deleted)
    return paginate(query, params)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(data, current_user)


@router.get("/services/featured", response_model=list[ServiceResponse])
async def featured_services(
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.featured_services(current_user)


@router.get("/services/popular")
async def popular_services(
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.popular_services(current_user, limit)


@router.post("/services/bulk")
async def bulk_update_services(
    data: BulkServiceUpdate,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.bulk_update(data, current_user)


@router.put("/services/reorder")
async def reorder_services(
    data: ReorderRequest,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.reorder_services(data.ids, current_user)


@router.get("/services/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: str,
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.get_service(service_id, current_user)


@router.patch("/services/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_service(service_id, data, current_user)


@router.delete("/services/{service_id}")
async def delete_service(
    service_id: str,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.delete_service(service_id, current_user)


@router.post("/services/{service_id}/restore", response_model=ServiceResponse)
async def restore_service(
    service_id: str,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.restore_service(service_id, current_user)


@router.post("/services/{service_id}/duplicate", response_model=ServiceResponse, status_code=201)
async def duplicate_service(
    service_id: str,
    current_user: User = Depends(admin_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.duplicate_service(service_id, current_user)


@router.get("/services/{service_id}/price")
async def calculate_service_price(
    service_id: str,
    option_id: Optional[str] = Query(None),
    professional_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.price_for(service_id, current_user, option_id, professional_id)
