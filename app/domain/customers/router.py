"""Customer router - Customers, segments, duplicates and import"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.pagination import Page, PageParams, page_params, paginate
from ..appointments.schemas import AppointmentResponse
from . import importer, merge
from .schemas import (
    BulkCustomerAction,
    CustomerCreate,
    CustomerDelete,
    CustomerResponse,
    CustomerUpdate,
    FindDuplicatesRequest,
    LoyaltyPointsRequest,
    MergeRequest,
    NoteCreate,
    NoteResponse,
    SegmentCreate,
    SegmentMembersRequest,
    SegmentResponse,
    SegmentUpdate,
    TagsUpdate,
)
from .service import CustomerService
from .segmentation import SegmentService

router = APIRouter(prefix="/api/v1/customers", tags=["Customers"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    return CustomerService(db)


def get_segment_service(db: Session = Depends(get_db)) -> SegmentService:
    return SegmentService(db)


# ============================================================================
# SEGMENTS
# ============================================================================


@router.get("/segments", response_model=list[SegmentResponse])
async def list_segments(
    current_user: User = Depends(get_current_user),
    service: SegmentService = Depends(get_segment_service),
):
    return service.list_segments(current_user.tenant_id)


@router.post("/segments", response_model=SegmentResponse, status_code=201)
async def create_segment(
    data: SegmentCreate,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    return service.create_segment(current_user.tenant_id, data)


@router.get("/segments/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: str,
    current_user: User = Depends(get_current_user),
    service: SegmentService = Depends(get_segment_service),
):
    return service.get_segment(segment_id, current_user.tenant_id)


@router.patch("/segments/{segment_id}", response_model=SegmentResponse)
async def update_segment(
    segment_id: str,
    data: SegmentUpdate,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    return service.update_segment(segment_id, current_user.tenant_id, data)


@router.delete("/segments/{segment_id}")
async def delete_segment(
    segment_id: str,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    return service.delete_segment(segment_id, current_user.tenant_id)


@router.post("/segments/{segment_id}/evaluate")
async def evaluate_segment(
    segment_id: str,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    segment = service.get_segment(segment_id, current_user.tenant_id)
    return {"segment_id": segment.id, "customer_count": service.evaluate_segment(segment)}


@router.post("/segments/{segment_id}/members", response_model=SegmentResponse)
async def add_segment_members(
    segment_id: str,
    data: SegmentMembersRequest,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    return service.add_members(segment_id, current_user.tenant_id, data.customer_ids)


@router.delete("/segments/{segment_id}/members", response_model=SegmentResponse)
async def remove_segment_members(
    segment_id: str,
    data: SegmentMembersRequest,
    current_user: User = Depends(admin_only),
    service: SegmentService = Depends(get_segment_service),
):
    return service.remove_members(segment_id, current_user.tenant_id, data.customer_ids)


# ============================================================================
# DUPLICATES, MERGE, IMPORT
# ============================================================================


@router.post("/duplicates")
async def find_duplicates(
    data: FindDuplicatesRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return merge.find_duplicates(
        db, current_user.tenant_id, data.fields, data.include_name_similarity, data.similarity_threshold
    )


@router.post("/merge")
async def merge_customers(
    data: MergeRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return merge.merge_customers(
        db,
        current_user.tenant_id,
        data.primary_customer_id,
        data.merge_customer_ids,
        data.strategy,
        current_user.id,
    )


@router.post("/import/validate")
async def validate_import(
    file: UploadFile = File(...),
    current_user: User = Depends(admin_only),
):
    rows = importer.read_rows(file.filename, await file.read())
    return importer.validate_import(rows)


@router.post("/import")
async def import_customers(
    file: UploadFile = File(...),
    duplicate_action: str = Form("SKIP"),
    dry_run: bool = Form(False),
    current_user: User = Depends(admin_only),
    service: CustomerService = Depends(get_customer_service),
):
    rows = importer.read_rows(file.filename, await file.read())
    return service.import_customers(rows, duplicate_action, dry_run, current_user)


# ============================================================================
# CUSTOMERS
# ============================================================================


@router.get("", response_model=Page[CustomerResponse])
async def list_customers(
    search: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    segment_id: Optional[str] = Query(None),
    birthday_month: Optional[int] = Query(None, ge=1, le=12),
    sort: str = Query("name"),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    query = service.search_query(current_user, search, tag, segment_id, birthday_month, sort)
    return paginate(query, params)


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.create_customer(data, current_user)


@router.get("/stats")
async def customer_stats(
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.stats(current_user)


@router.get("/birthdays", response_model=list[CustomerResponse])
async def birthdays(
    month: Optional[int] = Query(None, ge=1, le=12),
    day: Optional[int] = Query(None, ge=1, le=31),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.birthdays(current_user, month, day)


@router.get("/inactive", response_model=Page[CustomerResponse])
async def inactive_customers(
    days: int = Query(90, ge=1, le=3650),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return paginate(service.inactive_query(current_user, days), params)


@router.post("/bulk")
async def bulk_action(
    data: BulkCustomerAction,
    current_user: User = Depends(admin_only),
    service: CustomerService = Depends(get_customer_service),
):
    return service.bulk_action(data, current_user)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_customer(customer_id, current_user)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_customer(customer_id, data, current_user)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    data: Optional[CustomerDelete] = None,
    current_user: User = Depends(admin_only),
    service: CustomerService = Depends(get_customer_service),
):
    return service.delete_customer(customer_id, current_user, data.reason if data else None)


@router.put("/{customer_id}/tags", response_model=CustomerResponse)
async def update_tags(
    customer_id: str,
    data: TagsUpdate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_tags(customer_id, data, current_user)


@router.get("/{customer_id}/notes", response_model=list[NoteResponse])
async def list_notes(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.list_notes(customer_id, current_user)


@router.post("/{customer_id}/notes", response_model=NoteResponse, status_code=201)
async def add_note(
    customer_id: str,
    data: NoteCreate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.add_note(customer_id, data, current_user)


@router.get("/{customer_id}/appointments", response_model=Page[AppointmentResponse])
async def appointment_history(
    customer_id: str,
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return paginate(service.appointment_history(customer_id, current_user), params)


@router.get("/{customer_id}/timeline")
async def timeline(
    customer_id: str,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.timeline(customer_id, current_user, limit)


@router.get("/{customer_id}/analytics")
async def customer_analytics(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_analytics(customer_id, current_user)


@router.post("/{customer_id}/recalculate", response_model=CustomerResponse)
async def recalculate_metrics(
    customer_id: str,
    current_user: User = Depends(admin_only),
    service: CustomerService = Depends(get_customer_service),
):
    return service.recalculate_metrics(customer_id, current_user)


@router.post("/{customer_id}/loyalty-points", response_model=CustomerResponse)
async def add_loyalty_points(
    customer_id: str,
    data: LoyaltyPointsRequest,
    current_user: User = Depends(admin_only),
    service: CustomerService = Depends(get_customer_service),
):
    return service.add_loyalty_points(customer_id, data.points, data.description, current_user)
