"""Professional router - FastAPI endpoints for professionals and their schedules"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ..appointments.availability import AvailabilityService
from .schemas import (
    BlockRejectRequest,
    ProfessionalCreate,
    ProfessionalResponse,
    ProfessionalUpdate,
    ReorderRequest,
    ScheduleBlockCreate,
    ScheduleBlockResponse,
    ScheduleBlockUpdate,
    ServiceAssignment,
    WorkingHoursReplace,
    WorkingHoursResponse,
)
from .service import ProfessionalService

router = APIRouter(prefix="/api/v1/professionals", tags=["Professionals"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def get_professional_service(db: Session = Depends(get_db)) -> ProfessionalService:
    """Dependency injection for ProfessionalService"""
    return ProfessionalService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[ProfessionalResponse])
async def list_professionals(
    status: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.list_professionals(current_user, status, include_deleted)


@router.post("", response_model=ProfessionalResponse, status_code=201)
async def create_professional(
    data: ProfessionalCreate,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.create_professional(data, current_user)


@router.get("/stats")
async def professionals_overview(
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_overview(current_user)


@router.put("/reorder", response_model=list[ProfessionalResponse])
async def reorder_professionals(
    data: ReorderRequest,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.reorder(data.ids, current_user)


@router.get("/{professional_id}", response_model=ProfessionalResponse)
async def get_professional(
    professional_id: str,
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_professional(professional_id, current_user)


@router.patch("/{professional_id}", response_model=ProfessionalResponse)
async def update_professional(
    professional_id: str,
    data: ProfessionalUpdate,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.update_professional(professional_id, data, current_user)


@router.delete("/{professional_id}")
async def delete_professional(
    professional_id: str,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.delete_professional(professional_id, current_user)


@router.post("/{professional_id}/restore", response_model=ProfessionalResponse)
async def restore_professional(
    professional_id: str,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.restore_professional(professional_id, current_user)


@router.get("/{professional_id}/stats")
async def professional_stats(
    professional_id: str,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_stats(professional_id, current_user, start, end)


# ============================================================================
# WORKING HOURS AND SERVICES
# ============================================================================


@router.get("/{professional_id}/working-hours", response_model=list[WorkingHoursResponse])
async def get_working_hours(
    professional_id: str,
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_working_hours(professional_id, current_user)


@router.put("/{professional_id}/working-hours", response_model=list[WorkingHoursResponse])
async def replace_working_hours(
    professional_id: str,
    data: WorkingHoursReplace,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    """Replace the whole week at once"""
    return service.replace_working_hours(professional_id, data, current_user)


@router.post("/{professional_id}/services", response_model=ProfessionalResponse)
async def add_services(
    professional_id: str,
    data: ServiceAssignment,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.add_services(professional_id, data.service_ids, current_user)


@router.delete("/{professional_id}/services/{service_id}", response_model=ProfessionalResponse)
async def remove_service(
    professional_id: str,
    service_id: str,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.remove_service(professional_id, service_id, current_user)


# ============================================================================
# SCHEDULE BLOCKS
# ============================================================================


@router.get("/{professional_id}/blocks", response_model=list[ScheduleBlockResponse])
async def list_blocks(
    professional_id: str,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.list_blocks(professional_id, current_user, start, end, status)


@router.post("/{professional_id}/blocks", response_model=ScheduleBlockResponse, status_code=201)
async def create_block(
    professional_id: str,
    data: ScheduleBlockCreate,
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.create_block(professional_id, data, current_user)


@router.patch("/{professional_id}/blocks/{block_id}", response_model=ScheduleBlockResponse)
async def update_block(
    professional_id: str,
    block_id: str,
    data: ScheduleBlockUpdate,
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.update_block(professional_id, block_id, data, current_user)


@router.post("/{professional_id}/blocks/{block_id}/approve", response_model=ScheduleBlockResponse)
async def approve_block(
    professional_id: str,
    block_id: str,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.approve_block(professional_id, block_id, current_user)


@router.post("/{professional_id}/blocks/{block_id}/reject", response_model=ScheduleBlockResponse)
async def reject_block(
    professional_id: str,
    block_id: str,
    data: BlockRejectRequest,
    current_user: User = Depends(admin_only),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.reject_block(professional_id, block_id, data.reason, current_user)


@router.delete("/{professional_id}/blocks/{block_id}")
async def delete_block(
    professional_id: str,
    block_id: str,
    current_user: User = Depends(get_current_user),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.delete_block(professional_id, block_id, current_user)


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/{professional_id}/availability")
async def get_availability(
    professional_id: str,
    day: date = Query(..., alias="date"),
    duration: Optional[int] = Query(None, ge=5, le=720),
    service_ids: Optional[list[str]] = Query(None),
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
):
    slots = availability.get_available_slots(
        current_user.tenant_id, professional_id, day, duration, service_ids
    )
    return {"date": day, "slots": slots, "total_slots": len(slots)}


@router.get("/{professional_id}/availability/range")
async def get_availability_range(
    professional_id: str,
    start: date = Query(...),
    end: date = Query(...),
    duration: Optional[int] = Query(None, ge=5, le=720),
    service_ids: Optional[list[str]] = Query(None),
    include_slots: bool = Query(True),
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
):
    return availability.get_availability_range(
        current_user.tenant_id, professional_id, start, end, duration, service_ids, include_slots
    )


@router.get("/{professional_id}/availability/next")
async def get_next_available(
    professional_id: str,
    count: int = Query(5, ge=1, le=50),
    duration: Optional[int] = Query(None, ge=5, le=720),
    service_ids: Optional[list[str]] = Query(None),
    current_user: User = Depends(get_current_user),
    availability: AvailabilityService = Depends(get_availability_service),
):
    return availability.get_next_available_slots(
        current_user.tenant_id, professional_id, count, duration, service_ids
    )
