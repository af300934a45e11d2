"""Appointment router - Scheduling, status changes and calendar"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.pagination import Page, PageParams, page_params, paginate
from .availability import AvailabilityService
from .schemas import (
    AppointmentCreate,
    AppointmentCreatedResponse,
    AppointmentResponse,
    AppointmentUpdate,
    CancelRequest,
    ConflictCheckRequest,
    RescheduleRequest,
)
from .service import AppointmentService

router = APIRouter(prefix="/api/v1/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    return AppointmentService(db)


# ============================================================================
# LIST AND CREATE
# ============================================================================


@router.get("", response_model=Page[AppointmentResponse])
async def list_appointments(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    professional_id: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Comma separated statuses"),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    query = service.list_query(current_user, start, end, professional_id, customer_id, status)
    return paginate(query, params)


@router.post("", response_model=AppointmentCreatedResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create(data, current_user)


@router.get("/calendar")
async def calendar_view(
    day: date = Query(..., alias="date"),
    professional_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.calendar(current_user, day, professional_id)


@router.get("/stats")
async def appointment_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.stats(current_user, start, end)


@router.get("/today")
async def today_summary(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.today(current_user)


@router.post("/check-conflicts")
async def check_conflicts(
    data: ConflictCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    duration = data.duration or AvailabilityService(db).calculate_total_duration(
        current_user.tenant_id, data.service_ids
    )
    return AppointmentService(db).check_conflicts(
        current_user, data.professional_id, data.scheduled_at, duration, data.customer_id, data.exclude_id
    )


@router.get("/availability")
async def professionals_availability(
    service_id: str = Query(...),
    day: date = Query(..., alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return AvailabilityService(db).get_professionals_availability(current_user.tenant_id, service_id, day)


# ============================================================================
# SINGLE APPOINTMENT
# ============================================================================


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(appointment_id, current_user.tenant_id)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.update(appointment_id, data, current_user)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reschedule(appointment_id, data, current_user)


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.confirm(appointment_id, current_user)


@router.post("/{appointment_id}/check-in", response_model=AppointmentResponse)
async def check_in(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.check_in(appointment_id, current_user)


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.start(appointment_id, current_user)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.complete(appointment_id, current_user)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    data: CancelRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel(appointment_id, data, current_user)


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.mark_no_show(appointment_id, current_user)
