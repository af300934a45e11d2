"""Public booking router - unauthenticated endpoints addressed by tenant slug"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import create_rate_limiter
from .schemas import BookingConfirmation, PublicBookingRequest, PublicCancelRequest
from .service import BookingService

router = APIRouter(prefix="/api/v1/public", tags=["Public Booking"])

read_rate_limit = create_rate_limiter(limit=120, window_seconds=60, key_prefix="public_read")
booking_rate_limit = create_rate_limiter(limit=10, window_seconds=300, key_prefix="public_booking")


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


@router.get("/{slug}")
async def salon_profile(
    slug: str,
    _: None = Depends(read_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.profile(slug)


@router.get("/{slug}/services")
async def salon_services(
    slug: str,
    _: None = Depends(read_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.services(slug)


@router.get("/{slug}/professionals")
async def salon_professionals(
    slug: str,
    service_id: Optional[str] = Query(None),
    _: None = Depends(read_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.professionals(slug, service_id)


@router.get("/{slug}/availability")
async def salon_availability(
    slug: str,
    date: date = Query(...),
    service_ids: list[str] = Query(...),
    professional_id: Optional[str] = Query(None),
    _: None = Depends(read_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.availability(slug, date, service_ids, professional_id)


@router.post("/{slug}/appointments", response_model=BookingConfirmation, status_code=201)
async def book_appointment(
    slug: str,
    data: PublicBookingRequest,
    _: None = Depends(booking_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.book(slug, data)


@router.post("/{slug}/appointments/{appointment_id}/cancel")
async def cancel_appointment(
    slug: str,
    appointment_id: str,
    data: PublicCancelRequest,
    _: None = Depends(booking_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel(slug, appointment_id, data)
