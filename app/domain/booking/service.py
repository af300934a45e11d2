"""Public booking service - tenant profile, catalog, availability and self-service booking"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import cached_public
from ...models import Professional, Service, Tenant
from ...models_appointment import Appointment
from ...models_customer import Customer
from ...plan_limits import enforce_limit, has_feature
from ...tenancy import validate_tenant
from ..appointments.availability import AvailabilityService
from ..appointments.schemas import AppointmentCreate, AppointmentServiceItem, CancelRequest
from ..appointments.service import AppointmentService
from ..customers.repository import CustomerRepository
from ..customers.service import customer_payload
from ..integrations.webhooks import trigger_event
from ..tenants.service import get_booking_settings
from .schemas import PublicBookingRequest, PublicCancelRequest

logger = logging.getLogger(__name__)

PUBLIC_CACHE_TTL = 300


class BookingService:
    def __init__(self, db: Session):
        self.db = db

    def get_tenant(self, slug: str) -> Tenant:
        tenant = self.db.query(Tenant).filter(Tenant.slug == slug).first()
        valid, _ = validate_tenant(tenant)
        if not valid or not has_feature(tenant, "online_booking"):
            raise HTTPException(status_code=404, detail="Salon not found")
        return tenant

    @cached_public("profile", ttl=PUBLIC_CACHE_TTL)
    def profile(self, slug: str) -> dict:
        tenant = self.get_tenant(slug)
        settings = get_booking_settings(tenant)
        return {
            "name": tenant.name,
            "slug": tenant.slug,
            "phone": tenant.phone,
            "email": tenant.email,
            "logo_url": tenant.logo_url,
            "timezone": tenant.timezone,
            "address": tenant.address,
            "booking": {
                "slot_interval": settings["slot_interval"],
                "min_advance_hours": settings["min_advance_hours"],
                "max_advance_days": settings["max_advance_days"],
                "allow_cancellation_hours": settings["allow_cancellation_hours"],
            },
        }

    def _bookable_services(self, tenant_id: str):
        return self.db.query(Service).filter(
            Service.tenant_id == tenant_id,
            Service.deleted_at.is_(None),
            Service.is_active.is_(True),
            Service.is_online_bookable.is_(True),
        )

    @cached_public("services", ttl=PUBLIC_CACHE_TTL)
    def services(self, slug: str) -> list[dict]:
        tenant = self.get_tenant(slug)
        services = self._bookable_services(tenant.id).order_by(Service.display_order, Service.name).all()
        return [
            {
                "id": s.id,
                "name": s.name,
                "description": s.description,
                "duration": s.duration,
                "price": s.price,
                "pricing_type": s.pricing_type,
                "category": s.category.name if s.category else None,
                "is_featured": s.is_featured,
            }
            for s in services
        ]

    def professionals(self, slug: str, service_id: Optional[str] = None) -> list[dict]:
        tenant = self.get_tenant(slug)
        query = self.db.query(Professional).filter(
            Professional.tenant_id == tenant.id,
            Professional.deleted_at.is_(None),
            Professional.status == "ACTIVE",
            Professional.accepts_online_booking.is_(True),
        )
        if service_id:
            query = query.filter(Professional.services.any(Service.id == service_id))
        return [
            {"id": p.id, "name": p.name, "bio": p.bio, "avatar_url": p.avatar_url}
            for p in query.order_by(Professional.display_order, Professional.name)
        ]

    def availability(
        self,
        slug: str,
        day: date,
        service_ids: list[str],
        professional_id: Optional[str] = None,
    ) -> list[dict]:
        tenant = self.get_tenant(slug)
        if not service_ids:
            raise HTTPException(status_code=400, detail="At least one service is required")
        availability = AvailabilityService(self.db)
        if professional_id:
            professional = self._bookable_professional(tenant.id, professional_id)
            slots = availability.get_available_slots(tenant.id, professional.id, day, service_ids=service_ids)
            return [
                {
                    "professional_id": professional.id,
                    "professional_name": professional.name,
                    "date": day,
                    "is_available": len(slots) > 0,
                    "slots": slots,
                }
            ]
        return availability.get_professionals_availability(tenant.id, service_ids[0], day, online_only=True)

    def _bookable_professional(self, tenant_id: str, professional_id: str) -> Professional:
        professional = (
            self.db.query(Professional)
            .filter(
                Professional.id == professional_id,
                Professional.tenant_id == tenant_id,
                Professional.deleted_at.is_(None),
                Professional.status == "ACTIVE",
                Professional.accepts_online_booking.is_(True),
            )
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")
        return professional

    def _find_or_create_customer(self, tenant: Tenant, data: PublicBookingRequest) -> Customer:
        customer = CustomerRepository.find_by_contact(self.db, tenant.id, data.phone, data.email)
        if customer:
            if data.phone and not customer.phone:
                customer.phone = data.phone
            if data.email and not customer.email:
                customer.email = data.email
            return customer

        enforce_limit(self.db, tenant, "clients")
        customer = Customer(
            tenant_id=tenant.id,
            name=data.name,
            phone=data.phone,
            email=data.email,
            source="ONLINE",
            tags=[],
            accepts_email_marketing=data.accepts_marketing,
            accepts_sms_marketing=data.accepts_marketing,
            accepts_whatsapp_marketing=data.accepts_marketing,
        )
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        trigger_event(self.db, tenant.id, "customer.created", customer_payload(customer))
        logger.info(f"👤 Online booking created customer {customer.id} for tenant {tenant.id}")
        return customer

    def book(self, slug: str, data: PublicBookingRequest) -> dict:
        tenant = self.get_tenant(slug)
        professional = self._bookable_professional(tenant.id, data.professional_id)
        bookable = {s.id for s in self._bookable_services(tenant.id).filter(Service.id.in_(data.service_ids))}
        missing = [sid for sid in data.service_ids if sid not in bookable]
        if missing:
            raise HTTPException(status_code=400, detail="Some services are not available for online booking")

        settings = get_booking_settings(tenant)
        now = datetime.utcnow()
        if data.scheduled_at < now + timedelta(hours=settings["min_advance_hours"]):
            raise HTTPException(
                status_code=400,
                detail=f"Bookings require at least {settings['min_advance_hours']} hour(s) notice",
            )
        if data.scheduled_at > now + timedelta(days=settings["max_advance_days"]):
            raise HTTPException(
                status_code=400,
                detail=f"Bookings can be made at most {settings['max_advance_days']} days ahead",
            )

        customer = self._find_or_create_customer(tenant, data)
        request = AppointmentCreate(
            customer_id=customer.id,
            professional_id=professional.id,
            scheduled_at=data.scheduled_at,
            services=[AppointmentServiceItem(service_id=sid) for sid in data.service_ids],
            notes=data.notes,
            source="ONLINE",
        )
        appointments, _ = AppointmentService(self.db).create_for_tenant(tenant, request, allow_override=False)
        appointment = appointments[0]
        logger.info(f"🌐 Online booking {appointment.id} for tenant {tenant.slug}")
        return {
            "appointment_id": appointment.id,
            "status": appointment.status,
            "scheduled_at": appointment.scheduled_at,
            "end_time": appointment.end_time,
            "professional_name": professional.name,
            "services": [line.service_name for line in appointment.services],
            "total_price": appointment.final_price,
            "salon_name": tenant.name,
            "message": "Appointment confirmed" if appointment.status == "CONFIRMED" else "Appointment requested",
        }

    def cancel(self, slug: str, appointment_id: str, data: PublicCancelRequest, now: Optional[datetime] = None) -> dict:
        tenant = self.get_tenant(slug)
        appointment = (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.tenant_id == tenant.id)
            .first()
        )
        if not appointment or not appointment.customer or appointment.customer.phone != data.phone:
            raise HTTPException(status_code=404, detail="Appointment not found")

        now = now or datetime.utcnow()
        hours = get_booking_settings(tenant)["allow_cancellation_hours"]
        if appointment.scheduled_at - now < timedelta(hours=hours):
            raise HTTPException(
                status_code=400,
                detail=f"Appointments can only be cancelled up to {hours} hour(s) in advance",
            )

        AppointmentService(self.db).cancel_appointment(
            appointment,
            CancelRequest(reason="CLIENT_REQUEST", description=data.reason, cancelled_by_client=True),
        )
        logger.info(f"🚫 Appointment {appointment.id} cancelled online by customer")
        return {"appointment_id": appointment.id, "status": appointment.status, "message": "Appointment cancelled"}
