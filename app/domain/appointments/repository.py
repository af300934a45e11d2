"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ...models import Professional, Service
from ...models_appointment import Appointment
from ...models_customer import Customer


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get(db: Session, appointment_id: str, tenant_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(selectinload(Appointment.services))
            .filter(Appointment.id == appointment_id, Appointment.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def list_query(
        db: Session,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        professional_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        include_archived: bool = False,
    ):
        query = (
            db.query(Appointment)
            .options(selectinload(Appointment.services))
            .filter(Appointment.tenant_id == tenant_id)
        )
        if not include_archived:
            query = query.filter(Appointment.archived_at.is_(None))
        if start:
            query = query.filter(Appointment.scheduled_at >= start)
        if end:
            query = query.filter(Appointment.scheduled_at <= end)
        if professional_id:
            query = query.filter(Appointment.professional_id == professional_id)
        if customer_id:
            query = query.filter(Appointment.customer_id == customer_id)
        if status:
            statuses = [s.strip().upper() for s in status.split(",") if s.strip()]
            query = query.filter(Appointment.status.in_(statuses))
        return query.order_by(Appointment.scheduled_at)

    @staticmethod
    def status_counts(db: Session, tenant_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        query = db.query(Appointment.status, func.count(Appointment.id)).filter(Appointment.tenant_id == tenant_id)
        if start:
            query = query.filter(Appointment.scheduled_at >= start)
        if end:
            query = query.filter(Appointment.scheduled_at <= end)
        return dict(query.group_by(Appointment.status).all())

    @staticmethod
    def get_customer(db: Session, tenant_id: str, customer_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def get_professional(db: Session, tenant_id: str, professional_id: str) -> Optional[Professional]:
        return (
            db.query(Professional)
            .filter(
                Professional.id == professional_id,
                Professional.tenant_id == tenant_id,
                Professional.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_services(db: Session, tenant_id: str, service_ids: list[str]) -> dict[str, Service]:
        if not service_ids:
            return {}
        services = (
            db.query(Service)
            .filter(Service.tenant_id == tenant_id, Service.id.in_(service_ids), Service.deleted_at.is_(None))
            .all()
        )
        return {s.id: s for s in services}
