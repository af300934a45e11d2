"""Professional repository - Database operations for professionals and schedules"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import Professional, ScheduleBlock, Service, WorkingHours
from ...models_appointment import Appointment


class ProfessionalRepository:
    """Repository for professional database operations"""

    @staticmethod
    def list_professionals(db: Session, tenant_id: str, status: Optional[str] = None, include_deleted: bool = False):
        query = (
            db.query(Professional)
            .options(selectinload(Professional.working_hours), selectinload(Professional.services))
            .filter(Professional.tenant_id == tenant_id)
        )
        if not include_deleted:
            query = query.filter(Professional.deleted_at.is_(None))
        if status:
            query = query.filter(Professional.status == status)
        return query.order_by(Professional.display_order, Professional.name).all()

    @staticmethod
    def get(db: Session, professional_id: str, tenant_id: str, include_deleted: bool = False) -> Optional[Professional]:
        query = db.query(Professional).filter(
            Professional.id == professional_id, Professional.tenant_id == tenant_id
        )
        if not include_deleted:
            query = query.filter(Professional.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def create(db: Session, professional: Professional) -> Professional:
        db.add(professional)
        db.commit()
        db.refresh(professional)
        return professional

    @staticmethod
    def save(db: Session, instance):
        db.commit()
        db.refresh(instance)
        return instance

    @staticmethod
    def next_display_order(db: Session, tenant_id: str) -> int:
        last = (
            db.query(Professional.display_order)
            .filter(Professional.tenant_id == tenant_id)
            .order_by(Professional.display_order.desc())
            .first()
        )
        return (last.display_order + 1) if last else 0

    @staticmethod
    def get_services(db: Session, tenant_id: str, service_ids: list[str]) -> list[Service]:
        if not service_ids:
            return []
        return (
            db.query(Service)
            .filter(Service.tenant_id == tenant_id, Service.id.in_(service_ids), Service.deleted_at.is_(None))
            .all()
        )

    @staticmethod
    def replace_working_hours(db: Session, professional: Professional, rows: list[WorkingHours]) -> None:
        """Delete and re-insert the week in a single commit"""
        db.query(WorkingHours).filter(WorkingHours.professional_id == professional.id).delete(
            synchronize_session=False
        )
        db.add_all(rows)
        db.commit()
        db.refresh(professional)

    # Schedule blocks
    @staticmethod
    def list_blocks(
        db: Session,
        tenant_id: str,
        professional_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> list[ScheduleBlock]:
        query = db.query(ScheduleBlock).filter(
            ScheduleBlock.tenant_id == tenant_id, ScheduleBlock.professional_id == professional_id
        )
        if start:
            query = query.filter(ScheduleBlock.end_date >= start)
        if end:
            query = query.filter(ScheduleBlock.start_date <= end)
        if status:
            query = query.filter(ScheduleBlock.status == status)
        return query.order_by(ScheduleBlock.start_date).all()

    @staticmethod
    def get_block(db: Session, block_id: str, professional_id: str, tenant_id: str) -> Optional[ScheduleBlock]:
        return (
            db.query(ScheduleBlock)
            .filter(
                ScheduleBlock.id == block_id,
                ScheduleBlock.professional_id == professional_id,
                ScheduleBlock.tenant_id == tenant_id,
            )
            .first()
        )

    @staticmethod
    def count_overlapping_appointments(
        db: Session, tenant_id: str, professional_id: str, start: datetime, end: datetime
    ) -> int:
        return (
            db.query(Appointment)
            .filter(
                Appointment.tenant_id == tenant_id,
                Appointment.professional_id == professional_id,
                Appointment.status.notin_(("CANCELLED", "NO_SHOW")),
                Appointment.scheduled_at < end,
                Appointment.end_time > start,
            )
            .count()
        )
