"""Professional service - Business logic for professionals, working hours and blocks"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...cache import invalidate_public_catalog
from ...models import Professional, ScheduleBlock, User, WorkingHours
from ...models_appointment import Appointment
from ...plan_limits import enforce_limit
from .repository import ProfessionalRepository
from .schemas import (
    ProfessionalCreate,
    ProfessionalUpdate,
    ScheduleBlockCreate,
    ScheduleBlockUpdate,
    WorkingHoursReplace,
)

logger = logging.getLogger(__name__)


class ProfessionalService:
    """Service layer for professional business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProfessionalRepository()

    def _invalidate(self, user: User) -> None:
        invalidate_public_catalog(user.tenant.slug)

    def list_professionals(self, user: User, status: Optional[str] = None, include_deleted: bool = False):
        return self.repo.list_professionals(self.db, user.tenant_id, status, include_deleted)

    def get_professional(self, professional_id: str, user: User, include_deleted: bool = False) -> Professional:
        professional = self.repo.get(self.db, professional_id, user.tenant_id, include_deleted)
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")
        return professional

    def create_professional(self, data: ProfessionalCreate, user: User) -> Professional:
        logger.info(f"📥 Creating professional for tenant {user.tenant_id}")
        enforce_limit(self.db, user.tenant, "professionals")

        values = data.model_dump(exclude={"service_ids"})
        professional = Professional(
            tenant_id=user.tenant_id,
            display_order=self.repo.next_display_order(self.db, user.tenant_id),
            **values,
        )
        professional.services = self.repo.get_services(self.db, user.tenant_id, data.service_ids)
        professional = self.repo.create(self.db, professional)
        self._invalidate(user)
        logger.info(f"✅ Professional {professional.id} created")
        return professional

    def update_professional(self, professional_id: str, data: ProfessionalUpdate, user: User) -> Professional:
        professional = self.get_professional(professional_id, user)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(professional, key, value)
        professional = self.repo.save(self.db, professional)
        self._invalidate(user)
        return professional

    def delete_professional(self, professional_id: str, user: User) -> dict:
        professional = self.get_professional(professional_id, user)
        future = (
            self.db.query(Appointment)
            .filter(
                Appointment.professional_id == professional.id,
                Appointment.scheduled_at >= datetime.utcnow(),
                Appointment.status.in_(("PENDING", "CONFIRMED")),
            )
            .count()
        )
        if future:
            raise HTTPException(
                status_code=400,
                detail=f"Professional has {future} upcoming appointment(s); reschedule or cancel them first",
            )
        professional.deleted_at = datetime.utcnow()
        professional.status = "INACTIVE"
        self.db.commit()
        self._invalidate(user)
        return {"message": "Professional deleted"}

    def restore_professional(self, professional_id: str, user: User) -> Professional:
        professional = self.get_professional(professional_id, user, include_deleted=True)
        if professional.deleted_at is None:
            raise HTTPException(status_code=400, detail="Professional is not deleted")
        enforce_limit(self.db, user.tenant, "professionals")
        professional.deleted_at = None
        professional.status = "ACTIVE"
        professional = self.repo.save(self.db, professional)
        self._invalidate(user)
        return professional

    def reorder(self, ids: list[str], user: User) -> list[Professional]:
        professionals = {p.id: p for p in self.repo.list_professionals(self.db, user.tenant_id)}
        missing = [i for i in ids if i not in professionals]
        if missing:
            raise HTTPException(status_code=404, detail=f"Professionals not found: {', '.join(missing)}")
        for position, professional_id in enumerate(ids):
            professionals[professional_id].display_order = position
        self.db.commit()
        self._invalidate(user)
        return self.repo.list_professionals(self.db, user.tenant_id)

    # ========================================================================
    # Working hours
    # ========================================================================

    def get_working_hours(self, professional_id: str, user: User) -> list[WorkingHours]:
        professional = self.get_professional(professional_id, user)
        return sorted(professional.working_hours, key=lambda w: w.day_of_week)

    def replace_working_hours(self, professional_id: str, data: WorkingHoursReplace, user: User) -> list[WorkingHours]:
        professional = self.get_professional(professional_id, user)
        rows = [
            WorkingHours(
                tenant_id=user.tenant_id,
                professional_id=professional.id,
                day_of_week=day.day_of_week,
                is_working_day=day.is_working_day,
                start_time=day.start_time if day.is_working_day else None,
                end_time=day.end_time if day.is_working_day else None,
                break_start=day.break_start if day.is_working_day else None,
                break_end=day.break_end if day.is_working_day else None,
            )
            for day in data.days
        ]
        self.repo.replace_working_hours(self.db, professional, rows)
        self._invalidate(user)
        logger.info(f"✅ Working hours replaced for professional {professional.id}")
        return sorted(professional.working_hours, key=lambda w: w.day_of_week)

    # ========================================================================
    # Services
    # ========================================================================

    def add_services(self, professional_id: str, service_ids: list[str], user: User) -> Professional:
        professional = self.get_professional(professional_id, user)
        services = self.repo.get_services(self.db, user.tenant_id, service_ids)
        if len(services) != len(set(service_ids)):
            raise HTTPException(status_code=404, detail="One or more services not found")
        current = {s.id for s in professional.services}
        for service in services:
            if service.id not in current:
                professional.services.append(service)
        professional = self.repo.save(self.db, professional)
        self._invalidate(user)
        return professional

    def remove_service(self, professional_id: str, service_id: str, user: User) -> Professional:
        professional = self.get_professional(professional_id, user)
        professional.services = [s for s in professional.services if s.id != service_id]
        professional = self.repo.save(self.db, professional)
        self._invalidate(user)
        return professional

    # ========================================================================
    # Schedule blocks
    # ========================================================================

    def list_blocks(self, professional_id: str, user: User, start=None, end=None, status=None):
        professional = self.get_professional(professional_id, user)
        return self.repo.list_blocks(self.db, user.tenant_id, professional.id, start, end, status)

    def _get_block(self, professional_id: str, block_id: str, user: User) -> ScheduleBlock:
        block = self.repo.get_block(self.db, block_id, professional_id, user.tenant_id)
        if not block:
            raise HTTPException(status_code=404, detail="Schedule block not found")
        return block

    def _check_block_range(self, professional_id: str, start: datetime, end: datetime, user: User) -> None:
        if start > end:
            raise HTTPException(status_code=400, detail="start_date must be before end_date")
        overlapping = self.repo.count_overlapping_appointments(self.db, user.tenant_id, professional_id, start, end)
        if overlapping:
            raise HTTPException(
                status_code=400,
                detail=f"There are {overlapping} appointment(s) in this period; reschedule them first",
            )

    def create_block(self, professional_id: str, data: ScheduleBlockCreate, user: User) -> ScheduleBlock:
        professional = self.get_professional(professional_id, user)
        self._check_block_range(professional.id, data.start_date, data.end_date, user)

        block = ScheduleBlock(tenant_id=user.tenant_id, professional_id=professional.id, **data.model_dump())
        self.db.add(block)
        self.db.commit()
        self.db.refresh(block)
        logger.info(f"✅ {block.type} block created for professional {professional.id}")
        return block

    def update_block(self, professional_id: str, block_id: str, data: ScheduleBlockUpdate, user: User) -> ScheduleBlock:
        block = self._get_block(professional_id, block_id, user)
        changes = data.model_dump(exclude_unset=True)
        start = changes.get("start_date") or block.start_date
        end = changes.get("end_date") or block.end_date
        if "start_date" in changes or "end_date" in changes:
            self._check_block_range(professional_id, start, end, user)
        for key, value in changes.items():
            if value is not None:
                setattr(block, key, value.upper() if key == "type" else value)
        return self.repo.save(self.db, block)

    def approve_block(self, professional_id: str, block_id: str, user: User) -> ScheduleBlock:
        block = self._get_block(professional_id, block_id, user)
        if block.status != "PENDING":
            raise HTTPException(status_code=400, detail=f"Block is already {block.status}")
        block.status = "APPROVED"
        block.approved_by = user.id
        block.approved_at = datetime.utcnow()

        now = datetime.utcnow()
        if block.type == "VACATION" and block.start_date <= now <= block.end_date:
            block.professional.status = "ON_VACATION"
            logger.info(f"🏖️ Professional {professional_id} is now on vacation")
        return self.repo.save(self.db, block)

    def reject_block(self, professional_id: str, block_id: str, reason: Optional[str], user: User) -> ScheduleBlock:
        block = self._get_block(professional_id, block_id, user)
        if block.status != "PENDING":
            raise HTTPException(status_code=400, detail=f"Block is already {block.status}")
        block.status = "REJECTED"
        block.rejection_reason = reason
        return self.repo.save(self.db, block)

    def delete_block(self, professional_id: str, block_id: str, user: User) -> dict:
        block = self._get_block(professional_id, block_id, user)
        self.db.delete(block)
        self.db.commit()
        return {"message": "Schedule block deleted"}

    # ========================================================================
    # Stats
    # ========================================================================

    def get_stats(self, professional_id: str, user: User, start=None, end=None) -> dict:
        professional = self.get_professional(professional_id, user)
        query = self.db.query(Appointment.status, func.count(Appointment.id)).filter(
            Appointment.tenant_id == user.tenant_id, Appointment.professional_id == professional.id
        )
        revenue_query = self.db.query(func.coalesce(func.sum(Appointment.final_price), 0)).filter(
            Appointment.tenant_id == user.tenant_id,
            Appointment.professional_id == professional.id,
            Appointment.status == "COMPLETED",
        )
        if start:
            query = query.filter(Appointment.scheduled_at >= start)
            revenue_query = revenue_query.filter(Appointment.scheduled_at >= start)
        if end:
            query = query.filter(Appointment.scheduled_at <= end)
            revenue_query = revenue_query.filter(Appointment.scheduled_at <= end)

        by_status = dict(query.group_by(Appointment.status).all())
        total = sum(by_status.values())
        completed = by_status.get("COMPLETED", 0)
        revenue = float(revenue_query.scalar() or 0)
        return {
            "professional_id": professional.id,
            "total_appointments": total,
            "by_status": by_status,
            "revenue": round(revenue, 2),
            "average_ticket": round(revenue / completed, 2) if completed else 0,
            "completion_rate": round(completed / total * 100, 2) if total else 0,
        }

    def get_overview(self, user: User) -> dict:
        """Professional counts by status for the tenant"""
        rows = (
            self.db.query(Professional.status, func.count(Professional.id))
            .filter(Professional.tenant_id == user.tenant_id, Professional.deleted_at.is_(None))
            .group_by(Professional.status)
            .all()
        )
        by_status = dict(rows)
        return {"total": sum(by_status.values()), "by_status": by_status}
