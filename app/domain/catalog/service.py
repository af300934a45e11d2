"""Catalog service - service categories, services and pricing"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...cache import invalidate_public_catalog
from ...models import Service, ServiceCategory, User
from ...models_appointment import Appointment, AppointmentService
from ...plan_limits import enforce_limit
from ...shared.validators import slugify
from ...tenancy import tenant_query
from .pricing import calculate_duration, calculate_price
from .schemas import BulkServiceUpdate, CategoryCreate, CategoryUpdate, ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, db: Session):
        self.db = db

    def _invalidate(self, user: User) -> None:
        invalidate_public_catalog(user.tenant.slug)

    def _unique_slug(self, model, tenant_id: str, name: str, exclude_id: Optional[str] = None) -> str:
        base = slugify(name) or "item"
        slug = base
        suffix = 2
        while True:
            query = self.db.query(model.id).filter(model.tenant_id == tenant_id, model.slug == slug)
            if exclude_id:
                query = query.filter(model.id != exclude_id)
            if not query.first():
                return slug
            slug = f"{base}-{suffix}"
            suffix += 1

    # ========================================================================
    # Categories
    # ========================================================================

    def list_categories(self, user: User, active_only: bool = False) -> list[ServiceCategory]:
        query = self.db.query(ServiceCategory).filter(ServiceCategory.tenant_id == user.tenant_id)
        if active_only:
            query = query.filter(ServiceCategory.is_active.is_(True))
        return query.order_by(ServiceCategory.display_order, ServiceCategory.name).all()

    def get_category(self, category_id: str, user: User) -> ServiceCategory:
        category = (
            self.db.query(ServiceCategory)
            .filter(ServiceCategory.id == category_id, ServiceCategory.tenant_id == user.tenant_id)
            .first()
        )
        if not category:
            raise HTTPException(status_code=404, detail="Category not found")
        return category

    def create_category(self, data: CategoryCreate, user: User) -> ServiceCategory:
        enforce_limit(self.db, user.tenant, "categories")
        count = self.db.query(ServiceCategory).filter(ServiceCategory.tenant_id == user.tenant_id).count()
        category = ServiceCategory(
            tenant_id=user.tenant_id,
            slug=self._unique_slug(ServiceCategory, user.tenant_id, data.name),
            display_order=count,
            **data.model_dump(),
        )
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        self._invalidate(user)
        return category

    def update_category(self, category_id: str, data: CategoryUpdate, user: User) -> ServiceCategory:
        category = self.get_category(category_id, user)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != category.name:
            category.slug = self._unique_slug(ServiceCategory, user.tenant_id, changes["name"], category.id)
        for key, value in changes.items():
            setattr(category, key, value)
        self.db.commit()
        self.db.refresh(category)
        self._invalidate(user)
        return category

    def delete_category(self, category_id: str, user: User) -> dict:
        category = self.get_category(category_id, user)
        in_use = (
            self.db.query(Service)
            .filter(Service.category_id == category.id, Service.deleted_at.is_(None))
            .count()
        )
        if in_use:
            raise HTTPException(
                status_code=400, detail=f"Category has {in_use} service(s); move or delete them first"
            )
        self.db.delete(category)
        self.db.commit()
        self._invalidate(user)
        return {"message": "Category deleted"}

    def reorder_categories(self, ids: list[str], user: User) -> list[ServiceCategory]:
        categories = {c.id: c for c in self.list_categories(user)}
        for position, category_id in enumerate(ids):
            if category_id not in categories:
                raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
            categories[category_id].display_order = position
        self.db.commit()
        self._invalidate(user)
        return self.list_categories(user)

    # ========================================================================
    # Services
    # ========================================================================

    def list_services_query(
        self,
        user: User,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        include_deleted: bool = False,
    ):
        query = tenant_query(self.db, Service, user.tenant_id, include_deleted=include_deleted)
        if category_id:
            query = query.filter(Service.category_id == category_id)
        if is_active is not None:
            query = query.filter(Service.is_active.is_(is_active))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Service.name.ilike(pattern), Service.description.ilike(pattern)))
        return query.order_by(Service.display_order, Service.name)

    def get_service(self, service_id: str, user: User, include_deleted: bool = False) -> Service:
        service = (
            tenant_query(self.db, Service, user.tenant_id, include_deleted=include_deleted)
            .filter(Service.id == service_id)
            .first()
        )
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        return service

    def _check_category(self, category_id: Optional[str], user: User) -> None:
        if category_id:
            self.get_category(category_id, user)

    def create_service(self, data: ServiceCreate, user: User) -> Service:
        logger.info(f"📥 Creating service '{data.name}' for tenant {user.tenant_id}")
        enforce_limit(self.db, user.tenant, "services")
        self._check_category(data.category_id, user)

        values = data.model_dump()
        values["options"] = [o.model_dump() for o in data.options]
        service = Service(
            tenant_id=user.tenant_id,
            slug=self._unique_slug(Service, user.tenant_id, data.name),
            **values,
        )
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        self._invalidate(user)
        return service

    def update_service(self, service_id: str, data: ServiceUpdate, user: User) -> Service:
        service = self.get_service(service_id, user)
        changes = data.model_dump(exclude_unset=True)
        if "category_id" in changes:
            self._check_category(changes["category_id"], user)
        if changes.get("name") and changes["name"] != service.name:
            service.slug = self._unique_slug(Service, user.tenant_id, changes["name"], service.id)
        if changes.get("options") is not None:
            changes["options"] = [dict(o) for o in changes["options"]]
        for key, value in changes.items():
            setattr(service, key, value)
        self.db.commit()
        self.db.refresh(service)
        self._invalidate(user)
        return service

    def delete_service(self, service_id: str, user: User) -> dict:
        service = self.get_service(service_id, user)
        service.deleted_at = datetime.utcnow()
        service.is_active = False
        self.db.commit()
        self._invalidate(user)
        return {"message": "Service deleted"}

    def restore_service(self, service_id: str, user: User) -> Service:
        service = self.get_service(service_id, user, include_deleted=True)
        if service.deleted_at is None:
            raise HTTPException(status_code=400, detail="Service is not deleted")
        enforce_limit(self.db, user.tenant, "services")
        service.deleted_at = None
        service.is_active = True
        self.db.commit()
        self.db.refresh(service)
        self._invalidate(user)
        return service

    def duplicate_service(self, service_id: str, user: User) -> Service:
        original = self.get_service(service_id, user)
        enforce_limit(self.db, user.tenant, "services")
        name = f"{original.name} (copy)"
        copy = Service(
            tenant_id=user.tenant_id,
            category_id=original.category_id,
            name=name,
            slug=self._unique_slug(Service, user.tenant_id, name),
            description=original.description,
            duration=original.duration,
            price=original.price,
            cost_price=original.cost_price,
            pricing_type=original.pricing_type,
            service_type=original.service_type,
            combo_discount=original.combo_discount,
            package_discount=original.package_discount,
            included_service_ids=list(original.included_service_ids or []),
            professional_prices=dict(original.professional_prices or {}),
            options=list(original.options or []),
            is_active=original.is_active,
            is_online_bookable=original.is_online_bookable,
            is_featured=False,
            display_order=original.display_order,
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        self._invalidate(user)
        return copy

    def bulk_update(self, data: BulkServiceUpdate, user: User) -> dict:
        services = (
            tenant_query(self.db, Service, user.tenant_id).filter(Service.id.in_(data.service_ids)).all()
        )
        if data.action == "change_category":
            self._check_category(data.category_id, user)
        if data.action == "adjust_price" and data.percentage is None:
            raise HTTPException(status_code=400, detail="percentage is required for adjust_price")

        for service in services:
            if data.action == "activate":
                service.is_active = True
            elif data.action == "deactivate":
                service.is_active = False
            elif data.action == "change_category":
                service.category_id = data.category_id
            elif data.action == "adjust_price":
                service.price = round(max(service.price * (1 + data.percentage / 100), 0), 2)
        self.db.commit()
        self._invalidate(user)
        logger.info(f"✅ Bulk {data.action} applied to {len(services)} service(s)")
        return {"updated": len(services), "not_found": len(set(data.service_ids)) - len(services)}

    def reorder_services(self, ids: list[str], user: User) -> dict:
        services = {s.id: s for s in tenant_query(self.db, Service, user.tenant_id).filter(Service.id.in_(ids))}
        for position, service_id in enumerate(ids):
            if service_id in services:
                services[service_id].display_order = position
        self.db.commit()
        self._invalidate(user)
        return {"updated": len(services)}

    def price_for(self, service_id: str, user: User, option_id=None, professional_id=None) -> dict:
        service = self.get_service(service_id, user)
        return {
            **calculate_price(service, option_id, professional_id),
            **calculate_duration(service, option_id),
        }

    def featured_services(self, user: User) -> list[Service]:
        return (
            tenant_query(self.db, Service, user.tenant_id)
            .filter(Service.is_featured.is_(True), Service.is_active.is_(True))
            .order_by(Service.display_order)
            .all()
        )

    def popular_services(self, user: User, limit: int = 10) -> list[dict]:
        """Services ranked by number of completed appointments"""
        rows = (
            self.db.query(Service, func.count(AppointmentService.id).label("bookings"))
            .join(AppointmentService, AppointmentService.service_id == Service.id)
            .join(Appointment, Appointment.id == AppointmentService.appointment_id)
            .filter(
                Service.tenant_id == user.tenant_id,
                Service.deleted_at.is_(None),
                Appointment.status == "COMPLETED",
            )
            .group_by(Service.id)
            .order_by(func.count(AppointmentService.id).desc())
            .limit(limit)
            .all()
        )
        return [
            {"id": s.id, "name": s.name, "price": s.price, "duration": s.duration, "bookings": bookings}
            for s, bookings in rows
        ]
