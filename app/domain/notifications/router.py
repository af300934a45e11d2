"""Notification router - outbox, templates, preferences and devices"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...shared.pagination import Page, PageParams, page_params, paginate
from .schemas import (
    BulkSendRequest,
    DeviceTokenRequest,
    NotificationResponse,
    PreferenceResponse,
    PreferenceUpdate,
    SendNotificationRequest,
    TemplateCreate,
    TemplatePreviewRequest,
    TemplateResponse,
    TemplateUpdate,
)
from .service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


# ============================================================================
# TEMPLATES
# ============================================================================


@router.get("/templates", response_model=list[TemplateResponse])
async def list_templates(
    channel: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.list_templates(current_user.tenant_id, channel)


@router.post("/templates", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    current_user: User = Depends(admin_only),
    service: NotificationService = Depends(get_notification_service),
):
    return service.create_template(data, current_user.tenant_id)


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    current_user: User = Depends(admin_only),
    service: NotificationService = Depends(get_notification_service),
):
    return service.update_template(template_id, data, current_user.tenant_id)


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    current_user: User = Depends(admin_only),
    service: NotificationService = Depends(get_notification_service),
):
    return service.delete_template(template_id, current_user.tenant_id)


@router.post("/templates/{template_id}/preview")
async def preview_template(
    template_id: str,
    data: TemplatePreviewRequest,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Render a template with sample variables; missing variables -> 400"""
    return service.preview_template(template_id, data.variables, current_user.tenant_id)


# ============================================================================
# PREFERENCES AND DEVICES
# ============================================================================


@router.get("/preferences/me", response_model=PreferenceResponse)
async def get_my_preferences(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.get_preferences(current_user.tenant_id, "USER", current_user.id)


@router.put("/preferences/me", response_model=PreferenceResponse)
async def update_my_preferences(
    data: PreferenceUpdate,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.update_preferences(current_user.tenant_id, "USER", current_user.id, data)


@router.get("/preferences/{recipient_type}/{recipient_id}", response_model=PreferenceResponse)
async def get_preferences(
    recipient_type: str,
    recipient_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.get_preferences(current_user.tenant_id, recipient_type.upper(), recipient_id)


@router.put("/preferences/{recipient_type}/{recipient_id}", response_model=PreferenceResponse)
async def update_preferences(
    recipient_type: str,
    recipient_id: str,
    data: PreferenceUpdate,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.update_preferences(current_user.tenant_id, recipient_type.upper(), recipient_id, data)


@router.post("/devices", status_code=201)
async def register_device(
    data: DeviceTokenRequest,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    device = service.register_device(current_user.tenant_id, "USER", current_user.id, data)
    return {"id": device.id, "platform": device.platform, "is_active": device.is_active}


@router.delete("/devices/{token}")
async def unregister_device(
    token: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.unregister_device(current_user.tenant_id, token)


# ============================================================================
# NOTIFICATIONS
# ============================================================================


@router.post("", response_model=NotificationResponse, status_code=201)
async def send_notification(
    data: SendNotificationRequest,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Queue a notification; send_now delivers it inline"""
    if data.send_now:
        return await service.send_immediate(data, current_user.tenant_id)
    return service.send_request(data, current_user.tenant_id)


@router.post("/bulk")
async def bulk_send(
    data: BulkSendRequest,
    current_user: User = Depends(admin_only),
    service: NotificationService = Depends(get_notification_service),
):
    return service.bulk_send(data, current_user.tenant_id)


@router.get("/stats")
async def notification_stats(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.stats(current_user.tenant_id)


@router.get("", response_model=Page[NotificationResponse])
async def list_notifications(
    status: Optional[str] = Query(None),
    channel: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    recipient_id: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    query = service.list_query(current_user.tenant_id, status, channel, category, recipient_id, reference_id)
    return paginate(query, params)


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.get(notification_id, current_user.tenant_id)


@router.post("/{notification_id}/cancel", response_model=NotificationResponse)
async def cancel_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.cancel(notification_id, current_user.tenant_id)


@router.post("/{notification_id}/resend", response_model=NotificationResponse)
async def resend_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.resend(notification_id, current_user.tenant_id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return service.mark_read(notification_id, current_user.tenant_id)
