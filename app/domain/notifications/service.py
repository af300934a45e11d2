"""
Notification service.

Every notification is written as a PENDING row first (an outbox) and sent by
process_queue(), which the worker runs every minute. Failed sends are retried
with exponential backoff until max_retries is reached.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Professional, User
from ...models_customer import Customer, SegmentMember
from ...models_notification import DeviceToken, Notification, NotificationPreference, NotificationTemplate
from ...security_utils import sanitize_html
from ...services.template_renderer import TemplateRenderError, renderer
from ...shared.dates import at_minutes
from ...shared.validators import time_to_minutes
from .channels import dispatch
from .schemas import (
    BulkSendRequest,
    CATEGORIES,
    CHANNELS,
    DeviceTokenRequest,
    PreferenceUpdate,
    SendNotificationRequest,
    TemplateCreate,
    TemplateUpdate,
)

logger = logging.getLogger(__name__)

RETRY_BASE_SECONDS = 60


def default_channels() -> dict[str, bool]:
    return {c.lower(): True for c in CHANNELS}


def default_categories() -> dict[str, bool]:
    return {c.lower(): True for c in CATEGORIES}


def retry_delay(retry_count: int) -> timedelta:
    """60s x 2^(n-1) for the n-th retry"""
    return timedelta(seconds=RETRY_BASE_SECONDS * (2 ** max(retry_count - 1, 0)))


def quiet_hours_end(pref: Optional[NotificationPreference], now: datetime) -> Optional[datetime]:
    """End of the current quiet window, or None when `now` is outside it"""
    if not pref or not pref.quiet_hours_enabled:
        return None
    start = time_to_minutes(pref.quiet_hours_start)
    end = time_to_minutes(pref.quiet_hours_end)
    minute = now.hour * 60 + now.minute
    today = now.date()

    if start <= end:
        if start <= minute < end:
            return at_minutes(today, end)
        return None
    # Window wraps midnight, e.g. 22:00 - 08:00
    if minute >= start:
        return at_minutes(today + timedelta(days=1), end)
    if minute < end:
        return at_minutes(today, end)
    return None


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Recipients and preferences
    # ------------------------------------------------------------------

    def resolve_address(
        self, tenant_id: str, recipient_type: str, recipient_id: Optional[str], channel: str
    ) -> Optional[str]:
        if not recipient_id or channel == "IN_APP":
            return None
        if channel == "PUSH":
            token = (
                self.db.query(DeviceToken)
                .filter(
                    DeviceToken.tenant_id == tenant_id,
                    DeviceToken.recipient_type == recipient_type,
                    DeviceToken.recipient_id == recipient_id,
                    DeviceToken.is_active.is_(True),
                )
                .order_by(DeviceToken.created_at.desc())
                .first()
            )
            return token.token if token else None

        model = {"CUSTOMER": Customer, "USER": User, "PROFESSIONAL": Professional}.get(recipient_type)
        if model is None:
            return None
        recipient = self.db.query(model).filter(model.id == recipient_id, model.tenant_id == tenant_id).first()
        if not recipient:
            return None
        return recipient.email if channel == "EMAIL" else recipient.phone

    def get_preference(
        self, tenant_id: str, recipient_type: str, recipient_id: Optional[str]
    ) -> Optional[NotificationPreference]:
        if not recipient_id:
            return None
        return (
            self.db.query(NotificationPreference)
            .filter(
                NotificationPreference.tenant_id == tenant_id,
                NotificationPreference.recipient_type == recipient_type,
                NotificationPreference.recipient_id == recipient_id,
            )
            .first()
        )

    def get_preferences(self, tenant_id: str, recipient_type: str, recipient_id: str) -> dict:
        pref = self.get_preference(tenant_id, recipient_type, recipient_id)
        if not pref:
            return {
                "recipient_type": recipient_type,
                "recipient_id": recipient_id,
                "channels": default_channels(),
                "categories": default_categories(),
                "quiet_hours_enabled": False,
                "quiet_hours_start": "22:00",
                "quiet_hours_end": "08:00",
            }
        return {
            "recipient_type": pref.recipient_type,
            "recipient_id": pref.recipient_id,
            "channels": {**default_channels(), **(pref.channels or {})},
            "categories": {**default_categories(), **(pref.categories or {})},
            "quiet_hours_enabled": pref.quiet_hours_enabled,
            "quiet_hours_start": pref.quiet_hours_start,
            "quiet_hours_end": pref.quiet_hours_end,
        }

    def update_preferences(
        self, tenant_id: str, recipient_type: str, recipient_id: str, data: PreferenceUpdate
    ) -> dict:
        pref = self.get_preference(tenant_id, recipient_type, recipient_id)
        if not pref:
            pref = NotificationPreference(
                tenant_id=tenant_id,
                recipient_type=recipient_type,
                recipient_id=recipient_id,
                channels=default_channels(),
                categories=default_categories(),
            )
            self.db.add(pref)

        if data.channels is not None:
            pref.channels = {**(pref.channels or {}), **{k.lower(): v for k, v in data.channels.items()}}
        if data.categories is not None:
            pref.categories = {**(pref.categories or {}), **{k.lower(): v for k, v in data.categories.items()}}
        if data.quiet_hours_enabled is not None:
            pref.quiet_hours_enabled = data.quiet_hours_enabled
        if data.quiet_hours_start:
            pref.quiet_hours_start = data.quiet_hours_start
        if data.quiet_hours_end:
            pref.quiet_hours_end = data.quiet_hours_end
        self.db.commit()
        return self.get_preferences(tenant_id, recipient_type, recipient_id)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_template_by_code(self, tenant_id: str, code: str) -> Optional[NotificationTemplate]:
        return (
            self.db.query(NotificationTemplate)
            .filter(
                NotificationTemplate.tenant_id == tenant_id,
                NotificationTemplate.code == code,
                NotificationTemplate.is_active.is_(True),
            )
            .first()
        )

    def get_template(self, template_id: str, tenant_id: str) -> NotificationTemplate:
        template = (
            self.db.query(NotificationTemplate)
            .filter(NotificationTemplate.id == template_id, NotificationTemplate.tenant_id == tenant_id)
            .first()
        )
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")
        return template

    def list_templates(self, tenant_id: str, channel: Optional[str] = None) -> list[NotificationTemplate]:
        query = self.db.query(NotificationTemplate).filter(NotificationTemplate.tenant_id == tenant_id)
        if channel:
            query = query.filter(NotificationTemplate.channel == channel.upper())
        return query.order_by(NotificationTemplate.code).all()

    def create_template(self, data: TemplateCreate, tenant_id: str) -> NotificationTemplate:
        exists = (
            self.db.query(NotificationTemplate.id)
            .filter(NotificationTemplate.tenant_id == tenant_id, NotificationTemplate.code == data.code)
            .first()
        )
        if exists:
            raise HTTPException(status_code=409, detail=f"Template code '{data.code}' already exists")
        self._validate_syntax(data.subject, data.body, data.html_body)

        template = NotificationTemplate(
            tenant_id=tenant_id,
            code=data.code,
            name=data.name,
            channel=data.channel,
            category=data.category,
            subject=data.subject,
            body=data.body,
            html_body=sanitize_html(data.html_body) if data.html_body else None,
            variables=data.variables,
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template

    def update_template(self, template_id: str, data: TemplateUpdate, tenant_id: str) -> NotificationTemplate:
        template = self.get_template(template_id, tenant_id)
        changes = data.model_dump(exclude_unset=True)
        self._validate_syntax(changes.get("subject"), changes.get("body"), changes.get("html_body"))
        if changes.get("html_body"):
            changes["html_body"] = sanitize_html(changes["html_body"])
        for key, value in changes.items():
            setattr(template, key, value)
        self.db.commit()
        self.db.refresh(template)
        return template

    def delete_template(self, template_id: str, tenant_id: str) -> dict:
        template = self.get_template(template_id, tenant_id)
        self.db.delete(template)
        self.db.commit()
        return {"message": "Template deleted"}

    def preview_template(self, template_id: str, variables: dict, tenant_id: str) -> dict:
        template = self.get_template(template_id, tenant_id)
        subject, body, html_body = self._render(template, variables)
        return {"subject": subject, "body": body, "html_body": html_body}

    @staticmethod
    def _validate_syntax(*parts: Optional[str]) -> None:
        try:
            for part in parts:
                renderer.find_variables(part)
        except TemplateRenderError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @staticmethod
    def _render(template: NotificationTemplate, variables: dict) -> tuple:
        try:
            renderer.check_required(template.variables or [], variables)
            subject = renderer.render_string(template.subject, variables)
            body = renderer.render_string(template.body, variables)
            html_body = renderer.render_string(template.html_body, variables)
        except TemplateRenderError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return subject, body, sanitize_html(html_body) if html_body else None

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(
        self,
        tenant_id: str,
        channel: str,
        body: Optional[str] = None,
        subject: Optional[str] = None,
        html_body: Optional[str] = None,
        recipient_type: str = "CUSTOMER",
        recipient_id: Optional[str] = None,
        recipient_address: Optional[str] = None,
        category: str = "SYSTEM",
        priority: str = "NORMAL",
        template_code: Optional[str] = None,
        variables: Optional[dict[str, Any]] = None,
        scheduled_at: Optional[datetime] = None,
        data: Optional[dict] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        commit: bool = True,
    ) -> Notification:
        """Queue a notification, rendered from a template or from raw content"""
        variables = variables or {}
        template_id = None
        if template_code:
            template = self.get_template_by_code(tenant_id, template_code)
            if not template:
                raise HTTPException(status_code=404, detail=f"Template '{template_code}' not found")
            template_id = template.id
            subject, body, html_body = self._render(template, variables)
        elif body is None:
            raise HTTPException(status_code=400, detail="Either template_code or body is required")
        elif html_body:
            html_body = sanitize_html(html_body)

        notification = Notification(
            tenant_id=tenant_id,
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            recipient_address=recipient_address
            or self.resolve_address(tenant_id, recipient_type, recipient_id, channel),
            channel=channel,
            category=category,
            priority=priority,
            template_id=template_id,
            subject=subject,
            body=body,
            html_body=html_body,
            data=data or {},
            status="PENDING",
            scheduled_at=scheduled_at,
            retry_count=0,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        self._apply_preferences(notification)
        self.db.add(notification)
        if commit:
            self.db.commit()
            self.db.refresh(notification)
        else:
            self.db.flush()
        return notification

    def _apply_preferences(self, notification: Notification) -> None:
        pref = self.get_preference(notification.tenant_id, notification.recipient_type, notification.recipient_id)
        if not pref:
            return

        if (pref.channels or {}).get(notification.channel.lower()) is False:
            notification.status = "CANCELLED"
            notification.cancelled_at = datetime.utcnow()
            notification.error_message = f"Recipient disabled the {notification.channel} channel"
            return
        if (pref.categories or {}).get(notification.category.lower()) is False:
            notification.status = "CANCELLED"
            notification.cancelled_at = datetime.utcnow()
            notification.error_message = f"Recipient disabled {notification.category} notifications"
            return

        if notification.priority != "URGENT":
            send_at = notification.scheduled_at or datetime.utcnow()
            deferred = quiet_hours_end(pref, send_at)
            if deferred:
                notification.scheduled_at = deferred
                logger.info(f"🔕 Notification deferred to {deferred} (quiet hours)")

    def send_request(self, data: SendNotificationRequest, tenant_id: str) -> Notification:
        return self.send(
            tenant_id=tenant_id,
            channel=data.channel,
            body=data.body,
            subject=data.subject,
            html_body=data.html_body,
            recipient_type=data.recipient_type,
            recipient_id=data.recipient_id,
            recipient_address=data.recipient_address,
            category=data.category,
            priority=data.priority,
            template_code=data.template_code,
            variables=data.variables,
            scheduled_at=data.scheduled_at,
        )

    async def send_immediate(self, data: SendNotificationRequest, tenant_id: str) -> Notification:
        notification = self.send_request(data, tenant_id)
        if notification.status == "PENDING" and notification.scheduled_at is None:
            await self.process_one(notification)
            self.db.refresh(notification)
        return notification

    def bulk_send(self, data: BulkSendRequest, tenant_id: str) -> dict:
        customer_ids = set(data.customer_ids)
        if data.segment_id:
            rows = (
                self.db.query(SegmentMember.customer_id)
                .filter(SegmentMember.tenant_id == tenant_id, SegmentMember.segment_id == data.segment_id)
                .all()
            )
            customer_ids.update(r.customer_id for r in rows)
        if not customer_ids:
            raise HTTPException(status_code=400, detail="No recipients selected")

        customers = (
            self.db.query(Customer)
            .filter(Customer.tenant_id == tenant_id, Customer.id.in_(customer_ids), Customer.deleted_at.is_(None))
            .all()
        )
        queued = 0
        skipped = 0
        for customer in customers:
            variables = {"customer_name": customer.name, **data.variables}
            notification = self.send(
                tenant_id=tenant_id,
                channel=data.channel,
                body=data.body,
                subject=data.subject,
                recipient_type="CUSTOMER",
                recipient_id=customer.id,
                category=data.category,
                template_code=data.template_code,
                variables=variables,
                commit=False,
            )
            if notification.status == "PENDING":
                queued += 1
            else:
                skipped += 1
        self.db.commit()
        logger.info(f"📤 Bulk send queued {queued} notification(s), skipped {skipped}")
        return {"queued": queued, "skipped": skipped, "total": len(customers)}

    # ------------------------------------------------------------------
    # Outbox processing
    # ------------------------------------------------------------------

    async def process_one(self, notification: Notification) -> bool:
        ok, provider_id, error = await dispatch(self.db, notification)
        now = datetime.utcnow()
        if ok:
            notification.status = "SENT"
            notification.sent_at = now
            notification.provider_message_id = provider_id
            notification.error_message = None
            notification.next_attempt_at = None
        else:
            notification.retry_count = (notification.retry_count or 0) + 1
            notification.error_message = error
            if notification.retry_count >= (notification.max_retries or 0):
                notification.status = "FAILED"
                notification.failed_at = now
                notification.next_attempt_at = None
                logger.error(f"❌ Notification {notification.id} failed permanently: {error}")
            else:
                notification.next_attempt_at = now + retry_delay(notification.retry_count)
                logger.warning(
                    f"⚠️ Notification {notification.id} attempt {notification.retry_count} failed, "
                    f"next attempt at {notification.next_attempt_at}"
                )
        self.db.commit()
        return ok

    def due_notifications(self, limit: int = 100, tenant_id: Optional[str] = None, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        query = self.db.query(Notification).filter(
            Notification.status == "PENDING",
            or_(Notification.scheduled_at.is_(None), Notification.scheduled_at <= now),
            or_(Notification.next_attempt_at.is_(None), Notification.next_attempt_at <= now),
        )
        if tenant_id:
            query = query.filter(Notification.tenant_id == tenant_id)
        return query.order_by(Notification.created_at).limit(limit).all()

    async def process_queue(self, limit: int = 100, tenant_id: Optional[str] = None) -> dict:
        due = self.due_notifications(limit, tenant_id)
        sent = 0
        for notification in due:
            if await self.process_one(notification):
                sent += 1
        if due:
            logger.info(f"📬 Processed {len(due)} notification(s): {sent} sent")
        return {"processed": len(due), "sent": sent, "failed": len(due) - sent}

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def _get(self, notification_id: str, tenant_id: str) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.tenant_id == tenant_id)
            .first()
        )
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")
        return notification

    def get(self, notification_id: str, tenant_id: str) -> Notification:
        return self._get(notification_id, tenant_id)

    def list_query(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        channel: Optional[str] = None,
        category: Optional[str] = None,
        recipient_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ):
        query = self.db.query(Notification).filter(Notification.tenant_id == tenant_id)
        if status:
            query = query.filter(Notification.status == status.upper())
        if channel:
            query = query.filter(Notification.channel == channel.upper())
        if category:
            query = query.filter(Notification.category == category.upper())
        if recipient_id:
            query = query.filter(Notification.recipient_id == recipient_id)
        if reference_id:
            query = query.filter(Notification.reference_id == reference_id)
        return query.order_by(Notification.created_at.desc())

    def cancel(self, notification_id: str, tenant_id: str) -> Notification:
        notification = self._get(notification_id, tenant_id)
        if notification.status != "PENDING":
            raise HTTPException(
                status_code=400, detail=f"Only PENDING notifications can be cancelled (status {notification.status})"
            )
        notification.status = "CANCELLED"
        notification.cancelled_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def resend(self, notification_id: str, tenant_id: str) -> Notification:
        notification = self._get(notification_id, tenant_id)
        if notification.status != "FAILED":
            raise HTTPException(
                status_code=400, detail=f"Only FAILED notifications can be resent (status {notification.status})"
            )
        notification.status = "PENDING"
        notification.retry_count = 0
        notification.failed_at = None
        notification.next_attempt_at = None
        notification.error_message = None
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_read(self, notification_id: str, tenant_id: str) -> Notification:
        notification = self._get(notification_id, tenant_id)
        if notification.channel != "IN_APP":
            raise HTTPException(status_code=400, detail="Only in-app notifications can be marked as read")
        notification.status = "READ"
        notification.read_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def stats(self, tenant_id: str) -> dict:
        by_status = dict(
            self.db.query(Notification.status, func.count(Notification.id))
            .filter(Notification.tenant_id == tenant_id)
            .group_by(Notification.status)
            .all()
        )
        by_channel = dict(
            self.db.query(Notification.channel, func.count(Notification.id))
            .filter(Notification.tenant_id == tenant_id)
            .group_by(Notification.channel)
            .all()
        )
        return {"total": sum(by_status.values()), "by_status": by_status, "by_channel": by_channel}

    # ------------------------------------------------------------------
    # Device tokens
    # ------------------------------------------------------------------

    def register_device(
        self, tenant_id: str, recipient_type: str, recipient_id: str, data: DeviceTokenRequest
    ) -> DeviceToken:
        device = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.tenant_id == tenant_id, DeviceToken.token == data.token)
            .first()
        )
        if device:
            device.recipient_type = recipient_type
            device.recipient_id = recipient_id
            device.platform = data.platform
            device.is_active = True
            device.last_used_at = datetime.utcnow()
        else:
            device = DeviceToken(
                tenant_id=tenant_id,
                recipient_type=recipient_type,
                recipient_id=recipient_id,
                token=data.token,
                platform=data.platform,
                last_used_at=datetime.utcnow(),
            )
            self.db.add(device)
        self.db.commit()
        self.db.refresh(device)
        return device

    def unregister_device(self, tenant_id: str, token: str) -> dict:
        device = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.tenant_id == tenant_id, DeviceToken.token == token)
            .first()
        )
        if not device:
            raise HTTPException(status_code=404, detail="Device token not found")
        device.is_active = False
        self.db.commit()
        return {"message": "Device unregistered"}
