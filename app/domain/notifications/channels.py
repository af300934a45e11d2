"""Channel senders used by the notification outbox"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models_notification import Notification
from ...services import push_service, twilio_service, whatsapp_service
from ...services.email_service import send_email
from ..integrations.service import get_provider_credentials

logger = logging.getLogger(__name__)

SendResult = tuple[bool, Optional[str], Optional[str]]


async def _send_email(db: Session, notification: Notification) -> SendResult:
    html = notification.html_body or f"<p>{notification.body}</p>"
    return send_email(notification.recipient_address, notification.subject or "", html, notification.body)


async def _send_sms(db: Session, notification: Notification) -> SendResult:
    credentials = get_provider_credentials(db, notification.tenant_id, "TWILIO")
    return await twilio_service.send_sms(notification.recipient_address, notification.body, credentials)


async def _send_whatsapp(db: Session, notification: Notification) -> SendResult:
    credentials = get_provider_credentials(db, notification.tenant_id, "WHATSAPP")
    return await whatsapp_service.send_text_message(notification.recipient_address, notification.body, credentials)


async def _send_push(db: Session, notification: Notification) -> SendResult:
    return await push_service.send_push(
        notification.recipient_address,
        notification.subject or "",
        notification.body,
        notification.data,
    )


async def _send_in_app(db: Session, notification: Notification) -> SendResult:
    # In-app notifications are read from the API, nothing to deliver
    return True, None, None


SENDERS = {
    "EMAIL": _send_email,
    "SMS": _send_sms,
    "WHATSAPP": _send_whatsapp,
    "PUSH": _send_push,
    "IN_APP": _send_in_app,
}


async def dispatch(db: Session, notification: Notification) -> SendResult:
    sender = SENDERS.get(notification.channel)
    if sender is None:
        return False, None, f"Unsupported channel: {notification.channel}"
    if notification.channel != "IN_APP" and not notification.recipient_address:
        return False, None, "Recipient has no address for this channel"
    return await sender(db, notification)
