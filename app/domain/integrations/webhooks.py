"""
Outgoing webhooks.

trigger_event() only writes PENDING delivery rows so the request that caused
the event never waits on a subscriber. Deliveries are posted by the worker
cron (process_due_deliveries) or inline on manual retry.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models_integration import Webhook, WebhookDelivery
from ...webhook_security import create_webhook_signature

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS = (
    "appointment.created",
    "appointment.updated",
    "appointment.cancelled",
    "appointment.completed",
    "customer.created",
    "payment.completed",
    "invoice.paid",
)

RESPONSE_BODY_LIMIT = 1000
DELIVERY_TIMEOUT = 10.0


def _to_json_safe(data: Any) -> Any:
    return json.loads(json.dumps(data, default=str))


def retry_delay(webhook: Webhook, attempts: int) -> timedelta:
    """retry_interval x 2^attempts seconds, where `attempts` counts the failures before this one"""
    """Wait before the next retry, retry_interval x 2^attempts seconds for `attempts` already failed before this one"""
    return timedelta(seconds=(webhook.retry_interval or 60) * (2**attempts))


def trigger_event(db: Session, tenant_id: str, event: str, data: dict) -> list[WebhookDelivery]:
    """Queue a delivery for every active webhook subscribed to `event`"""
    if event not in WEBHOOK_EVENTS:
        raise ValueError(f"Unknown webhook event: {event}")

    webhooks = (
        db.query(Webhook)
        .filter(Webhook.tenant_id == tenant_id, Webhook.is_active.is_(True))
        .all()
    )
    subscribed = [w for w in webhooks if event in (w.events or []) or "*" in (w.events or [])]
    if not subscribed:
        return []

    now = datetime.utcnow()
    payload = {"event": event, "timestamp": now.isoformat(), "data": _to_json_safe(data)}
    deliveries = []
    for webhook in subscribed:
        delivery = WebhookDelivery(
            tenant_id=tenant_id,
            webhook_id=webhook.id,
            event=event,
            payload=payload,
            status="PENDING",
            attempts=0,
            next_retry_at=now,
        )
        webhook.last_triggered_at = now
        db.add(delivery)
        deliveries.append(delivery)

    db.commit()
    logger.info(f"📤 Queued {len(deliveries)} webhook deliveries for {event} (tenant {tenant_id})")
    return deliveries


def _record_result(
    webhook: Webhook,
    delivery: WebhookDelivery,
    ok: bool,
    http_status: Optional[int],
    response_body: Optional[str],
    error: Optional[str],
    now: datetime,
) -> None:
    previous_attempts = delivery.attempts or 0
    delivery.attempts = previous_attempts + 1
    delivery.http_status = http_status
    delivery.response_body = response_body[:RESPONSE_BODY_LIMIT] if response_body else None
    delivery.error_message = error

    if ok:
        delivery.status = "SENT"
        delivery.delivered_at = now
        delivery.next_retry_at = None
        webhook.success_count = (webhook.success_count or 0) + 1
        return

    if previous_attempts >= (webhook.max_retries or 0):
        delivery.status = "FAILED"
        delivery.next_retry_at = None
        webhook.failure_count = (webhook.failure_count or 0) + 1
        logger.error(f"❌ Webhook delivery {delivery.id} failed after {delivery.attempts} attempts")
    else:
        delivery.status = "RETRYING"
        delivery.next_retry_at = now + retry_delay(webhook, previous_attempts)
        logger.warning(
            f"⚠️ Webhook delivery {delivery.id} attempt {delivery.attempts} failed, "
            f"retrying at {delivery.next_retry_at}"
        )


async def deliver(db: Session, delivery: WebhookDelivery, client: Optional[httpx.AsyncClient] = None) -> bool:
    """POST one delivery with its HMAC signature and record the outcome"""
    webhook = delivery.webhook
    body = json.dumps(delivery.payload, default=str).encode("utf-8")
    headers = {
        **(webhook.headers or {}),
        "Content-Type": "application/json",
        "X-Webhook-Event": delivery.event,
        "X-Webhook-Delivery": delivery.id,
        "X-Webhook-Signature": create_webhook_signature(webhook.secret, body),
    }

    ok = False
    http_status = None
    response_body = None
    error = None
    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                response = await own_client.post(webhook.url, content=body, headers=headers, timeout=DELIVERY_TIMEOUT)
        else:
            response = await client.post(webhook.url, content=body, headers=headers, timeout=DELIVERY_TIMEOUT)
        http_status = response.status_code
        response_body = response.text
        ok = 200 <= response.status_code < 300
        if not ok:
            error = f"HTTP {response.status_code}"
    except httpx.HTTPError as e:
        error = str(e) or e.__class__.__name__

    _record_result(webhook, delivery, ok, http_status, response_body, error, datetime.utcnow())
    db.commit()
    if ok:
        logger.info(f"✅ Webhook {delivery.event} delivered to {webhook.url}")
    return ok


def due_deliveries(db: Session, limit: int = 100, now: Optional[datetime] = None) -> list[WebhookDelivery]:
    now = now or datetime.utcnow()
    return (
        db.query(WebhookDelivery)
        .options(joinedload(WebhookDelivery.webhook))
        .filter(
            WebhookDelivery.status.in_(("PENDING", "RETRYING")),
            or_(WebhookDelivery.next_retry_at.is_(None), WebhookDelivery.next_retry_at <= now),
        )
        .order_by(WebhookDelivery.created_at)
        .limit(limit)
        .all()
    )


async def process_due_deliveries(db: Session, limit: int = 100) -> dict:
    """Deliver every due PENDING/RETRYING delivery. Returns counts"""
    deliveries = due_deliveries(db, limit)
    sent = 0
    failed = 0
    async with httpx.AsyncClient() as client:
        for delivery in deliveries:
            if not delivery.webhook or not delivery.webhook.is_active:
                delivery.status = "FAILED"
                delivery.error_message = "Webhook disabled"
                db.commit()
                failed += 1
                continue
            if await deliver(db, delivery, client):
                sent += 1
            else:
                failed += 1
    return {"processed": len(deliveries), "sent": sent, "failed": failed}
