"""Tests for outgoing webhook queueing, signing and retries"""

import httpx
import pytest

from app.domain.integrations.webhooks import deliver, due_deliveries, retry_delay, trigger_event
from app.models_integration import Webhook, WebhookDelivery
from app.webhook_security import verify_webhook_signature


@pytest.fixture
def webhook(db, tenant):
    hook = Webhook(
        tenant_id=tenant.id,
        name="ERP",
        url="https://erp.example.com/hook",
        events=["appointment.created"],
        secret="s3cret",
        max_retries=2,
        retry_interval=30,
    )
    db.add(hook)
    db.commit()
    return hook


def _client(status_code: int, seen: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, text="ok" if status_code < 300 else "boom")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestTriggerEvent:
    def test_only_subscribed_webhooks(self, db, tenant, webhook):
        db.add(Webhook(tenant_id=tenant.id, name="All", url="https://a.example.com", events=["*"], secret="x"))
        db.add(Webhook(tenant_id=tenant.id, name="Off", url="https://b.example.com", events=["*"], secret="x",
                       is_active=False))
        db.commit()

        deliveries = trigger_event(db, tenant.id, "appointment.created", {"id": "a1"})
        assert len(deliveries) == 2
        assert len(trigger_event(db, tenant.id, "invoice.paid", {"id": "i1"})) == 1
        assert db.query(WebhookDelivery).count() == 3

    def test_unknown_event(self, db, tenant):
        with pytest.raises(ValueError):
            trigger_event(db, tenant.id, "appointment.teleported", {})

    def test_backoff_doubles(self, webhook):
        assert retry_delay(webhook, 0).total_seconds() == 30
        assert retry_delay(webhook, 1).total_seconds() == 60
        assert retry_delay(webhook, 2).total_seconds() == 120


@pytest.mark.unit
class TestDeliver:
    async def test_signed_delivery(self, db, tenant, webhook):
        delivery = trigger_event(db, tenant.id, "appointment.created", {"id": "a1"})[0]
        seen = []
        async with _client(200, seen) as client:
            assert await deliver(db, delivery, client)

        request = seen[0]
        assert request.headers["X-Webhook-Event"] == "appointment.created"
        assert verify_webhook_signature("s3cret", request.content, request.headers["X-Webhook-Signature"])
        assert delivery.status == "SENT"
        assert webhook.success_count == 1
        assert due_deliveries(db) == []

    async def test_retry_then_fail(self, db, tenant, webhook):
        delivery = trigger_event(db, tenant.id, "appointment.created", {"id": "a1"})[0]
        seen = []
        async with _client(500, seen) as client:
            assert not await deliver(db, delivery, client)
            assert delivery.status == "RETRYING"
            assert delivery.error_message == "HTTP 500"
            first_wait = delivery.next_retry_at - delivery.created_at

            assert not await deliver(db, delivery, client)
            assert delivery.status == "RETRYING"
            assert webhook.failure_count == 0

            assert not await deliver(db, delivery, client)

        assert 25 <= first_wait.total_seconds() <= 35
        assert len(seen) == 3
        assert delivery.status == "FAILED"
        assert delivery.attempts == 3
        assert delivery.next_retry_at is None
        assert webhook.failure_count == 1

    async def test_network_error_counts_as_failure(self, db, tenant, webhook):
        delivery = trigger_event(db, tenant.id, "appointment.created", {"id": "a1"})[0]

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert not await deliver(db, delivery, client)
        assert delivery.status == "RETRYING"
        assert "refused" in delivery.error_message
