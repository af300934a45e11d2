"""Tests for template rendering, recipient preferences and the notification outbox"""

from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.domain.notifications.schemas import PreferenceUpdate, TemplateCreate
from app.domain.notifications.service import NotificationService, quiet_hours_end, retry_delay
from app.models_notification import NotificationPreference
from app.services.template_renderer import TemplateRenderError, format_date, renderer


@pytest.mark.unit
class TestTemplateRenderer:
    def test_filters(self):
        rendered = renderer.render_string(
            "Olá {{ name|capitalize }}, total {{ amount|currency }} em {{ day|date }}",
            {"name": "ana", "amount": 1234.5, "day": "2026-03-05"},
        )
        assert rendered == "Olá Ana, total R$ 1.234,50 em 05/03/2026"

    def test_missing_variable(self):
        with pytest.raises(TemplateRenderError):
            renderer.render_string("Olá {{ name }}", {})

    def test_find_and_check_variables(self):
        assert renderer.find_variables("{{ name }} às {{ when|datetime }}") == {"name", "when"}
        with pytest.raises(TemplateRenderError) as exc:
            renderer.check_required(["name", "when"], {"name": "Ana"})
        assert "when" in str(exc.value)

    def test_invalid_syntax(self):
        with pytest.raises(TemplateRenderError):
            renderer.find_variables("{{ name ")

    def test_format_date_passthrough(self):
        assert format_date(None) == "None"


@pytest.mark.unit
class TestScheduling:
    def test_retry_backoff(self):
        assert retry_delay(1) == timedelta(seconds=60)
        assert retry_delay(3) == timedelta(seconds=240)

    def test_quiet_hours_across_midnight(self):
        pref = NotificationPreference(quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="08:00")
        day = datetime(2026, 3, 5)

        assert quiet_hours_end(pref, day.replace(hour=23, minute=30)) == datetime(2026, 3, 6, 8, 0)
        assert quiet_hours_end(pref, day.replace(hour=7)) == datetime(2026, 3, 5, 8, 0)
        assert quiet_hours_end(pref, day.replace(hour=12)) is None

    def test_quiet_hours_disabled(self):
        pref = NotificationPreference(quiet_hours_enabled=False, quiet_hours_start="00:00", quiet_hours_end="23:59")
        assert quiet_hours_end(pref, datetime(2026, 3, 5, 12)) is None


@pytest.mark.unit
class TestNotificationService:
    @pytest.fixture
    def service(self, db, tenant):
        service = NotificationService(db)
        service.create_template(
            TemplateCreate(
                code="lembrete",
                name="Lembrete",
                channel="sms",
                body="Olá {{ name }}, até {{ when }}",
                variables=["name", "when"],
            ),
            tenant.id,
        )
        return service

    def test_send_from_template(self, service, tenant, make_customer):
        customer = make_customer()
        notification = service.send(
            tenant.id,
            "SMS",
            template_code="lembrete",
            variables={"name": "Maria", "when": "amanhã"},
            recipient_id=customer.id,
        )
        assert notification.status == "PENDING"
        assert notification.body == "Olá Maria, até amanhã"
        assert notification.recipient_address == "+5511912345678"

    def test_missing_template_variable(self, service, tenant):
        with pytest.raises(HTTPException) as exc:
            service.send(tenant.id, "SMS", template_code="lembrete", variables={"name": "Maria"})
        assert exc.value.status_code == 400

    def test_duplicate_template_code(self, service, tenant):
        with pytest.raises(HTTPException) as exc:
            service.create_template(TemplateCreate(code="lembrete", name="Outro", channel="SMS", body="x"), tenant.id)
        assert exc.value.status_code == 409

    def test_html_is_sanitized(self, service, tenant):
        notification = service.send(
            tenant.id, "EMAIL", body="Oi", html_body="<p>Oi</p><script>alert(1)</script>", recipient_address="a@b.com"
        )
        assert "<script>" not in notification.html_body

    def test_disabled_channel_cancels(self, service, tenant, make_customer):
        customer = make_customer()
        prefs = service.update_preferences(tenant.id, "CUSTOMER", customer.id, PreferenceUpdate(channels={"SMS": False}))
        assert prefs["channels"]["sms"] is False
        assert prefs["channels"]["email"] is True

        notification = service.send(tenant.id, "SMS", body="Promo", recipient_id=customer.id)
        assert notification.status == "CANCELLED"

    def test_default_preferences(self, service, tenant):
        prefs = service.get_preferences(tenant.id, "CUSTOMER", "someone")
        assert prefs["quiet_hours_enabled"] is False
        assert all(prefs["categories"].values())

    async def test_process_queue(self, service, tenant, make_customer):
        customer = make_customer()
        in_app = service.send(tenant.id, "IN_APP", body="Bem-vinda", recipient_id=customer.id)
        no_address = service.send(tenant.id, "EMAIL", subject="Oi", body="Oi", recipient_id=customer.id)

        result = await service.process_queue()

        assert result == {"processed": 2, "sent": 1, "failed": 1}
        assert in_app.status == "SENT"
        assert no_address.status == "PENDING"
        assert no_address.retry_count == 1
        assert no_address.error_message == "Recipient has no address for this channel"
        assert service.due_notifications() == []
