"""Tests for the appointment endpoints (authenticated as the salon owner)."""

from datetime import timedelta

import pytest

from app.models_appointment import Appointment
from app.models_commission import CommissionEntry, ProfessionalCommissionConfig

APPOINTMENTS = "/api/v1/appointments"


@pytest.fixture
def booking(db, tenant, make_customer, make_service, make_professional):
    service = make_service(duration=45, price=120.0)
    professional = make_professional(services=[service])
    customer = make_customer()
    return {"customer": customer, "service": service, "professional": professional}


def _payload(booking, scheduled_at, **kwargs) -> dict:
    payload = {
        "customer_id": booking["customer"].id,
        "professional_id": booking["professional"].id,
        "scheduled_at": scheduled_at.isoformat(),
        "services": [{"service_id": booking["service"].id}],
    }
    payload.update(kwargs)
    return payload


@pytest.mark.api
class TestCreateAppointment:
    def test_create(self, client, booking, next_weekday):
        start = next_weekday(hour=10)
        response = client.post(APPOINTMENTS, json=_payload(booking, start))

        assert response.status_code == 201
        body = response.json()
        assert body["conflicts"] == []
        appointment = body["appointments"][0]
        assert appointment["status"] == "PENDING"
        assert appointment["total_duration"] == 45
        assert appointment["final_price"] == 120.0

    def test_discount_reduces_final_price(self, client, booking, next_weekday):
        response = client.post(APPOINTMENTS, json=_payload(booking, next_weekday(hour=11), discount=20))
        assert response.json()["appointments"][0]["final_price"] == 100.0

    def test_double_booking_is_refused(self, client, booking, make_customer, next_weekday):
        start = next_weekday(hour=14)
        assert client.post(APPOINTMENTS, json=_payload(booking, start)).status_code == 201

        other = make_customer(name="Paula", phone="+5511955556666")
        overlapping = {**_payload(booking, start + timedelta(minutes=30)), "customer_id": other.id}
        response = client.post(APPOINTMENTS, json=overlapping)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Scheduling conflict"
        assert detail["conflicts"][0]["type"] == "PROFESSIONAL_BUSY"

    def test_staff_may_override_working_hours(self, client, booking, next_weekday):
        response = client.post(APPOINTMENTS, json=_payload(booking, next_weekday(hour=20)))
        assert response.status_code == 201
        assert [c["type"] for c in response.json()["conflicts"]] == ["OUTSIDE_WORKING_HOURS"]

    def test_weekly_recurrence(self, client, db, booking, next_weekday):
        payload = _payload(booking, next_weekday(hour=9), recurrence={"type": "WEEKLY", "count": 3})
        response = client.post(APPOINTMENTS, json=payload)

        assert response.status_code == 201
        appointments = response.json()["appointments"]
        assert len(appointments) == 3
        group_ids = {a.recurrence_group_id for a in db.query(Appointment).all()}
        assert len(group_ids) == 1

    def test_unknown_customer(self, client, booking, next_weekday):
        payload = {**_payload(booking, next_weekday()), "customer_id": "missing"}
        assert client.post(APPOINTMENTS, json=payload).status_code == 404


@pytest.mark.api
class TestLifecycle:
    def _create(self, client, booking, start) -> str:
        return client.post(APPOINTMENTS, json=_payload(booking, start)).json()["appointments"][0]["id"]

    def test_full_lifecycle_creates_commission(self, client, db, tenant, booking, next_weekday):
        db.add(
            ProfessionalCommissionConfig(
                tenant_id=tenant.id, professional_id=booking["professional"].id, default_percentage=30
            )
        )
        db.commit()
        appointment_id = self._create(client, booking, next_weekday(hour=10))

        for action, status in [("confirm", "CONFIRMED"), ("check-in", "WAITING"), ("start", "IN_PROGRESS")]:
            response = client.post(f"{APPOINTMENTS}/{appointment_id}/{action}")
            assert response.status_code == 200
            assert response.json()["status"] == status

        completed = client.post(f"{APPOINTMENTS}/{appointment_id}/complete")
        assert completed.status_code == 200
        assert completed.json()["status"] == "COMPLETED"

        entry = db.query(CommissionEntry).filter(CommissionEntry.source_id == appointment_id).one()
        assert entry.calculated_amount == 36.0
        assert entry.status == "PENDING"

    def test_invalid_transition(self, client, booking, next_weekday):
        appointment_id = self._create(client, booking, next_weekday(hour=10))
        response = client.post(f"{APPOINTMENTS}/{appointment_id}/complete")
        assert response.status_code == 400
        assert "Cannot change appointment status" in response.json()["detail"]

    def test_cancel_then_cannot_confirm(self, client, booking, next_weekday):
        appointment_id = self._create(client, booking, next_weekday(hour=10))
        cancelled = client.post(
            f"{APPOINTMENTS}/{appointment_id}/cancel", json={"reason": "CLIENT_REQUEST", "description": "Viagem"}
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        assert client.post(f"{APPOINTMENTS}/{appointment_id}/confirm").status_code == 400

    def test_cancel_in_progress(self, client, booking, next_weekday):
        appointment_id = self._create(client, booking, next_weekday(hour=10))
        for action in ("confirm", "check-in", "start"):
            client.post(f"{APPOINTMENTS}/{appointment_id}/{action}")

        response = client.post(f"{APPOINTMENTS}/{appointment_id}/cancel", json={"reason": "OTHER"})
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

        again = client.post(f"{APPOINTMENTS}/{appointment_id}/cancel", json={})
        assert again.status_code == 400

    def test_late_cancel_clamps_notice_to_zero(self, client, db, booking, next_weekday):
        appointment_id = self._create(client, booking, next_weekday(hour=10))
        appointment = db.get(Appointment, appointment_id)
        appointment.scheduled_at = appointment.scheduled_at - timedelta(days=30)
        db.commit()

        assert client.post(f"{APPOINTMENTS}/{appointment_id}/cancel", json={}).status_code == 200
        db.refresh(appointment)
        assert appointment.hours_before_scheduled == 0.0

    def test_cancelled_slot_can_be_booked_again(self, client, booking, next_weekday):
        start = next_weekday(hour=15)
        appointment_id = self._create(client, booking, start)
        client.post(f"{APPOINTMENTS}/{appointment_id}/cancel", json={})
        assert client.post(APPOINTMENTS, json=_payload(booking, start)).status_code == 201

    def test_get_unknown(self, client):
        assert client.get(f"{APPOINTMENTS}/does-not-exist").status_code == 404

    def test_list_filters_by_status(self, client, booking, next_weekday):
        first = self._create(client, booking, next_weekday(hour=10))
        self._create(client, booking, next_weekday(hour=12))
        client.post(f"{APPOINTMENTS}/{first}/confirm")

        response = client.get(APPOINTMENTS, params={"status": "CONFIRMED"})
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["data"][0]["id"] == first
