"""Tests for the unauthenticated public booking endpoints."""

from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.domain.booking.schemas import PublicCancelRequest
from app.domain.booking.service import BookingService
from app.models_customer import Customer

PUBLIC = "/api/v1/public/studio-bella"


@pytest.fixture
def salon(db, tenant, make_service, make_professional):
    service = make_service(name="Escova", duration=60, price=80.0)
    hidden = make_service(name="Coloracao", duration=120, price=300.0, is_online_bookable=False)
    professional = make_professional(services=[service, hidden])
    return {"service": service, "hidden": hidden, "professional": professional}


def _booking(salon, scheduled_at, **kwargs) -> dict:
    payload = {
        "name": "Fernanda Lima",
        "phone": "(11) 94444-3333",
        "professional_id": salon["professional"].id,
        "service_ids": [salon["service"].id],
        "scheduled_at": scheduled_at.isoformat(),
    }
    payload.update(kwargs)
    return payload


@pytest.mark.api
class TestCatalog:
    def test_profile(self, public_client, salon):
        response = public_client.get(PUBLIC)
        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Studio Bella"
        assert body["booking"]["slot_interval"] == 30
        assert body["booking"]["allow_cancellation_hours"] == 2

    def test_unknown_salon(self, public_client, salon):
        assert public_client.get("/api/v1/public/nowhere").status_code == 404

    def test_suspended_salon_is_hidden(self, public_client, db, tenant, salon):
        tenant.status = "SUSPENDED"
        db.commit()
        assert public_client.get(PUBLIC).status_code == 404

    def test_only_online_services_are_listed(self, public_client, salon):
        names = [s["name"] for s in public_client.get(f"{PUBLIC}/services").json()]
        assert names == ["Escova"]

    def test_professionals_for_service(self, public_client, salon, make_professional):
        make_professional(name="Outra Profissional")
        response = public_client.get(f"{PUBLIC}/professionals", params={"service_id": salon["service"].id})
        assert [p["name"] for p in response.json()] == ["Julia Stylist"]

    def test_availability(self, public_client, salon, next_weekday):
        day = next_weekday(hour=10)
        params = {
            "date": day.date().isoformat(),
            "service_ids": [salon["service"].id],
            "professional_id": salon["professional"].id,
        }
        before = public_client.get(f"{PUBLIC}/availability", params=params).json()[0]
        assert before["is_available"] is True
        assert day.isoformat() in [slot["start"] for slot in before["slots"]]

        public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, day))

        after = public_client.get(f"{PUBLIC}/availability", params=params).json()[0]
        assert day.isoformat() not in [slot["start"] for slot in after["slots"]]


@pytest.mark.api
class TestOnlineBooking:
    def test_book_creates_customer(self, public_client, db, salon, next_weekday):
        response = public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, next_weekday(hour=11)))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["message"] == "Appointment requested"
        assert body["services"] == ["Escova"]
        assert body["total_price"] == 80.0

        customer = db.query(Customer).filter(Customer.phone == "+5511944443333").one()
        assert customer.source == "ONLINE"

    def test_returning_customer_is_reused(self, public_client, db, salon, make_customer, next_weekday):
        make_customer(name="Fernanda", phone="+5511944443333")
        public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, next_weekday(hour=11)))
        assert db.query(Customer).count() == 1

    def test_contact_is_required(self, public_client, salon, next_weekday):
        payload = _booking(salon, next_weekday(hour=11))
        payload.pop("phone")
        assert public_client.post(f"{PUBLIC}/appointments", json=payload).status_code == 422

    def test_hidden_service_cannot_be_booked(self, public_client, salon, next_weekday):
        payload = _booking(salon, next_weekday(hour=11), service_ids=[salon["hidden"].id])
        assert public_client.post(f"{PUBLIC}/appointments", json=payload).status_code == 400

    def test_minimum_notice(self, public_client, salon):
        payload = _booking(salon, datetime.utcnow() + timedelta(minutes=30))
        response = public_client.post(f"{PUBLIC}/appointments", json=payload)
        assert response.status_code == 400
        assert "notice" in response.json()["detail"]

    def test_conflicts_are_never_overridden(self, public_client, salon, next_weekday):
        response = public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, next_weekday(hour=19)))
        assert response.status_code == 400


@pytest.mark.api
class TestOnlineCancellation:
    def test_cancel_with_matching_phone(self, public_client, salon, next_weekday):
        booked = public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, next_weekday(hour=11))).json()
        url = f"{PUBLIC}/appointments/{booked['appointment_id']}/cancel"

        assert public_client.post(url, json={"phone": "(11) 90000-0000"}).status_code == 404

        response = public_client.post(url, json={"phone": "(11) 94444-3333", "reason": "Imprevisto"})
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_cancellation_window(self, public_client, db, salon, next_weekday):
        start = next_weekday(hour=11)
        booked = public_client.post(f"{PUBLIC}/appointments", json=_booking(salon, start)).json()

        with pytest.raises(HTTPException) as exc:
            BookingService(db).cancel(
                "studio-bella",
                booked["appointment_id"],
                PublicCancelRequest(phone="(11) 94444-3333"),
                now=start - timedelta(hours=1),
            )
        assert exc.value.status_code == 400
