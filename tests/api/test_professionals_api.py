"""Tests for the professional listing endpoint."""

from datetime import datetime

import pytest

from app.domain.professionals.repository import ProfessionalRepository

PROFESSIONALS = "/api/v1/professionals"


@pytest.fixture
def team(db, make_professional):
    julia = make_professional(name="Julia Stylist")
    ana = make_professional(name="Ana Manicure", status="ON_VACATION")
    gone = make_professional(name="Bruna Antiga")
    gone.deleted_at = datetime.utcnow()
    db.commit()
    return {"julia": julia, "ana": ana, "gone": gone}


@pytest.mark.api
class TestListProfessionals:
    def test_list_is_ordered_and_skips_deleted(self, client, team):
        response = client.get(PROFESSIONALS)
        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Ana Manicure", "Julia Stylist"]

    def test_status_filter(self, client, team):
        response = client.get(PROFESSIONALS, params={"status": "ON_VACATION"})
        assert [p["id"] for p in response.json()] == [team["ana"].id]

    def test_include_deleted(self, client, team):
        response = client.get(PROFESSIONALS, params={"include_deleted": True})
        assert len(response.json()) == 3

    def test_repository_loads_working_hours(self, db, tenant, team):
        professionals = ProfessionalRepository.list_professionals(db, tenant.id, status="ACTIVE")
        assert [p.name for p in professionals] == ["Julia Stylist"]
        assert len(professionals[0].working_hours) == 7
