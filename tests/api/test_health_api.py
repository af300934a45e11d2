"""Smoke tests for the service endpoints"""

import pytest


@pytest.mark.api
class TestHealth:
    def test_root(self, public_client):
        response = public_client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Glamo API is running"}

    def test_health(self, public_client):
        response = public_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "ok"
        assert response.json()["redis"] == "disabled"

    def test_request_id_is_echoed(self, public_client):
        response = public_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_security_headers(self, public_client):
        response = public_client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route(self, public_client):
        assert public_client.get("/api/v1/does-not-exist").status_code == 404
