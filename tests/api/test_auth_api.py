"""
Tests for the authentication endpoints.

Registration, e-mail verification, login, token refresh and logout run
against the real dependencies; only the database session is overridden.
"""

import pytest

from app.models import RefreshToken, Tenant, User

AUTH = "/api/v1/auth"

REGISTRATION = {
    "business_name": "Espaço Lumière",
    "name": "Camila Rocha",
    "email": "Camila@Lumiere.com",
    "password": "s3nha-forte",
    "phone": "(11) 97777-6666",
}


def _register_and_verify(public_client, db) -> dict:
    response = public_client.post(f"{AUTH}/register", json=REGISTRATION)
    assert response.status_code == 201
    user = db.query(User).filter(User.email == "camila@lumiere.com").first()
    verified = public_client.post(
        f"{AUTH}/verify-email", json={"email": "camila@lumiere.com", "code": user.verification_code}
    )
    assert verified.status_code == 200
    return verified.json()


@pytest.mark.api
class TestRegistration:
    def test_register_creates_trial_tenant_and_pending_owner(self, public_client, db):
        response = public_client.post(f"{AUTH}/register", json=REGISTRATION)

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "camila@lumiere.com"

        tenant = db.query(Tenant).filter(Tenant.id == body["tenant_id"]).first()
        owner = db.query(User).filter(User.id == body["user_id"]).first()
        assert tenant.slug == "espaco-lumiere"
        assert tenant.status == "TRIAL"
        assert owner.role == "OWNER"
        assert owner.status == "PENDING"
        assert owner.phone == "+5511977776666"
        assert len(owner.verification_code) == 6

    def test_duplicate_email(self, public_client):
        public_client.post(f"{AUTH}/register", json=REGISTRATION)
        response = public_client.post(f"{AUTH}/register", json=REGISTRATION)
        assert response.status_code == 409

    def test_short_password(self, public_client):
        response = public_client.post(f"{AUTH}/register", json={**REGISTRATION, "password": "curta"})
        assert response.status_code == 422

    def test_wrong_code(self, public_client):
        public_client.post(f"{AUTH}/register", json=REGISTRATION)
        response = public_client.post(f"{AUTH}/verify-email", json={"email": "camila@lumiere.com", "code": "000000"})
        assert response.status_code == 400

    def test_login_before_verification(self, public_client):
        public_client.post(f"{AUTH}/register", json=REGISTRATION)
        response = public_client.post(
            f"{AUTH}/login", json={"email": "camila@lumiere.com", "password": REGISTRATION["password"]}
        )
        assert response.status_code == 401
        assert "not verified" in response.json()["detail"]


@pytest.mark.api
class TestSession:
    def test_verification_returns_tokens(self, public_client, db):
        tokens = _register_and_verify(public_client, db)
        assert tokens["token_type"] == "bearer"
        assert tokens["user"]["status"] == "ACTIVE"

        me = public_client.get(f"{AUTH}/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "camila@lumiere.com"

    def test_login_and_bad_password(self, public_client, db):
        _register_and_verify(public_client, db)

        bad = public_client.post(f"{AUTH}/login", json={"email": "camila@lumiere.com", "password": "errada123"})
        assert bad.status_code == 401

        good = public_client.post(
            f"{AUTH}/login", json={"email": "camila@lumiere.com", "password": REGISTRATION["password"]}
        )
        assert good.status_code == 200
        assert good.json()["access_token"]

    def test_me_requires_token(self, public_client):
        assert public_client.get(f"{AUTH}/me").status_code == 401
        bogus = public_client.get(f"{AUTH}/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert bogus.status_code == 401

    def test_refresh_rotates_and_detects_reuse(self, public_client, db):
        tokens = _register_and_verify(public_client, db)

        rotated = public_client.post(f"{AUTH}/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert rotated.status_code == 200
        new_refresh = rotated.json()["refresh_token"]
        assert new_refresh != tokens["refresh_token"]

        replay = public_client.post(f"{AUTH}/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401

        # Reuse revokes every token of the user
        after_reuse = public_client.post(f"{AUTH}/refresh", json={"refresh_token": new_refresh})
        assert after_reuse.status_code == 401

    def test_logout_revokes_refresh_token(self, public_client, db):
        tokens = _register_and_verify(public_client, db)
        response = public_client.post(f"{AUTH}/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert db.query(RefreshToken).filter(RefreshToken.revoked_at.is_(None)).count() == 0
