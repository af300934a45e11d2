"""Tests for the marketing endpoints: coupons, loyalty and campaigns"""

import pytest

from app.auth import get_current_user

MARKETING = "/api/v1/marketing"

COUPON = {"code": " bemvinda ", "type": "PERCENTAGE", "value": 10, "min_purchase": 50, "uses_per_customer": 1}


@pytest.mark.api
class TestCoupons:
    def test_create_validate_redeem(self, client, make_customer):
        customer = make_customer()
        created = client.post(f"{MARKETING}/coupons", json=COUPON)
        assert created.status_code == 201
        assert created.json()["code"] == "BEMVINDA"

        validation = client.post(
            f"{MARKETING}/coupons/validate", json={"code": "bemvinda", "customer_id": customer.id, "amount": 80}
        )
        assert validation.status_code == 200
        assert validation.json()["valid"] is True
        assert validation.json()["discount_amount"] == 8.0

        redeemed = client.post(
            f"{MARKETING}/coupons/redeem", json={"code": "BEMVINDA", "customer_id": customer.id, "amount": 80}
        )
        assert redeemed.status_code == 201
        assert redeemed.json()["final_amount"] == 72.0

        again = client.post(
            f"{MARKETING}/coupons/redeem", json={"code": "BEMVINDA", "customer_id": customer.id, "amount": 80}
        )
        assert again.status_code == 400

    def test_validation_below_minimum(self, client):
        client.post(f"{MARKETING}/coupons", json=COUPON)
        response = client.post(f"{MARKETING}/coupons/validate", json={"code": "BEMVINDA", "amount": 30})
        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert "50.00" in response.json()["message"]

    def test_percentage_over_100_is_rejected(self, client):
        response = client.post(f"{MARKETING}/coupons", json={**COUPON, "value": 150})
        assert response.status_code == 422

    def test_receptionist_can_validate_but_not_create(self, app, client, receptionist):
        client.post(f"{MARKETING}/coupons", json=COUPON)
        app.dependency_overrides[get_current_user] = lambda: receptionist

        assert client.post(f"{MARKETING}/coupons", json={**COUPON, "code": "OUTRO"}).status_code == 403
        validation = client.post(f"{MARKETING}/coupons/validate", json={"code": "BEMVINDA", "amount": 100})
        assert validation.status_code == 200


@pytest.mark.api
class TestLoyaltyAndCampaigns:
    def test_loyalty_program_and_points(self, client, make_customer):
        customer = make_customer()
        program = client.post(f"{MARKETING}/loyalty/program", json={"name": "Clube Bella"})
        assert program.status_code == 201

        earned = client.post(f"{MARKETING}/loyalty/earn", json={"customer_id": customer.id, "points": 300})
        assert earned.status_code == 201

        summary = client.get(f"{MARKETING}/loyalty/customers/{customer.id}").json()
        assert summary["points"] == 300
        assert summary["credit_value"] == 3.0

    def test_campaign_requires_content(self, client):
        response = client.post(f"{MARKETING}/campaigns", json={"name": "Primavera", "type": "EMAIL"})
        assert response.status_code == 422

    def test_create_campaign_as_draft(self, client):
        response = client.post(
            f"{MARKETING}/campaigns",
            json={"name": "Primavera", "type": "EMAIL", "subject": "Novidades", "content": "<p>Olá {{name}}</p>"},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "DRAFT"
