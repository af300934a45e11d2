"""Tests for the inventory endpoints"""

import pytest

from app.auth import get_current_user

INVENTORY = "/api/v1/inventory"

PRODUCT = {
    "sku": " sh-500 ",
    "name": "Shampoo 500ml",
    "cost_price": 12,
    "sale_price": 30,
    "quantity": 10,
    "min_stock": 3,
    "reorder_point": 5,
}


@pytest.mark.api
class TestProducts:
    def test_create_product(self, client):
        response = client.post(f"{INVENTORY}/products", json=PRODUCT)

        assert response.status_code == 201
        body = response.json()
        assert body["sku"] == "SH-500"
        assert body["quantity"] == 10
        assert body["available_quantity"] == 10
        assert body["status"] == "ACTIVE"

    def test_duplicate_sku(self, client):
        client.post(f"{INVENTORY}/products", json=PRODUCT)
        assert client.post(f"{INVENTORY}/products", json=PRODUCT).status_code == 409

    def test_receptionist_cannot_create(self, app, client, receptionist):
        app.dependency_overrides[get_current_user] = lambda: receptionist
        response = client.post(f"{INVENTORY}/products", json=PRODUCT)
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    def test_feature_not_on_plan(self, client, db, tenant):
        tenant.plan_type = "FREE"
        db.commit()
        response = client.get(f"{INVENTORY}/products")
        assert response.status_code == 403

    def test_list_and_search(self, client):
        client.post(f"{INVENTORY}/products", json=PRODUCT)
        client.post(f"{INVENTORY}/products", json={**PRODUCT, "sku": "CND-1", "name": "Condicionador"})

        response = client.get(f"{INVENTORY}/products", params={"search": "sham"})
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["data"][0]["sku"] == "SH-500"

    def test_delete_discontinues(self, client):
        product_id = client.post(f"{INVENTORY}/products", json=PRODUCT).json()["id"]
        assert client.delete(f"{INVENTORY}/products/{product_id}").status_code == 200
        assert client.get(f"{INVENTORY}/products").json()["total"] == 0


@pytest.mark.api
class TestMovementsAndAlerts:
    def test_stock_out_raises_reorder_alert(self, client):
        product_id = client.post(f"{INVENTORY}/products", json=PRODUCT).json()["id"]

        movement = client.post(
            f"{INVENTORY}/movements",
            json={"product_id": product_id, "type": "OUT", "reason": "SERVICE_USAGE", "quantity": 6},
        )
        assert movement.status_code == 201
        assert movement.json()["new_quantity"] == 4

        alerts = client.get(f"{INVENTORY}/alerts", params={"status": "OPEN"}).json()
        assert [a["type"] for a in alerts] == ["REORDER_POINT"]

        acknowledged = client.post(f"{INVENTORY}/alerts/{alerts[0]['id']}/acknowledge")
        assert acknowledged.status_code == 200
        assert acknowledged.json()["status"] == "ACKNOWLEDGED"

    def test_insufficient_stock(self, client):
        product_id = client.post(f"{INVENTORY}/products", json=PRODUCT).json()["id"]
        response = client.post(
            f"{INVENTORY}/movements",
            json={"product_id": product_id, "type": "OUT", "reason": "SALE", "quantity": 11},
        )
        assert response.status_code == 400

    def test_zero_quantity_is_invalid(self, client):
        product_id = client.post(f"{INVENTORY}/products", json=PRODUCT).json()["id"]
        response = client.post(f"{INVENTORY}/movements", json={"product_id": product_id, "type": "IN", "quantity": 0})
        assert response.status_code == 422
