"""Tests for payments, the ledger balance and invoices"""

from datetime import datetime, timedelta

import pytest

from app.domain.financial.service import mark_overdue_invoices
from app.models_financial import Invoice
from app.models_integration import Webhook, WebhookDelivery

FINANCIAL = "/api/v1/financial"


@pytest.mark.api
class TestPayments:
    def test_payment_and_partial_refund(self, client, make_customer):
        customer = make_customer()
        created = client.post(
            f"{FINANCIAL}/payments",
            json={"method": "cash", "amount": 100, "tip": 10, "fees": 5, "customer_id": customer.id},
        )
        assert created.status_code == 201
        payment = created.json()
        assert payment["status"] == "COMPLETED"
        assert payment["net_amount"] == 105.0
        assert client.get(f"{FINANCIAL}/balance").json()["balance"] == 105.0

        refunded = client.post(f"{FINANCIAL}/payments/{payment['id']}/refund", json={"amount": 40, "reason": "Ajuste"})
        assert refunded.status_code == 200
        assert refunded.json()["status"] == "PARTIALLY_REFUNDED"
        assert client.get(f"{FINANCIAL}/balance").json()["balance"] == 65.0

        again = client.post(f"{FINANCIAL}/payments/{payment['id']}/refund", json={})
        assert again.status_code == 400

    def test_refund_cannot_exceed_amount(self, client):
        payment_id = client.post(f"{FINANCIAL}/payments", json={"method": "CASH", "amount": 50}).json()["id"]
        response = client.post(f"{FINANCIAL}/payments/{payment_id}/refund", json={"amount": 80})
        assert response.status_code == 400

    def test_pix_flow(self, client):
        assert client.post(f"{FINANCIAL}/payments", json={"method": "PIX", "amount": 80}).status_code == 400

        charge = client.post(f"{FINANCIAL}/payments/pix", json={"amount": 80})
        assert charge.status_code == 201
        assert charge.json()["status"] == "PENDING"
        assert charge.json()["pix_code"].startswith("000201")
        assert client.get(f"{FINANCIAL}/balance").json()["balance"] == 0

        payment_id = charge.json()["id"]
        confirmed = client.post(f"{FINANCIAL}/payments/{payment_id}/confirm-pix")
        assert confirmed.json()["status"] == "COMPLETED"
        assert client.get(f"{FINANCIAL}/balance").json()["balance"] == 80.0
        assert client.post(f"{FINANCIAL}/payments/{payment_id}/confirm-pix").status_code == 400

    def test_unknown_method(self, client):
        assert client.post(f"{FINANCIAL}/payments", json={"method": "BITCOIN", "amount": 10}).status_code == 422

    def test_installments(self, client):
        options = client.get(f"{FINANCIAL}/payments/installments", params={"amount": 300}).json()
        assert len(options) == 12
        assert options[2] == {
            "installments": 3,
            "installment_amount": 100.0,
            "total_amount": 300.0,
            "interest_rate": 0,
            "has_interest": False,
        }
        assert options[3]["interest_rate"] == 1.99
        assert options[3]["total_amount"] == 305.97

    def test_payment_queues_subscribed_webhook(self, client, db, tenant):
        db.add(Webhook(tenant_id=tenant.id, name="ERP", url="https://erp.example.com/hook",
                       events=["payment.completed"], secret="s3cret"))
        db.commit()
        client.post(f"{FINANCIAL}/payments", json={"method": "CASH", "amount": 30})

        delivery = db.query(WebhookDelivery).one()
        assert delivery.event == "payment.completed"
        assert delivery.payload["data"]["amount"] == 30.0


@pytest.mark.api
class TestInvoices:
    INVOICE = {
        "items": [
            {"description": "Escova", "quantity": 2, "unit_price": 50},
            {"description": "Hidratação", "unit_price": 80, "discount": 10},
        ],
        "discount": 20,
        "tax": 5,
        "status": "PENDING",
    }

    def test_totals_and_payments(self, client):
        created = client.post(f"{FINANCIAL}/invoices", json=self.INVOICE)
        assert created.status_code == 201
        invoice = created.json()
        assert invoice["subtotal"] == 170.0
        assert invoice["total"] == 155.0
        assert invoice["number"] == f"INV-{datetime.utcnow():%Y%m}-0001"

        partial = client.post(f"{FINANCIAL}/invoices/{invoice['id']}/payments", json={"amount": 100})
        assert partial.json()["status"] == "PARTIAL"
        assert partial.json()["amount_due"] == 55.0

        paid = client.post(f"{FINANCIAL}/invoices/{invoice['id']}/payments", json={"amount": 55, "method": "credit_card"})
        assert paid.json()["status"] == "PAID"

        assert client.post(f"{FINANCIAL}/invoices/{invoice['id']}/cancel").status_code == 400
        assert client.patch(f"{FINANCIAL}/invoices/{invoice['id']}", json={"notes": "x"}).status_code == 400

    def test_numbers_are_sequential(self, client):
        client.post(f"{FINANCIAL}/invoices", json=self.INVOICE)
        second = client.post(f"{FINANCIAL}/invoices", json=self.INVOICE).json()
        assert second["number"].endswith("-0002")

    def test_draft_rules(self, client):
        draft = client.post(f"{FINANCIAL}/invoices", json={**self.INVOICE, "status": "DRAFT"}).json()
        assert client.post(f"{FINANCIAL}/invoices/{draft['id']}/payments", json={"amount": 10}).status_code == 400
        assert client.delete(f"{FINANCIAL}/invoices/{draft['id']}").status_code == 200

    def test_invoice_needs_items(self, client):
        assert client.post(f"{FINANCIAL}/invoices", json={"items": []}).status_code == 422

    def test_mark_overdue(self, client, db):
        invoice_id = client.post(
            f"{FINANCIAL}/invoices",
            json={**self.INVOICE, "due_date": (datetime.utcnow() - timedelta(days=1)).isoformat()},
        ).json()["id"]

        assert mark_overdue_invoices(db) == {"marked": 1}
        db.expire_all()
        assert db.get(Invoice, invoice_id).status == "OVERDUE"
        assert client.get(f"{FINANCIAL}/invoices/overdue").json()["total"] == 1
