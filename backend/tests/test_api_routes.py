# Overview: Pytest coverage for the HTTP surface; status codes, payloads and error bodies.

import pytest

from shopbooks.services import invoice_service


INVOICE = {
    "reference_number": "A-0001",
    "invoice_date": "2026-10-01",
    "items": [{"item_name": "Cement", "quantity": 10, "rate": 50}],
}


@pytest.fixture
def invoice_a(client, auth_a, customer_a):
    response = client.post("/api/invoices", json={**INVOICE, "customer_id": customer_a.id}, headers=auth_a)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["invoice"]


class TestSystemAndAuth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_login_rejects_bad_password(self, client, db_session, owner_a):
        response = client.post("/api/auth/login", json={"username": owner_a.username, "password": "nope"})
        assert response.status_code == 401

    def test_me_and_logout(self, client, db_session, auth_a, shop_a):
        me = client.get("/api/auth/me", headers=auth_a).get_json()
        assert me["shop_id"] == shop_a.id
        assert me["branch_id"] is None

        assert client.post("/api/auth/logout", headers=auth_a).status_code == 200
        assert client.get("/api/auth/me", headers=auth_a).status_code == 401


class TestInvoiceAndPaymentFlow:

    def test_invoice_payment_balance(self, client, auth_a, customer_a, invoice_a):
        assert invoice_a["grand_total"] == "500.00"

        response = client.post(
            "/api/payments",
            json={"customer_id": customer_a.id, "payment_method": "Cash", "amount": 200},
            headers=auth_a,
        )
        assert response.status_code == 201
        assert response.get_json()["balance"] == "300.00"

        balance = client.get(f"/api/ledger/customers/{customer_a.id}/balance", headers=auth_a).get_json()
        assert balance["current_balance"] == "300.00"

        ledger = client.get(f"/api/ledger/customers/{customer_a.id}", headers=auth_a).get_json()
        assert [e["transaction_type"] for e in ledger["entries"]] == ["payment", "invoice"]
        assert ledger["entries"][1]["invoice_reference"] == "A-0001"

        verify = client.get(f"/api/ledger/customers/{customer_a.id}/verify", headers=auth_a).get_json()
        assert verify["ok"] is True

    def test_duplicate_reference_is_409(self, client, auth_a, customer_a, invoice_a):
        response = client.post("/api/invoices", json={**INVOICE, "customer_id": customer_a.id}, headers=auth_a)
        assert response.status_code == 409
        assert response.get_json()["code"] == "CONFLICT"

    def test_missing_fields_is_400(self, client, db_session, auth_a):
        response = client.post("/api/invoices", json={"reference_number": "A-0009"}, headers=auth_a)
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_update_and_delete_invoice(self, client, auth_a, customer_a, invoice_a):
        response = client.put(
            f"/api/invoices/{invoice_a['id']}",
            json={"items": [{"item_name": "Cement", "quantity": 12, "rate": 50}]},
            headers=auth_a,
        )
        assert response.status_code == 200
        assert response.get_json()["balance"] == "600.00"

        response = client.delete(f"/api/invoices/{invoice_a['id']}", headers=auth_a)
        assert response.status_code == 200
        assert response.get_json()["balance"] == "0.00"
        assert client.get(f"/api/invoices/{invoice_a['id']}", headers=auth_a).status_code == 404

    def test_generate_reference(self, client, auth_a, invoice_a):
        response = client.get("/api/invoices/generate-reference", headers=auth_a)
        assert response.get_json()["reference_number"] == "A-0002"

    def test_drift_surfaces_as_ledger_drift(self, client, auth_a, customer_a, invoice_a, monkeypatch):
        monkeypatch.setattr(
            invoice_service.ledger_service, "get_active_invoice_entry", lambda invoice_id: None
        )
        response = client.delete(f"/api/invoices/{invoice_a['id']}", headers=auth_a)
        assert response.status_code == 409
        assert response.get_json()["code"] == "LEDGER_DRIFT"

    def test_cheque_clearing_via_api(self, client, auth_a, customer_a, bank_a, invoice_a):
        created = client.post(
            "/api/payments",
            json={
                "customer_id": customer_a.id,
                "payment_method": "Cheque",
                "amount": 100,
                "bank_id": bank_a.id,
                "check_no": "555",
            },
            headers=auth_a,
        ).get_json()
        assert created["payment"]["status"] == "pending"
        assert created["balance"] == "500.00"

        pending = client.get("/api/payments/pending-checks", headers=auth_a).get_json()
        assert pending["count"] == 1

        cleared = client.put(
            f"/api/payments/{created['payment']['id']}/status", json={"status": "cleared"}, headers=auth_a
        ).get_json()
        assert cleared["balance"] == "400.00"

        bank = client.get(f"/api/banks/{bank_a.id}", headers=auth_a).get_json()
        assert bank["bank"]["balance"] == "1100.00"
        assert bank["transactions"][0]["type"] == "cash_in"

    def test_delete_payment(self, client, auth_a, customer_a, invoice_a):
        created = client.post(
            "/api/payments",
            json={"customer_id": customer_a.id, "payment_method": "Cash", "amount": 50},
            headers=auth_a,
        ).get_json()
        response = client.delete(f"/api/payments/{created['payment']['id']}", headers=auth_a)
        assert response.status_code == 200
        assert response.get_json()["balance"] == "500.00"


class TestLedgerEndpoints:

    def test_adjustment_and_reports(self, client, db_session, auth_a, customer_a):
        response = client.post(
            "/api/ledger/adjustments",
            json={"customer_id": customer_a.id, "credit_amount": 250, "description": "Old dues"},
            headers=auth_a,
        )
        assert response.status_code == 201
        assert response.get_json()["balance"] == "250.00"

        summary = client.get("/api/ledger/customers-summary", headers=auth_a).get_json()
        assert summary["items"][0]["current_balance"] == "250.00"

        stats = client.get("/api/ledger/statistics", headers=auth_a).get_json()
        assert stats["total_receivable"] == "250.00"

        top = client.get("/api/ledger/top-customers?limit=1000", headers=auth_a).get_json()
        assert top["limit"] == 50
        assert [t["customer_id"] for t in top["items"]] == [customer_a.id]

    def test_adjustment_needs_one_side(self, client, db_session, auth_a, customer_a):
        response = client.post(
            "/api/ledger/adjustments",
            json={"customer_id": customer_a.id, "credit_amount": 5, "debit_amount": 5},
            headers=auth_a,
        )
        assert response.status_code == 400


class TestVendorAndPurchasingEndpoints:

    def test_vendor_ledger_flow(self, client, db_session, auth_a, vendor_a):
        order = client.post(
            "/api/purchase-orders",
            json={
                "vendor_name": vendor_a.name,
                "order_date": "2026-09-01",
                "items": [{"item_name": "Pipe", "quantity": 4, "purchase_price": 25}],
            },
            headers=auth_a,
        ).get_json()["purchase_order"]

        response = client.put(
            f"/api/purchase-orders/{order['id']}/status", json={"status": "received"}, headers=auth_a
        )
        assert response.status_code == 200

        response = client.post(
            f"/api/vendors/{vendor_a.id}/payments",
            json={"amount": 40, "payment_date": "2026-09-03", "payment_method": "Cash"},
            headers=auth_a,
        )
        assert response.status_code == 201

        ledger = client.get(f"/api/vendors/{vendor_a.id}/ledger", headers=auth_a).get_json()
        assert [e["balance"] for e in ledger["ledger"]] == ["60.00", "100.00"]
        assert ledger["summary"]["net_balance"] == "60.00"

        summaries = client.get("/api/vendors/ledger-summaries", headers=auth_a).get_json()
        assert summaries["items"][0]["balance"] == "60.00"

    def test_bad_date_filter(self, client, db_session, auth_a, vendor_a):
        response = client.get(f"/api/vendors/{vendor_a.id}/ledger?start_date=yesterday", headers=auth_a)
        assert response.status_code == 400
