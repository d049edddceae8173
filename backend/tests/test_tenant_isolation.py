# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

Two shops with their own users and customers are created, then we verify:
1. Rows of another shop resolve exactly like missing rows (404).
2. Branch-bound callers see their branch plus shop-wide rows only.
3. List and summary queries never include foreign rows.
4. The API applies the session's tenant, not anything in the request.
"""

import pytest

from shopbooks.errors import NotFoundError, ValidationError
from shopbooks.models import Customer, LedgerEntry
from shopbooks.services import customer_service, invoice_service, ledger_service, payment_service
from shopbooks.services.auth_service import create_user
from shopbooks.services.tenant_service import get_scoped, resolve_write_branch

from .conftest import PASSWORD, login


class TestTenantServiceHelpers:

    def test_get_scoped_own_shop(self, db_session, shop_a, customer_a):
        assert get_scoped(Customer, customer_a.id, shop_id=shop_a.id).id == customer_a.id

    def test_get_scoped_foreign_shop_is_not_found(self, db_session, shop_a, customer_b):
        with pytest.raises(NotFoundError):
            get_scoped(Customer, customer_b.id, shop_id=shop_a.id)

    def test_get_scoped_nonexistent(self, db_session, shop_a):
        with pytest.raises(NotFoundError):
            get_scoped(Customer, 99999, shop_id=shop_a.id)

    def test_branch_scoping(self, db_session, shop_a, branch_a, branch_a2):
        own = customer_service.create_customer(shop_id=shop_a.id, branch_id=branch_a.id, name="Own Branch")
        other = customer_service.create_customer(shop_id=shop_a.id, branch_id=branch_a2.id, name="Other Branch")
        shared = customer_service.create_customer(shop_id=shop_a.id, name="Shop Wide")

        visible = {c.id for c in customer_service.list_customers(shop_id=shop_a.id, branch_id=branch_a.id)}
        assert visible == {own.id, shared.id}

        with pytest.raises(NotFoundError):
            get_scoped(Customer, other.id, shop_id=shop_a.id, branch_id=branch_a.id)

        # Shop-wide callers see every branch
        assert len(customer_service.list_customers(shop_id=shop_a.id)) == 3

    def test_resolve_write_branch(self, db_session, shop_a, shop_b, branch_a, branch_a2):
        assert resolve_write_branch(shop_id=shop_a.id, branch_id=branch_a.id, requested_branch_id=branch_a2.id) == branch_a.id
        assert resolve_write_branch(shop_id=shop_a.id, branch_id=None, requested_branch_id=branch_a2.id) == branch_a2.id
        assert resolve_write_branch(shop_id=shop_a.id, branch_id=None) is None
        with pytest.raises(ValidationError):
            resolve_write_branch(shop_id=shop_b.id, branch_id=None, requested_branch_id=branch_a.id)


class TestServiceIsolation:

    def test_invoice_for_foreign_customer(self, db_session, shop_a, customer_b):
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(
                shop_id=shop_a.id,
                customer_id=customer_b.id,
                reference_number="A-0001",
                invoice_date="2026-10-01",
                items=[{"item_name": "Cloth", "quantity": 1, "rate": 10}],
            )
        assert db_session.query(LedgerEntry).count() == 0

    def test_payment_for_foreign_customer(self, db_session, shop_a, customer_b):
        with pytest.raises(NotFoundError):
            payment_service.create_payment(
                shop_id=shop_a.id, customer_id=customer_b.id, payment_method="Cash", amount=10
            )

    def test_summary_excludes_other_shop(self, db_session, shop_a, shop_b, customer_a, customer_b):
        ids = {s["customer_id"] for s in ledger_service.get_customers_summary(shop_id=shop_a.id)}
        assert ids == {customer_a.id}

    def test_reference_numbers_are_per_shop(self, db_session, shop_a, shop_b, customer_a, customer_b):
        for shop, customer in ((shop_a, customer_a), (shop_b, customer_b)):
            invoice_service.create_invoice(
                shop_id=shop.id,
                customer_id=customer.id,
                reference_number="A-0001",
                invoice_date="2026-10-01",
                items=[{"item_name": "Thing", "quantity": 1, "rate": 10}],
            )
        assert invoice_service.generate_reference_number(shop_id=shop_a.id) == "A-0002"


class TestApiIsolation:

    def test_cross_shop_customer_read(self, client, db_session, auth_a, customer_b):
        response = client.get(f"/api/customers/{customer_b.id}", headers=auth_a)
        assert response.status_code == 404

    def test_cross_shop_ledger_read(self, client, db_session, auth_a, customer_b):
        response = client.get(f"/api/ledger/customers/{customer_b.id}", headers=auth_a)
        assert response.status_code == 404

    def test_cross_shop_invoice_delete(self, client, db_session, auth_a, shop_b, customer_b):
        invoice, _ = invoice_service.create_invoice(
            shop_id=shop_b.id,
            customer_id=customer_b.id,
            reference_number="A-0001",
            invoice_date="2026-10-01",
            items=[{"item_name": "Cloth", "quantity": 2, "rate": 10}],
        )
        response = client.delete(f"/api/invoices/{invoice.id}", headers=auth_a)
        assert response.status_code == 404
        assert ledger_service.get_current_balance(customer_b.id) == 20

    def test_branch_user_cannot_see_other_branch(self, client, db_session, shop_a, branch_a, branch_a2):
        create_user(
            shop_id=shop_a.id, username="clerk_a", email="clerk@shopa.local",
            password=PASSWORD, role="staff", branch_id=branch_a.id,
        )
        other = customer_service.create_customer(shop_id=shop_a.id, branch_id=branch_a2.id, name="Far Away")
        headers = login(client, "clerk_a")

        assert client.get(f"/api/customers/{other.id}", headers=headers).status_code == 404
        listed = client.get("/api/customers", headers=headers).get_json()
        assert other.id not in {c["id"] for c in listed["items"]}

    def test_unauthenticated_request(self, client, db_session):
        assert client.get("/api/customers").status_code == 401
