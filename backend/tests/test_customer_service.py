# Overview: Pytest coverage for customer creation, opening balances and deactivation.

from decimal import Decimal

import pytest

from shopbooks.errors import ValidationError
from shopbooks.models import LedgerEntry
from shopbooks.services import customer_service, ledger_service


def test_opening_balance_posts_adjustment(db_session, shop_a):
    customer = customer_service.create_customer(
        shop_id=shop_a.id, name="Opening Owed", opening_balance=Decimal("1500")
    )
    entry = db_session.query(LedgerEntry).filter_by(customer_id=customer.id).one()

    assert entry.transaction_type == "adjustment"
    assert entry.reference_number == f"OB-{customer.id}"
    assert entry.credit_amount == Decimal("1500.00")
    assert ledger_service.get_current_balance(customer.id) == Decimal("1500.00")


def test_negative_opening_balance_is_advance(db_session, shop_a):
    customer = customer_service.create_customer(
        shop_id=shop_a.id, name="Paid Ahead", opening_balance=Decimal("-200")
    )
    entry = db_session.query(LedgerEntry).filter_by(customer_id=customer.id).one()
    assert entry.debit_amount == Decimal("200.00")
    assert ledger_service.get_current_balance(customer.id) == Decimal("-200.00")


def test_zero_opening_balance_has_no_entry(db_session, shop_a, customer_a):
    assert db_session.query(LedgerEntry).filter_by(customer_id=customer_a.id).count() == 0


def test_name_required(db_session, shop_a):
    with pytest.raises(ValidationError):
        customer_service.create_customer(shop_id=shop_a.id, name="   ")


def test_deactivate_keeps_ledger(db_session, shop_a):
    customer = customer_service.create_customer(
        shop_id=shop_a.id, name="Leaving Soon", opening_balance=Decimal("300")
    )
    customer_service.deactivate_customer(customer.id, shop_id=shop_a.id)

    assert customer.is_active is False
    assert customer.id not in {c.id for c in customer_service.list_customers(shop_id=shop_a.id)}
    assert customer.id in {
        c.id for c in customer_service.list_customers(shop_id=shop_a.id, include_inactive=True)
    }
    ledger = ledger_service.get_customer_ledger(customer.id, shop_id=shop_a.id)
    assert ledger["summary"]["current_balance"] == "300.00"
    assert ledger["summary"]["entry_count"] == 1


def test_search(db_session, shop_a, customer_a):
    customer_service.create_customer(shop_id=shop_a.id, name="Zubair Stores")
    found = customer_service.list_customers(shop_id=shop_a.id, search="ali")
    assert [c.id for c in found] == [customer_a.id]
