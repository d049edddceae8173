# Overview: Pytest coverage for purchase order status transitions and their stock effects.

from decimal import Decimal

import pytest

from shopbooks.errors import ConflictError, TransactionFailure, ValidationError
from shopbooks.models import Item, PurchaseOrder, PurchaseOrderItem
from shopbooks.services import inventory_service, purchase_order_service
from shopbooks.services.concurrency import atomic


@pytest.fixture
def item_a(db_session, shop_a):
    return inventory_service.create_item(shop_id=shop_a.id, name="Steel rod", cost_price=Decimal("8.00"))


def _order(shop, item, quantity=5, price="10.00"):
    return purchase_order_service.create_purchase_order(
        shop_id=shop.id,
        vendor_name="Acme Supplies",
        order_date="2026-09-01",
        items=[{"item_id": item.id, "quantity": quantity, "purchase_price": price}],
    )


def _qty(db_session, item):
    db_session.expire_all()
    return db_session.get(Item, item.id).qty_on_hand


def test_create_totals_and_name_from_item(db_session, shop_a, item_a):
    order = _order(shop_a, item_a, quantity=3, price="12.50")
    assert order.status == "pending"
    assert order.grand_total == Decimal("37.50")
    assert order.items[0].item_name == "Steel rod"
    assert _qty(db_session, item_a) == 0


def test_receive_adds_stock_and_cost(db_session, shop_a, item_a):
    order = _order(shop_a, item_a)
    purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="received")

    assert _qty(db_session, item_a) == 5
    assert db_session.get(Item, item_a.id).cost_price == Decimal("10.00")


def test_leaving_received_reverts_stock(db_session, shop_a, item_a):
    order = _order(shop_a, item_a)
    purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="received")
    purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="cancelled")
    assert _qty(db_session, item_a) == 0


def test_delete_received_order_reverts_stock(db_session, shop_a, item_a):
    order = _order(shop_a, item_a)
    purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="received")
    purchase_order_service.delete_purchase_order(order.id, shop_id=shop_a.id)

    assert _qty(db_session, item_a) == 0
    assert db_session.query(PurchaseOrder).count() == 0
    assert db_session.query(PurchaseOrderItem).count() == 0


def test_revert_below_zero_refused(db_session, shop_a, item_a):
    order = _order(shop_a, item_a)
    purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="received")
    with atomic("sell stock"):
        inventory_service.move_stock(item_a.id, -4, shop_id=shop_a.id)

    with pytest.raises(ConflictError):
        purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="pending")

    assert _qty(db_session, item_a) == 1
    assert db_session.get(PurchaseOrder, order.id).status == "received"


def test_invalid_status(db_session, shop_a, item_a):
    order = _order(shop_a, item_a)
    with pytest.raises(ValidationError):
        purchase_order_service.update_purchase_order_status(order.id, shop_id=shop_a.id, status="shipped")


def test_unknown_item_rejected(db_session, shop_a):
    with pytest.raises(ValidationError):
        purchase_order_service.create_purchase_order(
            shop_id=shop_a.id, vendor_name="Acme Supplies", order_date="2026-09-01",
            items=[{"item_id": 4242, "quantity": 1, "purchase_price": 1}],
        )


def test_failure_mid_lines_leaves_nothing(db_session, shop_a, item_a, monkeypatch):
    calls = {"n": 0}
    original = purchase_order_service._add_purchase_order_item

    def flaky_add(order, data):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("connection reset")
        return original(order, data)

    monkeypatch.setattr(purchase_order_service, "_add_purchase_order_item", flaky_add)

    with pytest.raises(TransactionFailure):
        purchase_order_service.create_purchase_order(
            shop_id=shop_a.id, vendor_name="Acme Supplies", order_date="2026-09-01",
            items=[
                {"item_id": item_a.id, "quantity": 1, "purchase_price": 1},
                {"item_name": "Nails", "quantity": 2, "purchase_price": 1},
            ],
        )
    assert db_session.query(PurchaseOrder).count() == 0
    assert db_session.query(PurchaseOrderItem).count() == 0
