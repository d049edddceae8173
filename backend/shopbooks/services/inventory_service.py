# Overview: Service-layer operations for stock items; item master data and stock movements.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import ConflictError
from ..extensions import db
from ..models import Item
from ..validation import clean_text, to_money
from . import tenant_service
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


def create_item(
    *,
    shop_id: int,
    branch_id: int | None = None,
    name: str,
    cost_price: Decimal | None = None,
    sale_price: Decimal | None = None,
    qty_on_hand: int = 0,
) -> Item:
    name = clean_text(name, "name", required=True, max_length=255)
    if db.session.query(Item.id).filter_by(shop_id=shop_id, name=name).first():
        raise ConflictError(f"Item '{name}' already exists")

    with atomic("create item"):
        item = Item(
            shop_id=shop_id,
            branch_id=branch_id,
            name=name,
            qty_on_hand=qty_on_hand,
            cost_price=to_money(cost_price or 0),
            sale_price=to_money(sale_price or 0),
        )
        db.session.add(item)
        db.session.flush()
    return item


def get_item(item_id: int, *, shop_id: int, branch_id: int | None = None) -> Item:
    return tenant_service.get_scoped(Item, item_id, shop_id=shop_id, branch_id=branch_id)


def list_items(*, shop_id: int, branch_id: int | None = None) -> list[Item]:
    query = tenant_service.scope_query(db.session.query(Item), Item, shop_id=shop_id, branch_id=branch_id)
    return query.order_by(Item.name).all()


def move_stock(item_id: int, quantity_delta: int, *, shop_id: int, cost_price: Decimal | None = None) -> Item:
    """
    Adjust qty_on_hand inside the caller's transaction.

    Positive deltas may also refresh cost_price (latest purchase price wins).
    """
    item = lock_for_update(
        db.session.query(Item).filter(Item.id == item_id, Item.shop_id == shop_id)
    ).populate_existing().first()
    if item is None:
        raise ConflictError(f"Item {item_id} referenced by purchase order no longer exists")

    new_qty = (item.qty_on_hand or 0) + quantity_delta
    if new_qty < 0:
        raise ConflictError(
            f"Cannot remove {-quantity_delta} of '{item.name}': only {item.qty_on_hand} on hand"
        )
    item.qty_on_hand = new_qty
    if quantity_delta > 0 and cost_price is not None:
        item.cost_price = to_money(cost_price)
    return item
