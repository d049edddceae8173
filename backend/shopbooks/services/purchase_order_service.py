# Overview: Service-layer operations for purchase orders; atomic creation, status transitions and stock effects.

"""
Purchase Order Service

WHY: A purchase order and its lines are one document. Creation writes the
header and every line in one transaction; a failing line leaves nothing
behind.

STOCK: qty_on_hand of referenced items includes an order only while the
order is 'received'. Entering 'received' adds each line's quantity (and
refreshes cost_price); leaving it, or deleting a received order, takes the
quantity back out.
Status writers hold purchase_order_lock so two concurrent transitions into
'received' apply stock once.

Received orders are the credit side of the vendor ledger
(see vendor_ledger_service).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..models import Item, PurchaseOrder, PurchaseOrderItem
from ..validation import clean_text, parse_amount, parse_date, parse_int, to_money
from . import inventory_service, tenant_service
from .concurrency import atomic, purchase_order_lock

logger = logging.getLogger(__name__)

PURCHASE_ORDER_STATUSES = ("pending", "received", "cancelled")


def _clean_items(items, *, shop_id: int) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        quantity = parse_int(raw.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be greater than 0")
        price = parse_amount(raw.get("purchase_price"), f"items[{idx}].purchase_price")
        item_id = parse_int(raw.get("item_id"), f"items[{idx}].item_id", required=False)
        item_name = clean_text(raw.get("item_name"), f"items[{idx}].item_name", max_length=255)

        if item_id is not None:
            item = db.session.query(Item).filter_by(id=item_id, shop_id=shop_id).first()
            if item is None:
                raise ValidationError(f"items[{idx}].item_id {item_id} does not exist")
            item_name = item_name or item.name
        if not item_name:
            raise ValidationError(f"items[{idx}].item_name is required")

        cleaned.append({
            "item_id": item_id,
            "item_name": item_name,
            "quantity": quantity,
            "purchase_price": price,
            "total_price": to_money(price * quantity),
        })
    return cleaned


def _add_purchase_order_item(order: PurchaseOrder, data: dict) -> PurchaseOrderItem:
    line = PurchaseOrderItem(**data)
    order.items.append(line)
    db.session.flush()
    return line


def _apply_stock(order: PurchaseOrder, direction: int) -> None:
    for line in order.items:
        if line.item_id is None:
            continue
        inventory_service.move_stock(
            line.item_id,
            direction * line.quantity,
            shop_id=order.shop_id,
            cost_price=line.purchase_price if direction > 0 else None,
        )


def create_purchase_order(
    *,
    shop_id: int,
    branch_id: int | None = None,
    vendor_name: str,
    order_date,
    items: list[dict],
    expected_delivery=None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> PurchaseOrder:
    vendor_name = clean_text(vendor_name, "vendor_name", required=True, max_length=255)
    order_date = parse_date(order_date, "order_date")
    expected_delivery = parse_date(expected_delivery, "expected_delivery", required=False)
    cleaned_items = _clean_items(items, shop_id=shop_id)
    subtotal = sum((line["total_price"] for line in cleaned_items), Decimal("0.00"))

    with atomic("create purchase order"):
        order = PurchaseOrder(
            shop_id=shop_id,
            branch_id=branch_id,
            vendor_name=vendor_name,
            order_date=order_date,
            expected_delivery=expected_delivery,
            notes=clean_text(notes, "notes"),
            subtotal=subtotal,
            grand_total=subtotal,
            status="pending",
            created_by_user_id=created_by_user_id,
        )
        db.session.add(order)
        db.session.flush()

        for data in cleaned_items:
            _add_purchase_order_item(order, data)

    logger.info("Purchase order %s created for %s (%s)", order.id, vendor_name, subtotal)
    return order


def update_purchase_order_status(
    order_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    status: str,
) -> PurchaseOrder:
    status = str(status or "").strip().lower()
    if status not in PURCHASE_ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PURCHASE_ORDER_STATUSES)}")

    with purchase_order_lock(order_id), atomic("update purchase order status"):
        order = tenant_service.get_scoped(
            PurchaseOrder, order_id, shop_id=shop_id, branch_id=branch_id,
            label="Purchase order", for_update=True,
        )
        old_status = order.status
        if old_status != status:
            if status == "received":
                _apply_stock(order, +1)
            elif old_status == "received":
                _apply_stock(order, -1)
            order.status = status

    logger.info("Purchase order %s status %s -> %s", order_id, old_status, status)
    return order


def delete_purchase_order(order_id: int, *, shop_id: int, branch_id: int | None = None) -> None:
    with purchase_order_lock(order_id), atomic("delete purchase order"):
        order = tenant_service.get_scoped(
            PurchaseOrder, order_id, shop_id=shop_id, branch_id=branch_id,
            label="Purchase order", for_update=True,
        )
        if order.status == "received":
            _apply_stock(order, -1)
        db.session.delete(order)
    logger.info("Purchase order %s deleted", order_id)


def get_purchase_order(order_id: int, *, shop_id: int, branch_id: int | None = None) -> PurchaseOrder:
    return tenant_service.get_scoped(
        PurchaseOrder, order_id, shop_id=shop_id, branch_id=branch_id, label="Purchase order"
    )


def list_purchase_orders(
    *,
    shop_id: int,
    branch_id: int | None = None,
    status: str | None = None,
    vendor_name: str | None = None,
) -> list[PurchaseOrder]:
    query = tenant_service.scope_query(
        db.session.query(PurchaseOrder), PurchaseOrder, shop_id=shop_id, branch_id=branch_id
    )
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if vendor_name:
        query = query.filter(PurchaseOrder.vendor_name == vendor_name)
    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()
