# Overview: Read-only vendor ledger; running balance computed on read from purchase orders and vendor payments.

"""
Vendor Ledger Projection

Unlike the customer ledger, nothing is stored: every read rebuilds the
ledger from its sources, so it can never drift from them.

- Credits: purchase orders in status 'received' whose vendor_name equals the
  vendor's name (same shop), one row per order, amount = grand_total.
- Debits: vendor payments for the vendor.
- Order: date ascending; on the same date credits come before debits; then
  by source id. balance = running sum of credit - debit in that order.
- Output is most recent first. net_balance = total_credit - total_debit.

project_vendor_ledger is a pure function over row objects so the ordering
and accumulation rules can be exercised without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import PurchaseOrder, Vendor, VendorPayment
from ..time_utils import to_iso_date
from ..validation import to_money
from . import tenant_service

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class VendorLedgerRow:
    date: date
    source_id: int
    credit: Decimal = ZERO
    debit: Decimal = ZERO
    transaction_type: str = "PURCHASE"  # PURCHASE or PAYMENT
    description: str = ""
    payment_method: str | None = None
    bank_name: str | None = None
    items: list = field(default_factory=list)

    @property
    def is_credit(self) -> bool:
        return self.transaction_type == "PURCHASE"


def _sort_key(row: VendorLedgerRow):
    return (row.date, 0 if row.is_credit else 1, row.source_id)


def project_vendor_ledger(
    credit_rows: Iterable[VendorLedgerRow],
    debit_rows: Iterable[VendorLedgerRow],
) -> dict:
    """Merge, order and accumulate ledger rows; returns entries most recent first plus totals."""
    rows = sorted([*credit_rows, *debit_rows], key=_sort_key)

    running = ZERO
    total_credit = ZERO
    total_debit = ZERO
    entries = []
    for row in rows:
        credit = to_money(row.credit)
        debit = to_money(row.debit)
        running += credit - debit
        total_credit += credit
        total_debit += debit
        entries.append({
            "date": to_iso_date(row.date),
            "source_id": row.source_id,
            "transaction_type": row.transaction_type,
            "description": row.description,
            "credit": str(credit),
            "debit": str(debit),
            "balance": str(running),
            "payment_method": row.payment_method,
            "bank_name": row.bank_name,
            "items": row.items,
        })
    entries.reverse()

    return {
        "entries": entries,
        "total_credit": str(total_credit),
        "total_debit": str(total_debit),
        "net_balance": str(total_credit - total_debit),
    }


def _received_orders(vendor: Vendor, start_date: date | None, end_date: date | None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder).filter(
        PurchaseOrder.shop_id == vendor.shop_id,
        PurchaseOrder.vendor_name == vendor.name,
        PurchaseOrder.status == "received",
    )
    if start_date:
        query = query.filter(PurchaseOrder.order_date >= start_date)
    if end_date:
        query = query.filter(PurchaseOrder.order_date <= end_date)
    return query.all()


def _vendor_payments(vendor: Vendor, start_date: date | None, end_date: date | None) -> list[VendorPayment]:
    query = db.session.query(VendorPayment).filter(VendorPayment.vendor_id == vendor.id)
    if start_date:
        query = query.filter(VendorPayment.payment_date >= start_date)
    if end_date:
        query = query.filter(VendorPayment.payment_date <= end_date)
    return query.all()


def get_vendor_ledger(
    vendor_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")

    vendor = tenant_service.get_scoped(Vendor, vendor_id, shop_id=shop_id, branch_id=branch_id)

    credits = [
        VendorLedgerRow(
            date=order.order_date,
            source_id=order.id,
            credit=order.grand_total,
            transaction_type="PURCHASE",
            description=f"Purchase Order #{order.id} - {order.vendor_name}",
            items=[line.to_dict() for line in order.items],
        )
        for order in _received_orders(vendor, start_date, end_date)
    ]
    debits = [
        VendorLedgerRow(
            date=payment.payment_date,
            source_id=payment.id,
            debit=payment.amount,
            transaction_type="PAYMENT",
            description=f"Payment received via {payment.payment_method}",
            payment_method=payment.payment_method,
            bank_name=payment.bank_name,
        )
        for payment in _vendor_payments(vendor, start_date, end_date)
    ]

    projection = project_vendor_ledger(credits, debits)
    return {
        "vendor": vendor.to_dict(),
        "ledger": projection["entries"],
        "summary": {
            "total_credit": projection["total_credit"],
            "total_debit": projection["total_debit"],
            "net_balance": projection["net_balance"],
            "entry_count": len(projection["entries"]),
        },
    }


def get_vendor_ledger_summaries(*, shop_id: int, branch_id: int | None = None) -> list[dict]:
    """Per-vendor totals; each balance equals that vendor's get_vendor_ledger net_balance."""
    vendors = (
        tenant_service.scope_query(db.session.query(Vendor), Vendor, shop_id=shop_id, branch_id=branch_id)
        .order_by(Vendor.name)
        .all()
    )

    credit_by_name = dict(
        db.session.query(PurchaseOrder.vendor_name, func.sum(PurchaseOrder.grand_total))
        .filter(PurchaseOrder.shop_id == shop_id, PurchaseOrder.status == "received")
        .group_by(PurchaseOrder.vendor_name)
        .all()
    )
    debit_by_vendor = dict(
        db.session.query(VendorPayment.vendor_id, func.sum(VendorPayment.amount))
        .filter(VendorPayment.shop_id == shop_id)
        .group_by(VendorPayment.vendor_id)
        .all()
    )

    summaries = []
    for vendor in vendors:
        total_credit = to_money(credit_by_name.get(vendor.name))
        total_debit = to_money(debit_by_vendor.get(vendor.id))
        summaries.append({
            "vendor_id": vendor.id,
            "vendor_name": vendor.name,
            "is_active": vendor.is_active,
            "total_credit": str(total_credit),
            "total_debit": str(total_debit),
            "balance": str(total_credit - total_debit),
        })
    return summaries
