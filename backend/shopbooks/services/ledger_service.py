# Overview: Service-layer operations for the customer ledger; entry store, balance resolver and ledger reads.

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import exists, func, select
from sqlalchemy.orm import aliased

from ..errors import ConsistencyViolation, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, LedgerEntry, Payment
from ..time_utils import utcnow, to_utc_z
from ..validation import to_money
from . import tenant_service
from .concurrency import atomic, customer_lock, lock_for_update
"""
Customer Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Total order per customer is (created_at, id). A new entry's created_at is
  never earlier than the customer's latest entry.
- remaining_balance of an entry == remaining_balance of the previous entry
  (0 for the first) + credit_amount - debit_amount.
- The current balance is the remaining_balance of the latest entry. It is a
  single indexed row lookup, never an aggregate.
- Corrections are compensating entries: a 'reversal' row mirrors the amounts
  of the entry it cancels and points at it through reverses_entry_id.

Writers (append_*, revise_*, remove_*) never commit. They must run inside a
coordinator that holds customer_lock for every customer they touch and owns
the transaction (concurrency.atomic).
"""

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("invoice", "payment", "adjustment", "reversal")

ZERO = Decimal("0.00")


# =============================================================================
# BALANCE RESOLVER
# =============================================================================

def _latest_entry(customer_id: int) -> LedgerEntry | None:
    return (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.customer_id == customer_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .first()
    )


def get_current_balance(customer_id: int) -> Decimal:
    """Balance after the customer's most recent entry; 0.00 if there are none."""
    latest = _latest_entry(customer_id)
    if latest is None:
        return ZERO
    return to_money(latest.remaining_balance)


def _balance_before(customer_id: int, moment: datetime) -> Decimal:
    entry = (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.customer_id == customer_id, LedgerEntry.created_at < moment)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .first()
    )
    return to_money(entry.remaining_balance) if entry else ZERO


# =============================================================================
# ENTRY STORE
# =============================================================================

def append_entry(
    *,
    customer_id: int,
    transaction_type: str,
    credit_amount=ZERO,
    debit_amount=ZERO,
    description: str | None = None,
    payment_method: str | None = None,
    reference_number: str | None = None,
    invoice_id: int | None = None,
    payment_id: int | None = None,
    reverses_entry_id: int | None = None,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """
    Append one entry, snapshotting the balance after it.

    Caller must hold customer_lock(customer_id) for the whole unit of work.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown ledger transaction type: {transaction_type}")

    credit = to_money(credit_amount)
    debit = to_money(debit_amount)
    if credit < 0 or debit < 0:
        raise ValidationError("Ledger amounts must be >= 0")

    latest = _latest_entry(customer_id)
    previous_balance = to_money(latest.remaining_balance) if latest else ZERO

    created_at = utcnow()
    if latest is not None and latest.created_at > created_at:
        created_at = latest.created_at

    entry = LedgerEntry(
        customer_id=customer_id,
        invoice_id=invoice_id,
        payment_id=payment_id,
        credit_amount=credit,
        debit_amount=debit,
        remaining_balance=previous_balance + credit - debit,
        description=description,
        payment_method=payment_method,
        reference_number=reference_number,
        transaction_type=transaction_type,
        reverses_entry_id=reverses_entry_id,
        created_by_user_id=created_by_user_id,
        created_at=created_at,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def reverse_entry(
    entry: LedgerEntry,
    *,
    description: str | None = None,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """Append a reversal mirroring `entry` (credit <-> debit) on the same customer."""
    return append_entry(
        customer_id=entry.customer_id,
        transaction_type="reversal",
        credit_amount=entry.debit_amount,
        debit_amount=entry.credit_amount,
        description=description or f"Reversal of entry #{entry.id}",
        payment_method=entry.payment_method,
        reference_number=entry.reference_number,
        invoice_id=entry.invoice_id,
        payment_id=entry.payment_id,
        reverses_entry_id=entry.id,
        created_by_user_id=created_by_user_id,
    )


def _active_entry(*, transaction_type: str, invoice_id: int | None = None, payment_id: int | None = None) -> LedgerEntry | None:
    """Latest entry of the given type for an invoice/payment that no reversal points at."""
    reversal = aliased(LedgerEntry)
    query = db.session.query(LedgerEntry).filter(
        LedgerEntry.transaction_type == transaction_type,
        ~exists().where(reversal.reverses_entry_id == LedgerEntry.id),
    )
    if invoice_id is not None:
        query = query.filter(LedgerEntry.invoice_id == invoice_id)
    if payment_id is not None:
        query = query.filter(LedgerEntry.payment_id == payment_id)
    return query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc()).first()


def get_active_invoice_entry(invoice_id: int) -> LedgerEntry | None:
    return _active_entry(transaction_type="invoice", invoice_id=invoice_id)


def get_active_payment_entry(payment_id: int) -> LedgerEntry | None:
    return _active_entry(transaction_type="payment", payment_id=payment_id)


def _missing_invoice_entry(invoice_id: int, action: str) -> ConsistencyViolation:
    logger.error("Ledger drift: invoice %s has no active ledger entry (%s)", invoice_id, action)
    return ConsistencyViolation(
        f"Invoice {invoice_id} has no active ledger entry",
        details={"invoice_id": invoice_id, "action": action},
    )


# =============================================================================
# DOMAIN-SPECIFIC APPENDS
# =============================================================================

def append_invoice_ledger_entry(
    invoice: Invoice,
    *,
    description: str | None = None,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """Credit the invoice's grand_total to its customer."""
    return append_entry(
        customer_id=invoice.customer_id,
        transaction_type="invoice",
        credit_amount=invoice.grand_total,
        description=description or f"Invoice created - {invoice.reference_number}",
        payment_method="invoice",
        reference_number=invoice.reference_number,
        invoice_id=invoice.id,
        created_by_user_id=created_by_user_id,
    )


def append_payment_ledger_entry(
    payment: Payment,
    *,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """Debit a cleared payment from its customer."""
    if payment.customer_id is None:
        raise ValidationError("Payment has no customer to debit")
    return append_entry(
        customer_id=payment.customer_id,
        transaction_type="payment",
        debit_amount=payment.amount,
        description=payment.description or f"Payment received via {payment.payment_method}",
        payment_method=payment.payment_method,
        reference_number=f"PAY-{payment.id}",
        payment_id=payment.id,
        created_by_user_id=created_by_user_id,
    )


def revise_ledger_entry_for_invoice(
    invoice: Invoice,
    *,
    new_credit_amount,
    new_description: str,
    created_by_user_id: int | None = None,
) -> tuple[LedgerEntry, LedgerEntry]:
    """
    Replace the invoice's active entry with one crediting `new_credit_amount`.

    Appends a reversal of the active entry (on whichever customer it was
    posted to) followed by a fresh invoice entry on invoice.customer_id.
    Existing rows and their balance snapshots are left untouched.
    """
    active = get_active_invoice_entry(invoice.id)
    if active is None:
        raise _missing_invoice_entry(invoice.id, "revise")

    reversal = reverse_entry(
        active,
        description=f"Reversal: {active.description}",
        created_by_user_id=created_by_user_id,
    )
    replacement = append_entry(
        customer_id=invoice.customer_id,
        transaction_type="invoice",
        credit_amount=new_credit_amount,
        description=new_description,
        payment_method="invoice",
        reference_number=invoice.reference_number,
        invoice_id=invoice.id,
        created_by_user_id=created_by_user_id,
    )
    return reversal, replacement


def remove_ledger_entry_for_invoice(
    invoice_id: int,
    *,
    description: str | None = None,
    created_by_user_id: int | None = None,
) -> LedgerEntry:
    """Cancel the invoice's active entry with a compensating reversal."""
    active = get_active_invoice_entry(invoice_id)
    if active is None:
        raise _missing_invoice_entry(invoice_id, "remove")
    return reverse_entry(
        active,
        description=description or f"Reversal: {active.description}",
        created_by_user_id=created_by_user_id,
    )


def remove_ledger_entry_for_payment(
    payment: Payment,
    *,
    description: str | None = None,
    created_by_user_id: int | None = None,
) -> LedgerEntry | None:
    """
    Cancel the payment's active entry, if it has one.

    A payment that never reached the ledger (pending, cancelled, or not tied
    to a customer) has nothing to compensate; None is returned.
    """
    active = get_active_payment_entry(payment.id)
    if active is None:
        return None
    return reverse_entry(
        active,
        description=description or f"Reversal: {active.description}",
        created_by_user_id=created_by_user_id,
    )


# =============================================================================
# MANUAL ADJUSTMENTS (coordinator)
# =============================================================================

def record_adjustment(
    *,
    customer_id: int,
    shop_id: int,
    branch_id: int | None = None,
    credit_amount=ZERO,
    debit_amount=ZERO,
    description: str | None = None,
    payment_method: str | None = None,
    reference_number: str | None = None,
    created_by_user_id: int | None = None,
) -> tuple[LedgerEntry, Decimal]:
    """
    Post a manual credit or debit against a customer.

    Exactly one of credit_amount / debit_amount must be positive.
    Returns (entry, new_balance).
    """
    credit = to_money(credit_amount)
    debit = to_money(debit_amount)
    if credit < 0 or debit < 0:
        raise ValidationError("Adjustment amounts must be >= 0")
    if (credit > 0) == (debit > 0):
        raise ValidationError("Provide exactly one of credit_amount or debit_amount")

    with customer_lock(customer_id), atomic("record ledger adjustment"):
        tenant_service.get_scoped(
            Customer, customer_id, shop_id=shop_id, branch_id=branch_id, for_update=True
        )
        entry = append_entry(
            customer_id=customer_id,
            transaction_type="adjustment",
            credit_amount=credit,
            debit_amount=debit,
            description=description or ("Manual credit" if credit > 0 else "Manual debit"),
            payment_method=payment_method,
            reference_number=reference_number,
            created_by_user_id=created_by_user_id,
        )
        new_balance = to_money(entry.remaining_balance)

    logger.info("Ledger adjustment %s posted for customer %s", entry.id, customer_id)
    return entry, new_balance


# =============================================================================
# READS
# =============================================================================

def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def get_customer_balance(customer_id: int, *, shop_id: int, branch_id: int | None = None) -> dict:
    customer = tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)
    latest = _latest_entry(customer.id)
    return {
        "customer_id": customer.id,
        "customer_name": customer.name,
        "current_balance": str(to_money(latest.remaining_balance) if latest else ZERO),
        "last_transaction_date": to_utc_z(latest.created_at) if latest else None,
    }


def get_customer_ledger(
    customer_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """
    Customer ledger, most recent entry first, with a range summary.

    Both dates are inclusive calendar days. opening_balance is the balance
    just before start_date; closing_balance is the balance at the end of the
    range, so closing - opening == total_credit - total_debit.
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")

    customer = tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)

    query = (
        db.session.query(LedgerEntry, Invoice.reference_number, Invoice.status)
        .outerjoin(Invoice, Invoice.id == LedgerEntry.invoice_id)
        .filter(LedgerEntry.customer_id == customer.id)
    )
    if start_date:
        query = query.filter(LedgerEntry.created_at >= _day_start(start_date))
    if end_date:
        query = query.filter(LedgerEntry.created_at < _day_start(end_date + timedelta(days=1)))
    rows = query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc()).all()

    entries = []
    total_credit = ZERO
    total_debit = ZERO
    for entry, invoice_reference, invoice_status in rows:
        data = entry.to_dict()
        data["invoice_reference"] = invoice_reference
        data["invoice_status"] = invoice_status
        entries.append(data)
        total_credit += to_money(entry.credit_amount)
        total_debit += to_money(entry.debit_amount)

    opening_balance = _balance_before(customer.id, _day_start(start_date)) if start_date else ZERO
    closing_balance = to_money(rows[0][0].remaining_balance) if rows else opening_balance

    return {
        "customer": customer.to_dict(),
        "entries": entries,
        "summary": {
            "entry_count": len(entries),
            "total_credit": str(total_credit),
            "total_debit": str(total_debit),
            "opening_balance": str(opening_balance),
            "closing_balance": str(closing_balance),
            "current_balance": str(get_current_balance(customer.id)),
        },
    }


def verify_customer_ledger(customer_id: int) -> dict:
    """
    Replay a customer's entries from zero and compare every snapshot.

    Diagnostic only; never repairs anything.
    """
    entries = (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.customer_id == customer_id)
        .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
        .all()
    )

    running = ZERO
    first_mismatch = None
    for entry in entries:
        running = running + to_money(entry.credit_amount) - to_money(entry.debit_amount)
        stored = to_money(entry.remaining_balance)
        if stored != running:
            first_mismatch = {
                "entry_id": entry.id,
                "expected_balance": str(running),
                "stored_balance": str(stored),
            }
            break

    stored_balance = get_current_balance(customer_id)
    totals = (
        db.session.query(
            func.coalesce(func.sum(LedgerEntry.credit_amount), 0),
            func.coalesce(func.sum(LedgerEntry.debit_amount), 0),
        )
        .filter(LedgerEntry.customer_id == customer_id)
        .one()
    )
    computed_balance = to_money(totals[0]) - to_money(totals[1])

    ok = first_mismatch is None and computed_balance == stored_balance
    if not ok:
        logger.error("Ledger verification failed for customer %s: %s", customer_id, first_mismatch)

    return {
        "customer_id": customer_id,
        "ok": ok,
        "entry_count": len(entries),
        "computed_balance": str(computed_balance),
        "stored_balance": str(stored_balance),
        "first_mismatch": first_mismatch,
    }


def _customer_ledger_columns():
    """Correlated per-customer subqueries: latest balance, entry count, last entry time."""
    balance = (
        select(LedgerEntry.remaining_balance)
        .where(LedgerEntry.customer_id == Customer.id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(1)
        .correlate(Customer)
        .scalar_subquery()
    )
    count = (
        select(func.count(LedgerEntry.id))
        .where(LedgerEntry.customer_id == Customer.id)
        .correlate(Customer)
        .scalar_subquery()
    )
    last_at = (
        select(func.max(LedgerEntry.created_at))
        .where(LedgerEntry.customer_id == Customer.id)
        .correlate(Customer)
        .scalar_subquery()
    )
    return balance.label("current_balance"), count.label("transaction_count"), last_at.label("last_transaction_date")


def get_customers_summary(
    *,
    shop_id: int,
    branch_id: int | None = None,
    include_inactive: bool = False,
) -> list[dict]:
    """One row per customer with current balance and ledger activity."""
    balance, count, last_at = _customer_ledger_columns()
    query = tenant_service.scope_query(
        db.session.query(Customer, balance, count, last_at),
        Customer,
        shop_id=shop_id,
        branch_id=branch_id,
    )
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))

    summaries = []
    for customer, current_balance, transaction_count, last_transaction_date in query.order_by(Customer.name).all():
        summaries.append({
            "customer_id": customer.id,
            "customer_name": customer.name,
            "phone_number": customer.phone_number,
            "is_active": customer.is_active,
            "current_balance": str(to_money(current_balance)),
            "transaction_count": transaction_count or 0,
            "last_transaction_date": _as_utc_z(last_transaction_date),
        })
    return summaries


def _as_utc_z(value) -> str | None:
    # func.max over a DateTime column comes back as a string on some SQLite builds
    if value is None:
        return None
    if isinstance(value, str):
        return to_utc_z(datetime.fromisoformat(value))
    return to_utc_z(value)


def get_ledger_statistics(*, shop_id: int, branch_id: int | None = None) -> dict:
    summaries = get_customers_summary(shop_id=shop_id, branch_id=branch_id, include_inactive=True)
    balances = [Decimal(s["current_balance"]) for s in summaries]

    customer_ids = tenant_service.scope_query(
        select(Customer.id), Customer, shop_id=shop_id, branch_id=branch_id
    )
    totals = (
        db.session.query(
            func.count(LedgerEntry.id),
            func.coalesce(func.sum(LedgerEntry.credit_amount), 0),
            func.coalesce(func.sum(LedgerEntry.debit_amount), 0),
        )
        .filter(LedgerEntry.customer_id.in_(customer_ids))
        .one()
    )

    return {
        "total_customers": len(summaries),
        "customers_with_balance": sum(1 for b in balances if b > 0),
        "customers_in_credit": sum(1 for b in balances if b < 0),
        "total_receivable": str(sum((b for b in balances if b > 0), ZERO)),
        "total_advance": str(abs(sum((b for b in balances if b < 0), ZERO))),
        "net_balance": str(sum(balances, ZERO)),
        "total_entries": totals[0] or 0,
        "total_credit": str(to_money(totals[1])),
        "total_debit": str(to_money(totals[2])),
    }


def get_top_customers(*, shop_id: int, branch_id: int | None = None, limit: int = 10) -> list[dict]:
    """Customers owing the most, highest balance first."""
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    summaries = get_customers_summary(shop_id=shop_id, branch_id=branch_id)
    owing = [s for s in summaries if Decimal(s["current_balance"]) > 0]
    owing.sort(key=lambda s: (-Decimal(s["current_balance"]), s["customer_id"]))
    return owing[:limit]


def lock_customer(customer_id: int) -> Customer | None:
    """Row-lock a customer for the rest of the current transaction."""
    return lock_for_update(
        db.session.query(Customer).filter(Customer.id == customer_id)
    ).populate_existing().first()
