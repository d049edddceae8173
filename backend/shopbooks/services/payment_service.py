# Overview: Service-layer operations for payments; creation, cheque status transitions, edits and deletes.

"""
Payment Coordinators

WHY: A cleared customer payment is a ledger debit and, for Bank/Cheque
payments into a known account, a bank cash_in. Those effects must exist
exactly while the payment is cleared.

STATUS MACHINE (pending | cleared | cancelled):
- Cash and Bank payments are created cleared; Cheques are created pending.
- -> cleared: debit the customer at the balance current at clearing time,
  credit the bank.
- cleared -> pending|cancelled: compensating ledger reversal, bank cash_out.
  The older payment flow only returned the bank side here and left the
  debit on the customer's ledger. That kept a balance reduction for a payment
  that no longer counts. Reversing both sides is deliberate.
- pending <-> cancelled: no effects.
- Same status: no-op.

Every coordinator holds customer_lock and bank_lock for the rows it moves
and runs inside concurrency.atomic.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..models import BankAccount, Customer, Payment
from ..time_utils import utcnow
from ..validation import clean_text, parse_amount, parse_date, parse_int, to_money
from . import bank_service, ledger_service, tenant_service
from .concurrency import atomic, bank_lock, customer_lock

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("pending", "cleared", "cancelled")

PAYMENT_METHODS = {
    "cash": "Cash",
    "bank": "Bank",
    "cheque": "Cheque",
    "check": "Cheque",
}

BANKED_METHODS = ("Bank", "Cheque")


def normalize_payment_method(value) -> str:
    method = PAYMENT_METHODS.get(str(value or "").strip().lower())
    if method is None:
        raise ValidationError("payment_method must be one of: Cash, Bank, Cheque")
    return method


def _initial_status(method: str) -> str:
    return "pending" if method == "Cheque" else "cleared"


def _check_label(payment: Payment) -> str:
    return f"Check #{payment.check_no or 'N/A'}"


# =============================================================================
# EFFECTS
# =============================================================================

def _apply_cleared_effects(payment: Payment, *, bank_description: str, user_id: int | None) -> None:
    """Post the ledger debit and bank credit of a cleared payment, skipping any already in place."""
    if payment.customer_id is not None and ledger_service.get_active_payment_entry(payment.id) is None:
        ledger_service.append_payment_ledger_entry(payment, created_by_user_id=user_id)

    if payment.payment_method in BANKED_METHODS and payment.bank_id is not None and not payment.bank_applied:
        bank_service.apply_bank_movement(
            payment.bank_id,
            to_money(payment.amount),
            description=bank_description,
            payment_id=payment.id,
        )
        payment.bank_applied = True


def _reverse_cleared_effects(payment: Payment, *, reason: str, user_id: int | None) -> None:
    """Compensate whatever effects of the payment are currently in place."""
    ledger_service.remove_ledger_entry_for_payment(
        payment,
        description=f"{reason} (PAY-{payment.id})",
        created_by_user_id=user_id,
    )

    if payment.bank_applied:
        bank_service.apply_bank_movement(
            payment.bank_id,
            -to_money(payment.amount),
            description=f"{reason} ({_check_label(payment)})" if payment.payment_method == "Cheque" else reason,
            payment_id=payment.id,
        )
        payment.bank_applied = False


def _balance_or_none(customer_id: int | None) -> Decimal | None:
    if customer_id is None:
        return None
    return ledger_service.get_current_balance(customer_id)


def _lock_payment(payment_id: int, *, shop_id: int, branch_id: int | None) -> Payment:
    payment = tenant_service.get_scoped(
        Payment, payment_id, shop_id=shop_id, branch_id=branch_id, for_update=True
    )
    if payment.customer_id is not None:
        ledger_service.lock_customer(payment.customer_id)
    return payment


# =============================================================================
# COORDINATORS
# =============================================================================

def create_payment(
    *,
    shop_id: int,
    branch_id: int | None = None,
    payment_method: str,
    amount,
    customer_id: int | None = None,
    bank_id: int | None = None,
    payment_date=None,
    description: str | None = None,
    check_no: str | None = None,
    check_date=None,
    created_by_user_id: int | None = None,
) -> tuple[Payment, Decimal | None]:
    """
    Record a payment.

    Returns (payment, customer balance) where the balance is None for
    payments not tied to a customer.
    """
    method = normalize_payment_method(payment_method)
    amount = parse_amount(amount, "amount", allow_zero=False)
    customer_id = parse_int(customer_id, "customer_id", required=False)
    bank_id = parse_int(bank_id, "bank_id", required=False)
    payment_date = parse_date(payment_date, "payment_date", required=False) or utcnow().date()
    check_date = parse_date(check_date, "check_date", required=False)

    if bank_id is not None and method not in BANKED_METHODS:
        raise ValidationError("bank_id only applies to Bank or Cheque payments")
    if customer_id is not None:
        customer = tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)
        if not customer.is_active:
            raise ValidationError(f"Customer {customer_id} is inactive")
    if bank_id is not None:
        tenant_service.get_scoped(BankAccount, bank_id, shop_id=shop_id, branch_id=branch_id, label="Bank account")

    status = _initial_status(method)

    with customer_lock(customer_id), bank_lock(bank_id), atomic("create payment"):
        if customer_id is not None:
            ledger_service.lock_customer(customer_id)

        payment = Payment(
            shop_id=shop_id,
            branch_id=branch_id,
            customer_id=customer_id,
            bank_id=bank_id,
            payment_method=method,
            status=status,
            amount=amount,
            description=clean_text(description, "description", max_length=255),
            check_no=clean_text(check_no, "check_no", max_length=64),
            check_date=check_date,
            payment_date=payment_date,
            bank_applied=False,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(payment)
        db.session.flush()

        if status == "cleared":
            _apply_cleared_effects(
                payment,
                bank_description=payment.description or f"Payment received via {method}",
                user_id=created_by_user_id,
            )
        balance = _balance_or_none(customer_id)

    logger.info("Payment %s created (%s, %s, %s)", payment.id, method, status, amount)
    return payment, balance


def create_cash_entry(
    *,
    shop_id: int,
    branch_id: int | None = None,
    amount,
    description: str | None = None,
    payment_date=None,
    created_by_user_id: int | None = None,
) -> Payment:
    """Cash received without a customer (counter sales, sundry income)."""
    payment, _ = create_payment(
        shop_id=shop_id,
        branch_id=branch_id,
        payment_method="Cash",
        amount=amount,
        description=description or "Cash entry",
        payment_date=payment_date,
        created_by_user_id=created_by_user_id,
    )
    return payment


def update_payment_status(
    payment_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    status: str,
    updated_by_user_id: int | None = None,
) -> tuple[Payment, Decimal | None]:
    """Move a payment through the status machine, applying or reversing its effects."""
    status = str(status or "").strip().lower()
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")

    payment = tenant_service.get_scoped(Payment, payment_id, shop_id=shop_id, branch_id=branch_id)
    if payment.status == status:
        return payment, _balance_or_none(payment.customer_id)

    with customer_lock(payment.customer_id), bank_lock(payment.bank_id), atomic("update payment status"):
        payment = _lock_payment(payment_id, shop_id=shop_id, branch_id=branch_id)
        old_status = payment.status

        if old_status != status:
            if status == "cleared":
                _apply_cleared_effects(
                    payment,
                    bank_description=(
                        f"Cheque cleared ({_check_label(payment)})"
                        if payment.payment_method == "Cheque"
                        else f"Payment received via {payment.payment_method}"
                    ),
                    user_id=updated_by_user_id,
                )
            elif old_status == "cleared":
                _reverse_cleared_effects(
                    payment,
                    reason=f"Payment status changed to {status}",
                    user_id=updated_by_user_id,
                )
            payment.status = status

        balance = _balance_or_none(payment.customer_id)

    logger.info("Payment %s status %s -> %s", payment_id, old_status, status)
    return payment, balance


def update_payment(
    payment_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    patch: dict,
    updated_by_user_id: int | None = None,
) -> tuple[Payment, Decimal | None]:
    """
    Edit payment details.

    Changing the amount of a cleared payment compensates its current effects
    and re-applies them at the new amount.
    """
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields to update")
    allowed = {"amount", "description", "check_no", "check_date", "payment_date"}
    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    changes = {}
    if "amount" in patch:
        changes["amount"] = parse_amount(patch["amount"], "amount", allow_zero=False)
    if "description" in patch:
        changes["description"] = clean_text(patch["description"], "description", max_length=255)
    if "check_no" in patch:
        changes["check_no"] = clean_text(patch["check_no"], "check_no", max_length=64)
    if "check_date" in patch:
        changes["check_date"] = parse_date(patch["check_date"], "check_date", required=False)
    if "payment_date" in patch:
        changes["payment_date"] = parse_date(patch["payment_date"], "payment_date")

    payment = tenant_service.get_scoped(Payment, payment_id, shop_id=shop_id, branch_id=branch_id)

    with customer_lock(payment.customer_id), bank_lock(payment.bank_id), atomic("update payment"):
        payment = _lock_payment(payment_id, shop_id=shop_id, branch_id=branch_id)
        amount_changed = "amount" in changes and changes["amount"] != to_money(payment.amount)

        if amount_changed and payment.status == "cleared":
            _reverse_cleared_effects(payment, reason="Payment amount changed", user_id=updated_by_user_id)

        for field, value in changes.items():
            setattr(payment, field, value)
        db.session.flush()

        if amount_changed and payment.status == "cleared":
            _apply_cleared_effects(
                payment,
                bank_description=f"Payment amount changed to {to_money(payment.amount)}",
                user_id=updated_by_user_id,
            )
        balance = _balance_or_none(payment.customer_id)

    logger.info("Payment %s updated (%s)", payment_id, ", ".join(sorted(changes)))
    return payment, balance


def delete_payment(
    payment_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    deleted_by_user_id: int | None = None,
) -> Decimal | None:
    """
    Delete a payment, compensating any ledger debit and bank credit it holds.

    Returns the customer's balance afterwards (None if no customer).
    """
    payment = tenant_service.get_scoped(Payment, payment_id, shop_id=shop_id, branch_id=branch_id)
    customer_id = payment.customer_id

    with customer_lock(customer_id), bank_lock(payment.bank_id), atomic("delete payment"):
        payment = _lock_payment(payment_id, shop_id=shop_id, branch_id=branch_id)
        _reverse_cleared_effects(payment, reason="Payment deleted", user_id=deleted_by_user_id)
        db.session.delete(payment)
        balance = _balance_or_none(customer_id)

    logger.info("Payment %s deleted", payment_id)
    return balance


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(payment_id: int, *, shop_id: int, branch_id: int | None = None) -> Payment:
    return tenant_service.get_scoped(Payment, payment_id, shop_id=shop_id, branch_id=branch_id)


def list_payments(
    *,
    shop_id: int,
    branch_id: int | None = None,
    customer_id: int | None = None,
    status: str | None = None,
    payment_method: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Payment], int]:
    query = tenant_service.scope_query(db.session.query(Payment), Payment, shop_id=shop_id, branch_id=branch_id)
    if customer_id is not None:
        query = query.filter(Payment.customer_id == customer_id)
    if status:
        query = query.filter(Payment.status == status)
    if payment_method:
        query = query.filter(Payment.payment_method == normalize_payment_method(payment_method))
    total = query.count()
    payments = (
        query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return payments, total


def get_customer_payments(customer_id: int, *, shop_id: int, branch_id: int | None = None) -> list[Payment]:
    tenant_service.get_scoped(Customer, customer_id, shop_id=shop_id, branch_id=branch_id)
    payments, _ = list_payments(shop_id=shop_id, branch_id=branch_id, customer_id=customer_id, limit=1000)
    return payments


def get_pending_cheques(*, shop_id: int, branch_id: int | None = None) -> list[Payment]:
    payments, _ = list_payments(
        shop_id=shop_id,
        branch_id=branch_id,
        status="pending",
        payment_method="Cheque",
        limit=1000,
    )
    return payments
