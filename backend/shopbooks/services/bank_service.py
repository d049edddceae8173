# Overview: Service-layer operations for bank accounts; serialized balance movements with a transaction log.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import BankAccount, BankTransaction
from ..time_utils import utcnow
from ..validation import clean_text, to_money
from . import tenant_service
from .concurrency import atomic, bank_lock, lock_for_update

logger = logging.getLogger(__name__)

BANK_TRANSACTION_TYPES = ("cash_in", "cash_out")


def apply_bank_movement(
    bank_id: int,
    amount: Decimal,
    *,
    description: str | None = None,
    payment_id: int | None = None,
) -> BankTransaction:
    """
    Move a bank balance by a signed amount and log the movement.

    Caller must hold bank_lock(bank_id) and own the transaction. The row is
    re-read with FOR UPDATE (populate_existing) so a stale in-session copy
    can never be the base of the new balance.
    """
    amount = to_money(amount)
    if amount == 0:
        raise ValidationError("Bank movement amount must be non-zero")

    bank = lock_for_update(
        db.session.query(BankAccount).filter(BankAccount.id == bank_id)
    ).populate_existing().first()
    if bank is None:
        raise ValidationError(f"Bank account {bank_id} does not exist")

    bank.balance = to_money(bank.balance) + amount
    txn = BankTransaction(
        bank_id=bank.id,
        payment_id=payment_id,
        amount=abs(amount),
        type="cash_in" if amount > 0 else "cash_out",
        description=description,
        balance_after=bank.balance,
        created_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def create_bank_account(
    *,
    shop_id: int,
    branch_id: int | None = None,
    bank_code: str,
    account_title: str | None = None,
    initial_balance: Decimal | None = None,
) -> BankAccount:
    bank_code = clean_text(bank_code, "bank_code", required=True, max_length=64)
    initial = to_money(initial_balance or 0)

    existing = db.session.query(BankAccount).filter_by(shop_id=shop_id, bank_code=bank_code).first()
    if existing:
        raise ConflictError(f"Bank account '{bank_code}' already exists")

    with atomic("create bank account"):
        bank = BankAccount(
            shop_id=shop_id,
            branch_id=branch_id,
            bank_code=bank_code,
            account_title=clean_text(account_title, "account_title", max_length=255),
            initial_balance=initial,
            balance=initial,
        )
        db.session.add(bank)
        db.session.flush()

    logger.info("Bank account %s created", bank.id)
    return bank


def get_bank_account(bank_id: int, *, shop_id: int, branch_id: int | None = None) -> BankAccount:
    return tenant_service.get_scoped(BankAccount, bank_id, shop_id=shop_id, branch_id=branch_id, label="Bank account")


def list_bank_accounts(*, shop_id: int, branch_id: int | None = None) -> list[BankAccount]:
    query = tenant_service.scope_query(db.session.query(BankAccount), BankAccount, shop_id=shop_id, branch_id=branch_id)
    return query.order_by(BankAccount.bank_code).all()


def list_bank_transactions(bank_id: int, *, shop_id: int, branch_id: int | None = None, limit: int = 100) -> list[BankTransaction]:
    bank = get_bank_account(bank_id, shop_id=shop_id, branch_id=branch_id)
    return (
        bank.transactions
        .order_by(BankTransaction.created_at.desc(), BankTransaction.id.desc())
        .limit(limit)
        .all()
    )


def create_bank_transaction(
    bank_id: int,
    *,
    shop_id: int,
    branch_id: int | None = None,
    amount: Decimal,
    type: str,
    description: str | None = None,
) -> BankTransaction:
    """Manual cash_in / cash_out against a bank account."""
    if type not in BANK_TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(BANK_TRANSACTION_TYPES)}")
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("amount must be greater than 0")

    get_bank_account(bank_id, shop_id=shop_id, branch_id=branch_id)
    signed = amount if type == "cash_in" else -amount

    with bank_lock(bank_id), atomic("record bank transaction"):
        txn = apply_bank_movement(
            bank_id,
            signed,
            description=clean_text(description, "description", max_length=255) or f"Manual {type}",
        )

    logger.info("Bank %s %s of %s recorded", bank_id, type, amount)
    return txn
