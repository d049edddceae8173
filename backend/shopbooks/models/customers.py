from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import to_money


class Customer(db.Model):
    """
    Customer account holder.

    MULTI-TENANT: Scoped to a shop, optionally to a branch.

    The balance is never stored here. It is read from the customer's most
    recent ledger entry (see ledger_service.get_current_balance).
    Customers are deactivated, never hard-deleted: the ledger is an audit
    trail that outlives the customer record.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    opening_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "address": self.address,
            "phone_number": self.phone_number,
            "opening_balance": str(to_money(self.opening_balance)),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LedgerEntry(db.Model):
    """
    Append-only customer ledger.

    TRANSACTION TYPES:
    - invoice: credit raised by an invoice
    - payment: debit from a cleared customer payment
    - adjustment: manual credit/debit (including opening balances)
    - reversal: compensates exactly one earlier entry (reverses_entry_id)

    INVARIANTS:
    - Rows are never updated or deleted.
    - Ordered by (created_at, id); created_at never decreases per customer.
    - remaining_balance == previous remaining_balance + credit - debit.

    invoice_id / payment_id are plain indexed columns rather than foreign
    keys, so the history survives deletion of the invoice or payment.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_customer_created_id", "customer_id", "created_at", "id"),
        db.CheckConstraint("credit_amount >= 0", name="ck_ledger_credit_non_negative"),
        db.CheckConstraint("debit_amount >= 0", name="ck_ledger_debit_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, nullable=True, index=True)
    payment_id = db.Column(db.Integer, nullable=True, index=True)

    credit_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    debit_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    remaining_balance = db.Column(db.Numeric(15, 2), nullable=False)

    description = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)

    reverses_entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)

    customer = db.relationship("Customer", backref=db.backref("ledger_entries", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "invoice_id": self.invoice_id,
            "payment_id": self.payment_id,
            "credit_amount": str(to_money(self.credit_amount)),
            "debit_amount": str(to_money(self.debit_amount)),
            "remaining_balance": str(to_money(self.remaining_balance)),
            "description": self.description,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "transaction_type": self.transaction_type,
            "reverses_entry_id": self.reverses_entry_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
