from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from ..validation import to_money


class Payment(db.Model):
    """
    Money received, optionally from a customer and optionally into a bank.

    STATUS:
    - pending: cheque awaiting clearance; no ledger or bank effect
    - cleared: ledger debited (when customer_id is set) and bank credited
      (when method is Bank/Cheque and bank_id is set)
    - cancelled: no effect

    Only the cleared state has effects, so every transition is expressed as
    "apply" or "reverse" of those effects.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    bank_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(16), nullable=False)  # Cash, Bank, Cheque
    status = db.Column(db.String(16), nullable=False, default="cleared", index=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    check_no = db.Column(db.String(64), nullable=True)
    check_date = db.Column(db.Date, nullable=True)
    payment_date = db.Column(db.Date, nullable=False)

    # True while the bank balance includes this payment's amount
    bank_applied = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    bank = db.relationship("BankAccount", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "bank_id": self.bank_id,
            "bank_code": self.bank.bank_code if self.bank else None,
            "payment_method": self.payment_method,
            "status": self.status,
            "amount": str(to_money(self.amount)),
            "description": self.description,
            "check_no": self.check_no,
            "check_date": to_iso_date(self.check_date),
            "payment_date": to_iso_date(self.payment_date),
            "bank_applied": self.bank_applied,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class BankAccount(db.Model):
    """
    Bank account with a running balance.

    Unlike the customer ledger, the balance is a stored counter. Every change
    goes through bank_service.apply_bank_movement, which serializes writers
    per bank and logs a BankTransaction row.
    """
    __tablename__ = "bank_accounts"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "bank_code", name="uq_bank_accounts_shop_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    bank_code = db.Column(db.String(64), nullable=False)
    account_title = db.Column(db.String(255), nullable=True)
    initial_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "branch_id": self.branch_id,
            "bank_code": self.bank_code,
            "account_title": self.account_title,
            "initial_balance": str(to_money(self.initial_balance)),
            "balance": str(to_money(self.balance)),
            "created_at": to_utc_z(self.created_at),
        }


class BankTransaction(db.Model):
    """Append-only log of bank balance movements (cash_in / cash_out)."""
    __tablename__ = "bank_transactions"
    __table_args__ = (
        db.Index("ix_bank_transactions_bank_created", "bank_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bank_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, nullable=True, index=True)

    amount = db.Column(db.Numeric(15, 2), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # cash_in, cash_out
    description = db.Column(db.String(255), nullable=True)
    balance_after = db.Column(db.Numeric(15, 2), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False)

    bank = db.relationship("BankAccount", backref=db.backref("transactions", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank_id": self.bank_id,
            "payment_id": self.payment_id,
            "amount": str(to_money(self.amount)),
            "type": self.type,
            "description": self.description,
            "balance_after": str(to_money(self.balance_after)),
            "created_at": to_utc_z(self.created_at),
        }
