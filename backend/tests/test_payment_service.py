# Overview: Pytest coverage for payment status transitions, bank effects and deletes.

from decimal import Decimal

import pytest

from shopbooks.errors import NotFoundError, ValidationError
from shopbooks.models import BankAccount, BankTransaction, LedgerEntry
from shopbooks.services import bank_service, invoice_service, ledger_service, payment_service


def _bank_balance(db_session, bank):
    db_session.expire_all()
    return db_session.get(BankAccount, bank.id).balance


@pytest.fixture
def invoiced_customer(db_session, shop_a, customer_a):
    invoice_service.create_invoice(
        shop_id=shop_a.id,
        customer_id=customer_a.id,
        reference_number="A-0001",
        invoice_date="2026-10-01",
        items=[{"item_name": "Cement", "quantity": 10, "rate": 50}],
    )
    return customer_a


class TestCreatePayment:

    def test_method_normalization(self):
        assert payment_service.normalize_payment_method("check") == "Cheque"
        assert payment_service.normalize_payment_method(" CASH ") == "Cash"
        with pytest.raises(ValidationError):
            payment_service.normalize_payment_method("crypto")

    def test_cash_clears_immediately(self, db_session, shop_a, invoiced_customer):
        payment, balance = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id, payment_method="Cash", amount=200
        )
        assert payment.status == "cleared"
        assert balance == Decimal("300.00")
        assert ledger_service.get_active_payment_entry(payment.id).reference_number == f"PAY-{payment.id}"

    def test_bank_payment_credits_bank(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id,
            payment_method="Bank", amount=150, bank_id=bank_a.id,
        )
        assert payment.bank_applied is True
        assert _bank_balance(db_session, bank_a) == Decimal("1150.00")

    def test_bank_id_rejected_for_cash(self, db_session, shop_a, invoiced_customer, bank_a):
        with pytest.raises(ValidationError):
            payment_service.create_payment(
                shop_id=shop_a.id, customer_id=invoiced_customer.id,
                payment_method="Cash", amount=10, bank_id=bank_a.id,
            )

    def test_cash_entry_without_customer(self, db_session, shop_a):
        payment = payment_service.create_cash_entry(shop_id=shop_a.id, amount="45.00")
        assert payment.customer_id is None
        assert payment.status == "cleared"
        assert db_session.query(LedgerEntry).count() == 0

    def test_zero_amount_rejected(self, db_session, shop_a, invoiced_customer):
        with pytest.raises(ValidationError):
            payment_service.create_payment(
                shop_id=shop_a.id, customer_id=invoiced_customer.id, payment_method="Cash", amount=0
            )


class TestChequeLifecycle:

    def _cheque(self, shop, customer, bank, amount=200):
        payment, balance = payment_service.create_payment(
            shop_id=shop.id, customer_id=customer.id, payment_method="Cheque",
            amount=amount, bank_id=bank.id, check_no="000123",
        )
        return payment, balance

    def test_pending_cheque_moves_nothing(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, balance = self._cheque(shop_a, invoiced_customer, bank_a)
        assert payment.status == "pending"
        assert balance == Decimal("500.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")
        assert [p.id for p in payment_service.get_pending_cheques(shop_id=shop_a.id)] == [payment.id]

    def test_clearing_applies_both_effects(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        payment, balance = payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")

        assert balance == Decimal("300.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1200.00")
        txn = db_session.query(BankTransaction).filter_by(payment_id=payment.id).one()
        assert txn.type == "cash_in"
        assert txn.description == "Cheque cleared (Check #000123)"

    def test_bounce_after_clearing_reverses(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")
        payment, balance = payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cancelled")

        assert balance == Decimal("500.00")
        assert payment.bank_applied is False
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")
        assert ledger_service.get_active_payment_entry(payment.id) is None
        assert ledger_service.verify_customer_ledger(invoiced_customer.id)["ok"]

    def test_back_to_pending_reverses_debit_and_reclears(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")

        payment, balance = payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="pending")
        assert balance == Decimal("500.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")

        payment, balance = payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")
        assert balance == Decimal("300.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1200.00")
        assert ledger_service.get_active_payment_entry(payment.id).debit_amount == Decimal("200.00")
        assert ledger_service.verify_customer_ledger(invoiced_customer.id)["ok"]

    def test_same_status_is_noop(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")
        before = db_session.query(LedgerEntry).count()
        payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cleared")
        assert db_session.query(LedgerEntry).count() == before
        assert _bank_balance(db_session, bank_a) == Decimal("1200.00")

    def test_pending_to_cancelled_has_no_effects(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="cancelled")
        assert db_session.query(LedgerEntry).filter(LedgerEntry.payment_id == payment.id).count() == 0
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")

    def test_unknown_status_rejected(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = self._cheque(shop_a, invoiced_customer, bank_a)
        with pytest.raises(ValidationError):
            payment_service.update_payment_status(payment.id, shop_id=shop_a.id, status="bounced")


class TestEditAndDelete:

    def test_amount_change_on_cleared_payment(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id,
            payment_method="Bank", amount=100, bank_id=bank_a.id,
        )
        payment, balance = payment_service.update_payment(
            payment.id, shop_id=shop_a.id, patch={"amount": "250"}
        )
        assert balance == Decimal("250.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1250.00")
        assert ledger_service.verify_customer_ledger(invoiced_customer.id)["ok"]

    def test_disallowed_field_rejected(self, db_session, shop_a, invoiced_customer):
        payment, _ = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id, payment_method="Cash", amount=100
        )
        with pytest.raises(ValidationError):
            payment_service.update_payment(payment.id, shop_id=shop_a.id, patch={"customer_id": 7})

    def test_delete_cleared_payment(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id,
            payment_method="Bank", amount=100, bank_id=bank_a.id,
        )
        balance = payment_service.delete_payment(payment.id, shop_id=shop_a.id)

        assert balance == Decimal("500.00")
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")
        with pytest.raises(NotFoundError):
            payment_service.get_payment(payment.id, shop_id=shop_a.id)

    def test_delete_pending_cheque_touches_nothing(self, db_session, shop_a, invoiced_customer, bank_a):
        payment, _ = payment_service.create_payment(
            shop_id=shop_a.id, customer_id=invoiced_customer.id,
            payment_method="Cheque", amount=100, bank_id=bank_a.id,
        )
        entries_before = db_session.query(LedgerEntry).count()
        payment_service.delete_payment(payment.id, shop_id=shop_a.id)
        assert db_session.query(LedgerEntry).count() == entries_before
        assert _bank_balance(db_session, bank_a) == Decimal("1000.00")


class TestBankAccounts:

    def test_manual_transactions(self, db_session, shop_a, bank_a):
        bank_service.create_bank_transaction(bank_a.id, shop_id=shop_a.id, amount=Decimal("300"), type="cash_in")
        txn = bank_service.create_bank_transaction(bank_a.id, shop_id=shop_a.id, amount=Decimal("50"), type="cash_out")
        assert txn.balance_after == Decimal("1250.00")
        assert [t.type for t in bank_service.list_bank_transactions(bank_a.id, shop_id=shop_a.id)] == [
            "cash_out", "cash_in",
        ]

    def test_invalid_type(self, db_session, shop_a, bank_a):
        with pytest.raises(ValidationError):
            bank_service.create_bank_transaction(bank_a.id, shop_id=shop_a.id, amount=Decimal("1"), type="refund")
