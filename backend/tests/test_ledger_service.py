# Overview: Pytest coverage for the customer ledger store and balance resolver.

"""
Customer Ledger Tests

Covers the append-only entry store: running balance snapshots, ordering,
compensating reversals, manual adjustments and the read models built on
top of them.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from shopbooks.errors import NotFoundError, ValidationError
from shopbooks.extensions import db
from shopbooks.models import LedgerEntry
from shopbooks.services import ledger_service
from shopbooks.services.concurrency import atomic, customer_lock


def _append(customer_id, credit=0, debit=0, transaction_type="adjustment"):
    with customer_lock(customer_id), atomic("test append"):
        return ledger_service.append_entry(
            customer_id=customer_id,
            transaction_type=transaction_type,
            credit_amount=credit,
            debit_amount=debit,
        )


class TestBalanceResolver:

    def test_no_entries_is_zero(self, db_session, customer_a):
        assert ledger_service.get_current_balance(customer_a.id) == Decimal("0.00")

    def test_balance_is_latest_snapshot(self, db_session, customer_a):
        _append(customer_a.id, credit=500)
        _append(customer_a.id, debit=120)
        _append(customer_a.id, credit="20.50")
        assert ledger_service.get_current_balance(customer_a.id) == Decimal("400.50")

    def test_read_is_idempotent(self, db_session, customer_a):
        _append(customer_a.id, credit=75)
        first = ledger_service.get_current_balance(customer_a.id)
        second = ledger_service.get_current_balance(customer_a.id)
        assert first == second == Decimal("75.00")
        assert db_session.query(LedgerEntry).count() == 1

    def test_ties_on_created_at_break_by_id(self, db_session, customer_a):
        first = _append(customer_a.id, credit=10)
        second = _append(customer_a.id, credit=5)
        # Force identical timestamps; id order must still decide the latest
        second.created_at = first.created_at
        db_session.commit()
        assert ledger_service.get_current_balance(customer_a.id) == Decimal("15.00")


class TestEntryStore:

    def test_snapshots_chain(self, db_session, customer_a):
        for credit, debit in [(100, 0), (0, 40), (250, 0), (0, 10)]:
            _append(customer_a.id, credit=credit, debit=debit)

        result = ledger_service.verify_customer_ledger(customer_a.id)
        assert result["ok"] is True
        assert result["entry_count"] == 4
        assert result["computed_balance"] == result["stored_balance"] == "300.00"

    def test_created_at_never_goes_backwards(self, db_session, customer_a):
        first = _append(customer_a.id, credit=10)
        first.created_at = first.created_at + timedelta(hours=1)
        db_session.commit()

        second = _append(customer_a.id, credit=5)
        assert second.created_at >= first.created_at
        assert ledger_service.get_current_balance(customer_a.id) == Decimal("15.00")

    def test_negative_amounts_rejected(self, db_session, customer_a):
        with pytest.raises(ValidationError):
            _append(customer_a.id, credit=-5)
        assert db_session.query(LedgerEntry).count() == 0

    def test_unknown_transaction_type_rejected(self, db_session, customer_a):
        with pytest.raises(ValidationError):
            _append(customer_a.id, credit=5, transaction_type="gift")

    def test_reversal_compensates_and_points_back(self, db_session, customer_a):
        original = _append(customer_a.id, credit=300)
        with customer_lock(customer_a.id), atomic("test reversal"):
            reversal = ledger_service.reverse_entry(original)

        assert reversal.transaction_type == "reversal"
        assert reversal.reverses_entry_id == original.id
        assert reversal.debit_amount == Decimal("300.00")
        assert ledger_service.get_current_balance(customer_a.id) == Decimal("0.00")
        # The original row is untouched
        db_session.refresh(original)
        assert original.remaining_balance == Decimal("300.00")

    def test_verify_reports_first_mismatch(self, db_session, customer_a):
        _append(customer_a.id, credit=100)
        broken = _append(customer_a.id, credit=50)
        _append(customer_a.id, debit=20)

        broken.remaining_balance = Decimal("999.00")
        db_session.commit()

        result = ledger_service.verify_customer_ledger(customer_a.id)
        assert result["ok"] is False
        assert result["first_mismatch"]["entry_id"] == broken.id
        assert result["first_mismatch"]["expected_balance"] == "150.00"


class TestAdjustments:

    def test_credit_adjustment(self, db_session, shop_a, customer_a):
        entry, balance = ledger_service.record_adjustment(
            customer_id=customer_a.id, shop_id=shop_a.id, credit_amount=Decimal("80")
        )
        assert entry.transaction_type == "adjustment"
        assert balance == Decimal("80.00")

    def test_exactly_one_side_required(self, db_session, shop_a, customer_a):
        with pytest.raises(ValidationError):
            ledger_service.record_adjustment(customer_id=customer_a.id, shop_id=shop_a.id)
        with pytest.raises(ValidationError):
            ledger_service.record_adjustment(
                customer_id=customer_a.id, shop_id=shop_a.id, credit_amount=5, debit_amount=5
            )

    def test_other_shop_customer_not_found(self, db_session, shop_a, customer_b):
        with pytest.raises(NotFoundError):
            ledger_service.record_adjustment(customer_id=customer_b.id, shop_id=shop_a.id, credit_amount=5)
        assert db.session.query(LedgerEntry).count() == 0


class TestLedgerReads:

    def test_customer_ledger_most_recent_first(self, db_session, shop_a, customer_a):
        _append(customer_a.id, credit=500)
        _append(customer_a.id, debit=200)

        ledger = ledger_service.get_customer_ledger(customer_a.id, shop_id=shop_a.id)
        balances = [e["remaining_balance"] for e in ledger["entries"]]
        assert balances == ["300.00", "500.00"]
        assert ledger["summary"]["total_credit"] == "500.00"
        assert ledger["summary"]["total_debit"] == "200.00"
        assert ledger["summary"]["closing_balance"] == "300.00"
        assert ledger["summary"]["current_balance"] == "300.00"

    def test_date_range_must_be_ordered(self, db_session, shop_a, customer_a):
        today = date.today()
        with pytest.raises(ValidationError):
            ledger_service.get_customer_ledger(
                customer_a.id, shop_id=shop_a.id,
                start_date=today, end_date=today - timedelta(days=1),
            )

    def test_summary_and_statistics(self, db_session, shop_a, customer_a):
        from shopbooks.services import customer_service

        other = customer_service.create_customer(shop_id=shop_a.id, name="Zubair Stores")
        _append(customer_a.id, credit=700)
        _append(other.id, debit=50)

        summaries = {s["customer_id"]: s for s in ledger_service.get_customers_summary(shop_id=shop_a.id)}
        assert summaries[customer_a.id]["current_balance"] == "700.00"
        assert summaries[customer_a.id]["transaction_count"] == 1
        assert summaries[other.id]["current_balance"] == "-50.00"

        stats = ledger_service.get_ledger_statistics(shop_id=shop_a.id)
        assert stats["total_customers"] == 2
        assert stats["customers_with_balance"] == 1
        assert stats["customers_in_credit"] == 1
        assert stats["total_receivable"] == "700.00"
        assert stats["total_advance"] == "50.00"
        assert stats["net_balance"] == "650.00"
        assert stats["total_entries"] == 2

        top = ledger_service.get_top_customers(shop_id=shop_a.id, limit=5)
        assert [t["customer_id"] for t in top] == [customer_a.id]
