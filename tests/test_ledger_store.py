"""
Ledger store: append semantics, replay verification, immutability and
serialisation of concurrent appends to one box.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from threading import Barrier, Lock, Thread

import pytest

from cashbox.exceptions import (
    ImmutableLedgerEntryError,
    InsufficientBalanceError,
    MoneyBoxNotFoundError,
    ValidationError,
)
from cashbox.models.cashbook import MoneyBox, MoneyBoxTransaction
from cashbox.services.ledger_store import (
    CASH_BOX,
    CREDIT_TYPES,
    DEBIT_TYPES,
    MONEY_BOX,
    LedgerStore,
    direction,
)


class TestDirection:
    def test_credit_and_debit_sets_are_disjoint(self):
        assert not CREDIT_TYPES & DEBIT_TYPES

    @pytest.mark.parametrize("tx_type", ["deposit", "sale", "transfer_in", "expense_reversal", "opening"])
    def test_credit_types(self, tx_type):
        assert direction(tx_type) == 1

    @pytest.mark.parametrize("tx_type", ["withdraw", "withdrawal", "expense", "purchase", "transfer_out"])
    def test_debit_types(self, tx_type):
        assert direction(tx_type) == -1

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            direction("gift")


class TestAppend:
    def test_withdraw_moves_balance_and_writes_one_row(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)

        with session_factory() as db:
            store = LedgerStore(db)
            before = store.count(MONEY_BOX, box_id)
            row = store.append(MONEY_BOX, box_id, "withdraw", "30", user_id=1)
            db.commit()

            assert row.balance_before == Decimal("100.00")
            assert row.balance_after == Decimal("70.00")
            assert store.count(MONEY_BOX, box_id) == before + 1
            assert db.get(MoneyBox, box_id).amount == Decimal("70.00")

    def test_overdraw_is_rejected_and_writes_nothing(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            LedgerStore(db).append(MONEY_BOX, box_id, "withdraw", 30)
            db.commit()

        with session_factory() as db:
            store = LedgerStore(db)
            count = store.count(MONEY_BOX, box_id)
            with pytest.raises(InsufficientBalanceError) as exc_info:
                store.append(MONEY_BOX, box_id, "withdraw", 1000)
            db.rollback()

            assert exc_info.value.available_balance == Decimal("70.00")
            assert exc_info.value.required_amount == Decimal("1000.00")
            assert exc_info.value.extra()["moneyBoxName"] == "Safe"
            assert store.count(MONEY_BOX, box_id) == count
            assert store.current_balance(MONEY_BOX, box_id) == Decimal("70.00")

    @pytest.mark.parametrize("amount", [0, -5, "0.001"])
    def test_non_positive_amount_is_rejected(self, session_factory, make_money_box, amount):
        box_id = make_money_box("Safe", 10)
        with session_factory() as db:
            with pytest.raises(ValidationError):
                LedgerStore(db).append(MONEY_BOX, box_id, "deposit", amount)

    def test_amounts_are_rounded_to_cents(self, session_factory, make_money_box):
        box_id = make_money_box("Safe")
        with session_factory() as db:
            row = LedgerStore(db).append(MONEY_BOX, box_id, "deposit", "10.005")
            db.commit()
            assert row.amount == Decimal("10.01")

    def test_unknown_box(self, session_factory):
        with session_factory() as db:
            with pytest.raises(MoneyBoxNotFoundError):
                LedgerStore(db).append(MONEY_BOX, 9999, "deposit", 1)

    def test_allow_negative_lets_balance_drop_below_zero(self, session_factory, make_money_box):
        box_id = make_money_box("Overdraft")
        with session_factory() as db:
            row = LedgerStore(db).append(MONEY_BOX, box_id, "withdraw", 5, allow_negative=True)
            db.commit()
            assert row.balance_after == Decimal("-5.00")

    def test_money_box_rows_keep_description_in_notes(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 10)
        with session_factory() as db:
            row = LedgerStore(db).append(MONEY_BOX, box_id, "withdraw", 1, description="petty cash")
            db.commit()
            assert row.notes == "petty cash"


class TestReads:
    def test_history_is_newest_first_with_total(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            store = LedgerStore(db)
            for amt in (1, 2, 3):
                store.append(MONEY_BOX, box_id, "withdraw", amt)
            db.commit()

            rows, total = store.history(MONEY_BOX, box_id, limit=2)
            assert total == 4
            assert [r.amount for r in rows] == [Decimal("3.00"), Decimal("2.00")]

            rows, _ = store.history(MONEY_BOX, box_id, limit=2, offset=2)
            assert [r.transaction_type for r in rows] == ["withdraw", "deposit"]

    def test_history_between_filters_on_created_at(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        now = datetime.utcnow()
        with session_factory() as db:
            store = LedgerStore(db)
            rows, total = store.history_between(MONEY_BOX, box_id, now - timedelta(days=1), now + timedelta(days=1), 50)
            assert total == 1 and len(rows) == 1

            rows, total = store.history_between(MONEY_BOX, box_id, now + timedelta(days=1), None, 50)
            assert total == 0 and rows == []

    def test_empty_box_balance_is_zero(self, session_factory, make_money_box):
        box_id = make_money_box("Empty")
        with session_factory() as db:
            assert LedgerStore(db).current_balance(MONEY_BOX, box_id) == Decimal("0.00")


class TestVerify:
    def test_replay_matches_cached_balance(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            store = LedgerStore(db)
            store.append(MONEY_BOX, box_id, "withdraw", 30)
            store.append(MONEY_BOX, box_id, "transfer_in", "12.50")
            db.commit()

            result = store.verify(MONEY_BOX, box_id)
            assert result["ok"] is True
            assert result["entries"] == 3
            assert result["ledger_balance"] == Decimal("82.50")
            assert result["cached_balance"] == Decimal("82.50")

    def test_drifted_cached_balance_is_reported(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            db.get(MoneyBox, box_id).amount = Decimal("999")
            db.commit()

            result = LedgerStore(db).verify(MONEY_BOX, box_id)
            assert result["ok"] is False
            assert result["broken_entries"] == []
            assert result["ledger_balance"] == Decimal("100.00")


class TestImmutability:
    def test_ledger_row_cannot_be_updated(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            row = db.query(MoneyBoxTransaction).filter_by(box_id=box_id).one()
            row.amount = Decimal("1")
            with pytest.raises(ImmutableLedgerEntryError) as exc_info:
                db.flush()
            assert exc_info.value.operation == "update"
            db.rollback()

    def test_ledger_row_cannot_be_deleted(self, session_factory, make_money_box):
        box_id = make_money_box("Safe", 100)
        with session_factory() as db:
            row = db.query(MoneyBoxTransaction).filter_by(box_id=box_id).one()
            db.delete(row)
            with pytest.raises(ImmutableLedgerEntryError):
                db.flush()
            db.rollback()


class TestConcurrency:
    THREADS = 8

    def _run(self, session_factory, box_id, amount):
        barrier = Barrier(self.THREADS)
        lock = Lock()
        results = {"ok": 0, "rejected": 0, "errors": []}

        def worker():
            barrier.wait()
            try:
                with session_factory() as db:
                    LedgerStore(db).append(MONEY_BOX, box_id, "withdraw", amount)
                    db.commit()
                with lock:
                    results["ok"] += 1
            except InsufficientBalanceError:
                with lock:
                    results["rejected"] += 1
            except Exception as exc:  # surfaced through the assertion below
                with lock:
                    results["errors"].append(exc)

        threads = [Thread(target=worker) for _ in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_parallel_appends_never_share_a_previous_balance(self, session_factory, make_money_box):
        box_id = make_money_box("Busy", 1000)
        results = self._run(session_factory, box_id, 10)

        assert results["errors"] == []
        assert results["ok"] == self.THREADS
        with session_factory() as db:
            rows = db.query(MoneyBoxTransaction).filter_by(transaction_type="withdraw", box_id=box_id).all()
            afters = [r.balance_after for r in rows]
            assert len(set(afters)) == len(afters) == self.THREADS
            assert LedgerStore(db).verify(MONEY_BOX, box_id)["ok"] is True
            assert db.get(MoneyBox, box_id).amount == Decimal("920.00")

    def test_parallel_overdraw_admits_only_what_the_balance_covers(self, session_factory, make_money_box):
        box_id = make_money_box("Thin", 30)
        results = self._run(session_factory, box_id, 10)

        assert results["errors"] == []
        assert results["ok"] == 3
        assert results["rejected"] == self.THREADS - 3
        with session_factory() as db:
            assert LedgerStore(db).current_balance(MONEY_BOX, box_id) == Decimal("0.00")


def test_cash_box_kind_uses_user_column(session_factory, users):
    from cashbox.models.cashbook import CashBox

    with session_factory() as db:
        box = CashBox(user_id=users["cashier"], name="till", initial_amount=0, current_amount=0, status="open")
        db.add(box)
        db.flush()
        row = LedgerStore(db).append(CASH_BOX, box.id, "sale", 25, user_id=users["cashier"], description="sale #1")
        db.commit()
        assert row.user_id == users["cashier"]
        assert row.description == "sale #1"
        assert box.current_amount == Decimal("25.00")
