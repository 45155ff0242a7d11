"""Cash box lifecycle, manual movements, till <-> money box transfers, admin views."""

from decimal import Decimal

import pytest

from cashbox.config import settings as app_settings
from cashbox.models.cashbook import CashBox, CashBoxTransaction
from cashbox.services.ledger_store import CASH_BOX, LedgerStore
from cashbox.services.money_boxes import MoneyBoxService


@pytest.fixture
def daily_box_id(session_factory):
    with session_factory() as db:
        return MoneyBoxService(db).get_box_by_name(app_settings.DAILY_MONEY_BOX_NAME).id


def _types(session_factory, till):
    with session_factory() as db:
        return [
            (r.transaction_type, r.amount)
            for r in db.query(CashBoxTransaction).filter_by(cash_box_id=till).order_by(CashBoxTransaction.id)
        ]


class TestLifecycle:
    def test_no_box_before_opening(self, cashier_client):
        assert cashier_client.get("/api/cash-box/my-cash-box").json()["data"] is None
        summary = cashier_client.get("/api/cash-box/my-summary").json()["data"]
        assert summary["has_open_cash_box"] is False
        assert summary["current_amount"] == 0.0

    def test_open_books_opening_row(self, cashier_client, session_factory):
        resp = cashier_client.post("/api/cash-box/open", json={"opening_amount": 100, "notes": "morning"})
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["status"] == "open"
        assert data["initial_amount"] == 100.0
        assert data["current_amount"] == 100.0
        assert data["name"].startswith("Cashier Test")
        assert _types(session_factory, data["id"]) == [("opening", Decimal("100.00"))]

    def test_open_with_zero_writes_no_row(self, cashier_client, open_till, session_factory):
        till = open_till(cashier_client, 0)
        assert _types(session_factory, till) == []

    def test_second_open_is_refused(self, cashier_client, open_till):
        open_till(cashier_client, 10)
        resp = cashier_client.post("/api/cash-box/open", json={"opening_amount": 10})
        assert resp.status_code == 409
        assert resp.json()["error"] == "CASH_BOX_ALREADY_OPEN"

    def test_default_opening_amount_from_settings(self, cashier_client):
        resp = cashier_client.put("/api/cash-box/my-settings", json={"default_opening_amount": 75})
        assert resp.json()["data"]["default_opening_amount"] == 75.0

        data = cashier_client.post("/api/cash-box/open", json={}).json()["data"]
        assert data["initial_amount"] == 75.0

    def test_close_books_counted_difference(self, cashier_client, open_till, session_factory, cash_balance):
        till = open_till(cashier_client, 100)
        resp = cashier_client.post("/api/cash-box/close", json={"closingAmount": 90})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "closed"
        assert _types(session_factory, till)[-1] == ("adjustment_out", Decimal("10.00"))
        assert cash_balance(till) == Decimal("90.00")

        resp = cashier_client.post("/api/cash-box/close", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "NO_OPEN_CASH_BOX"

    def test_close_with_surplus(self, cashier_client, open_till, session_factory):
        till = open_till(cashier_client, 100)
        cashier_client.post("/api/cash-box/close", json={"closing_amount": "100.50"})
        assert _types(session_factory, till)[-1] == ("adjustment_in", Decimal("0.50"))

    def test_close_without_count_writes_nothing(self, cashier_client, open_till, session_factory):
        till = open_till(cashier_client, 100)
        cashier_client.post("/api/cash-box/close", json={})
        assert _types(session_factory, till) == [("opening", Decimal("100.00"))]

    def test_reopen_after_close(self, cashier_client, open_till):
        first = open_till(cashier_client, 10)
        cashier_client.post("/api/cash-box/close", json={})
        second = open_till(cashier_client, 10)
        assert first != second

        history = cashier_client.get("/api/cash-box/my-history").json()["data"]
        assert history["total"] == 2
        assert {b["id"] for b in history["cash_boxes"]} == {first, second}

    def test_summary_counts_todays_movements(self, cashier_client, open_till):
        open_till(cashier_client, 100)
        cashier_client.post("/api/sales", json={"total_amount": 25})
        summary = cashier_client.get("/api/cash-box/my-summary").json()["data"]
        assert summary["has_open_cash_box"] is True
        assert summary["current_amount"] == 125.0
        assert summary["today_transactions"] == 2
        assert summary["today_amount"] == 125.0


class TestManualTransactions:
    def test_deposit_and_withdrawal(self, cashier_client, open_till, cash_balance):
        till = open_till(cashier_client, 50)
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "deposit", "amount": 20})
        assert resp.status_code == 200
        assert resp.json()["data"]["transaction_type"] == "deposit"
        cashier_client.post("/api/cash-box/manual-transaction", json={"transaction_type": "withdrawal", "amount": 30})
        assert cash_balance(till) == Decimal("40.00")

    def test_adjustment_sets_the_balance(self, cashier_client, open_till, cash_balance, session_factory):
        till = open_till(cashier_client, 50)
        cashier_client.post("/api/cash-box/manual-transaction", json={"type": "adjustment", "amount": 42})
        assert cash_balance(till) == Decimal("42.00")
        assert _types(session_factory, till)[-1] == ("adjustment_out", Decimal("8.00"))

    def test_withdrawal_beyond_balance(self, cashier_client, open_till, cash_balance):
        till = open_till(cashier_client, 50)
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "withdrawal", "amount": 80})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INSUFFICIENT_BALANCE"
        assert resp.json()["availableBalance"] == 50.0
        assert cash_balance(till) == Decimal("50.00")

    def test_negative_balance_allowed_by_setting(self, cashier_client, open_till, cash_balance):
        till = open_till(cashier_client, 50)
        cashier_client.put("/api/cash-box/my-settings", json={"allow_negative_balance": True})
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "withdrawal", "amount": 80})
        assert resp.status_code == 200
        assert cash_balance(till) == Decimal("-30.00")

    def test_withdrawal_limit(self, cashier_client, open_till):
        open_till(cashier_client, 500)
        cashier_client.put("/api/cash-box/my-settings", json={"max_withdrawal_amount": 100})
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "withdrawal", "amount": 150})
        assert resp.status_code == 400
        assert resp.json()["field"] == "amount"

    def test_unknown_kind(self, cashier_client, open_till):
        open_till(cashier_client, 10)
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "sale", "amount": 1})
        assert resp.status_code == 400

    def test_requires_open_box(self, cashier_client):
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "deposit", "amount": 1})
        assert resp.json()["error"] == "NO_OPEN_CASH_BOX"


class TestTransfers:
    def test_to_and_from_daily_box(self, cashier_client, open_till, cash_balance, money_balance, daily_box_id):
        till = open_till(cashier_client, 100)

        resp = cashier_client.post("/api/cash-box/transfer-to-daily-money-box", json={"amount": 40})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["cashBoxTransaction"]["transaction_type"] == "withdrawal"
        assert data["moneyBoxTransaction"]["type"] == "transfer_from_cash_box"
        assert cash_balance(till) == Decimal("60.00")
        assert money_balance(daily_box_id) == Decimal("40.00")

        resp = cashier_client.post("/api/cash-box/transfer-from-daily-money-box", json={"amount": 15})
        assert resp.status_code == 200
        assert resp.json()["data"]["moneyBoxTransaction"]["type"] == "transfer_to_cashier"
        assert cash_balance(till) == Decimal("75.00")
        assert money_balance(daily_box_id) == Decimal("25.00")

    def test_from_daily_box_beyond_its_balance_moves_nothing(self, cashier_client, open_till, cash_balance,
                                                             money_balance, daily_box_id):
        till = open_till(cashier_client, 100)
        resp = cashier_client.post("/api/cash-box/transfer-from-daily-money-box", json={"amount": 15})
        assert resp.status_code == 400
        assert cash_balance(till) == Decimal("100.00")
        assert money_balance(daily_box_id) == Decimal("0.00")

    def test_to_named_box(self, cashier_client, open_till, make_money_box, money_balance):
        open_till(cashier_client, 100)
        box_id = make_money_box("Safe")
        resp = cashier_client.post(
            "/api/cash-box/transfer-to-money-box", json={"amount": 30, "moneyBoxName": "Safe"}
        )
        assert resp.status_code == 200
        assert money_balance(box_id) == Decimal("30.00")

    def test_to_unknown_box(self, cashier_client, open_till, cash_balance):
        till = open_till(cashier_client, 100)
        resp = cashier_client.post(
            "/api/cash-box/transfer-to-money-box", json={"amount": 30, "money_box_name": "Nowhere"}
        )
        assert resp.status_code == 404
        assert cash_balance(till) == Decimal("100.00")


class TestAccess:
    def test_other_users_box_is_forbidden(self, cashier_client, cashier2_client, admin_client, open_till):
        till = open_till(cashier_client, 10)
        assert cashier2_client.get(f"/api/cash-box/transactions/{till}").status_code == 403
        assert admin_client.get(f"/api/cash-box/transactions/{till}").status_code == 200

    def test_report_totals(self, cashier_client, open_till):
        till = open_till(cashier_client, 100)
        cashier_client.post("/api/sales", json={"total_amount": 20})
        cashier_client.post("/api/cash-box/manual-transaction", json={"type": "withdrawal", "amount": 5})

        data = cashier_client.get(f"/api/cash-box/report/{till}").json()["data"]
        assert data["total"] == 3
        assert data["total_credits"] == 120.0
        assert data["total_debits"] == 5.0
        assert data["net"] == 115.0
        assert data["current_balance"] == 115.0

    def test_transactions_of_unknown_box(self, cashier_client):
        assert cashier_client.get("/api/cash-box/transactions/999").status_code == 404


class TestAdmin:
    def test_open_boxes_listing(self, cashier_client, cashier2_client, admin_client, open_till):
        open_till(cashier_client, 10)
        open_till(cashier2_client, 20)
        assert cashier_client.get("/api/cash-box/admin/open-cash-boxes").status_code == 403

        data = admin_client.get("/api/cash-box/admin/open-cash-boxes").json()["data"]
        assert {b["user_name"] for b in data} == {"Cashier Test", "Second Cashier"}

    def test_box_detail_includes_verification(self, cashier_client, admin_client, open_till):
        till = open_till(cashier_client, 10)
        cashier_client.post("/api/sales", json={"total_amount": 5})
        data = admin_client.get(f"/api/cash-box/admin/cash-box/{till}").json()["data"]
        assert data["verification"]["ok"] is True
        assert data["verification"]["ledger_balance"] == 15.0

    def test_force_close_moves_balance_to_money_box(self, cashier_client, admin_client, open_till,
                                                    make_money_box, money_balance, cash_balance):
        till = open_till(cashier_client, 100)
        box_id = make_money_box("Safe")

        resp = admin_client.post(
            f"/api/cash-box/admin/force-close/{till}", json={"reason": "shift over", "moneyBoxId": box_id}
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["cash_box"]["status"] == "closed"
        assert data["transferred_amount"] == 100.0
        assert data["money_box"]["id"] == box_id
        assert money_balance(box_id) == Decimal("100.00")
        assert cash_balance(till) == Decimal("0.00")

        resp = admin_client.post(f"/api/cash-box/admin/force-close/{till}", json={})
        assert resp.status_code == 409
        assert resp.json()["error"] == "CASH_BOX_CLOSED"

    def test_force_close_to_unknown_box_leaves_till_open(self, cashier_client, admin_client, open_till,
                                                        session_factory):
        till = open_till(cashier_client, 100)
        resp = admin_client.post(f"/api/cash-box/admin/force-close/{till}", json={"money_box_id": 999})
        assert resp.status_code == 404
        with session_factory() as db:
            assert db.get(CashBox, till).is_open

    def test_posting_to_force_closed_box_fails(self, cashier_client, admin_client, open_till, session_factory):
        till = open_till(cashier_client, 10)
        admin_client.post(f"/api/cash-box/admin/force-close/{till}", json={})
        resp = cashier_client.post("/api/cash-box/manual-transaction", json={"type": "deposit", "amount": 1})
        assert resp.json()["error"] == "NO_OPEN_CASH_BOX"
        with session_factory() as db:
            assert LedgerStore(db).verify(CASH_BOX, till)["ok"] is True

    def test_history_filter(self, cashier_client, cashier2_client, admin_client, open_till):
        open_till(cashier_client, 10)
        cashier_client.post("/api/cash-box/close", json={})
        open_till(cashier2_client, 10)

        data = admin_client.get("/api/cash-box/admin/history", params={"status": "closed"}).json()["data"]
        assert data["total"] == 1
        data = admin_client.get("/api/cash-box/admin/history").json()["data"]
        assert data["total"] == 2
