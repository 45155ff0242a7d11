"""Structured JSON logging and request-scoped context."""

import json
import logging
import sys
from decimal import Decimal
from io import StringIO

import pytest

from cashbox.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


@pytest.fixture
def log_stream(app):
    # app first: importing main configures logging once
    reset_logging()
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)
    yield stream
    reset_logging()


class TestFormatter:
    def test_json_line_with_extras(self):
        record = logging.LogRecord("cashbox.test", logging.INFO, __file__, 1, "ledger_entry_appended", (), None)
        record.amount = Decimal("12.50")
        record.box_id = 3

        payload = json.loads(StructuredFormatter().format(record))
        assert payload["message"] == "ledger_entry_appended"
        assert payload["level"] == "INFO"
        assert payload["amount"] == "12.50"
        assert payload["box_id"] == 3

    def test_context_fields_are_included(self):
        record = logging.LogRecord("cashbox.test", logging.INFO, __file__, 1, "x", (), None)
        with LogContext.bind(request_id="abc", user_id=7):
            payload = json.loads(StructuredFormatter().format(record))
        assert payload["request_id"] == "abc"
        assert payload["user_id"] == "7"
        assert "request_id" not in LogContext.get_all()

    def test_arabic_text_is_not_escaped(self):
        record = logging.LogRecord("cashbox.test", logging.INFO, __file__, 1, "الصندوق", (), None)
        assert "الصندوق" in StructuredFormatter().format(record)

    def test_exception_code_is_recorded(self):
        from cashbox.exceptions import NoOpenCashBoxError

        try:
            raise NoOpenCashBoxError(4)
        except NoOpenCashBoxError:
            record = logging.LogRecord(
                "cashbox.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        payload = json.loads(StructuredFormatter().format(record))
        assert payload["exc_type"] == "NoOpenCashBoxError"
        assert payload["exc_code"] == "NO_OPEN_CASH_BOX"
        assert payload["exc_user_id"] == 4


class TestConfigure:
    def test_configure_is_idempotent(self, clean_logging):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        get_logger("test").info("hello")
        assert "hello" in first.getvalue()
        assert second.getvalue() == ""
        assert len(logging.getLogger("cashbox").handlers) == 1

    def test_level_filters(self, clean_logging):
        stream = StringIO()
        configure_logging(level="WARNING", stream=stream)
        get_logger("test").info("quiet")
        get_logger("test").warning("loud")
        assert [r["message"] for r in _records(stream)] == ["loud"]


class TestRequestLogging:
    def test_request_id_is_echoed_and_logged(self, cashier_client, log_stream):
        resp = cashier_client.get("/api/cash-box/my-cash-box", headers={"X-Request-Id": "req-42"})
        assert resp.headers["X-Request-Id"] == "req-42"

        [entry] = [r for r in _records(log_stream) if r["message"] == "http.request"]
        assert entry["request_id"] == "req-42"
        assert entry["path"] == "/api/cash-box/my-cash-box"
        assert entry["status_code"] == 200
        assert entry["user_id"]

    def test_request_id_is_generated(self, anon_client, log_stream):
        resp = anon_client.get("/api/health")
        assert len(resp.headers["X-Request-Id"]) == 32

    def test_failed_posting_is_logged_with_request_context(self, cashier_client, log_stream):
        # no open till: the sale is kept, the posting is dropped and logged
        resp = cashier_client.post("/api/sales", json={"total_amount": 9}, headers={"X-Request-Id": "sale-1"})
        assert resp.status_code == 201

        [entry] = [r for r in _records(log_stream) if r["message"] == "posting_failed"]
        assert entry["level"] == "ERROR"
        assert entry["event"] == "sale_created"
        assert entry["error_code"] == "NO_OPEN_CASH_BOX"
        assert entry["request_id"] == "sale-1"

    def test_compensated_write_is_logged(self, cashier_client, log_stream):
        cashier_client.post("/api/expenses", json={"amount": 9})
        messages = [r["message"] for r in _records(log_stream)]
        assert "business_write_compensated" in messages
