"""
Typed exceptions for the cash-box ledger.

Every exception carries a machine readable ``code``, the HTTP status the API
answers with, a localised ``message`` and, where it matters, structured data
(``extra()``) that is merged into the error response body.

    CashboxError
    +-- ValidationError
    +-- NotFoundError
    |   +-- CashBoxNotFoundError
    |   +-- MoneyBoxNotFoundError
    |   +-- RecordNotFoundError
    +-- LedgerError
    |   +-- InsufficientBalanceError
    |   +-- ImmutableLedgerEntryError
    +-- CashBoxStateError
    |   +-- NoOpenCashBoxError
    |   +-- CashBoxAlreadyOpenError
    |   +-- CashBoxClosedError
    +-- MoneyBoxInUseError
    +-- DuplicateMoneyBoxError
    +-- AuthenticationError
    +-- PermissionDeniedError
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from cashbox import messages


class CashboxError(Exception):
    """Base exception for all cashbox errors."""

    code: str = "CASHBOX_ERROR"
    status_code: int = 500

    def __init__(self, message: str | None = None):
        self.message = message or messages.INTERNAL_ERROR
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        return {}


class ValidationError(CashboxError):
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None, field: str | None = None):
        self.field = field
        super().__init__(message or messages.VALIDATION_FAILED)

    def extra(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


# ---------- Not found ----------


class NotFoundError(CashboxError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, message: str | None = None):
        super().__init__(message or messages.RECORD_NOT_FOUND)


class CashBoxNotFoundError(NotFoundError):
    def __init__(self, cash_box_id: Any):
        self.cash_box_id = cash_box_id
        super().__init__(messages.CASH_BOX_NOT_FOUND)


class MoneyBoxNotFoundError(NotFoundError):
    def __init__(self, money_box_ref: Any):
        self.money_box_ref = money_box_ref
        super().__init__(messages.MONEY_BOX_NOT_FOUND)


class RecordNotFoundError(NotFoundError):
    def __init__(self, kind: str, record_id: Any):
        self.kind = kind
        self.record_id = record_id
        super().__init__(messages.RECORD_NOT_FOUND)


# ---------- Ledger ----------


class LedgerError(CashboxError):
    code = "LEDGER_ERROR"


class InsufficientBalanceError(LedgerError):
    """A debit would take a box below zero. Nothing was written."""

    code = "INSUFFICIENT_BALANCE"
    status_code = 400

    def __init__(self, box_name: str | None, available_balance: Decimal, required_amount: Decimal):
        self.box_name = box_name
        self.available_balance = available_balance
        self.required_amount = required_amount
        super().__init__(
            messages.INSUFFICIENT_BALANCE_IN.format(
                box=box_name or messages.SELECTED_MONEY_BOX,
                required=required_amount,
                available=available_balance,
            )
        )

    def extra(self) -> dict[str, Any]:
        return {
            "moneyBoxName": self.box_name,
            "availableBalance": float(self.available_balance),
            "requiredAmount": float(self.required_amount),
        }


class ImmutableLedgerEntryError(LedgerError):
    code = "IMMUTABLE_LEDGER_ENTRY"

    def __init__(self, table: str, entry_id: Any, operation: str):
        self.table = table
        self.entry_id = entry_id
        self.operation = operation
        super().__init__(messages.LEDGER_IMMUTABLE)


# ---------- Cash box state ----------


class CashBoxStateError(CashboxError):
    code = "CASH_BOX_STATE"
    status_code = 409


class NoOpenCashBoxError(CashBoxStateError):
    code = "NO_OPEN_CASH_BOX"
    status_code = 400

    def __init__(self, user_id: Any = None):
        self.user_id = user_id
        super().__init__(messages.NO_OPEN_CASH_BOX)


class CashBoxAlreadyOpenError(CashBoxStateError):
    code = "CASH_BOX_ALREADY_OPEN"

    def __init__(self, cash_box_id: Any):
        self.cash_box_id = cash_box_id
        super().__init__(messages.CASH_BOX_ALREADY_OPEN)


class CashBoxClosedError(CashBoxStateError):
    code = "CASH_BOX_CLOSED"

    def __init__(self, cash_box_id: Any):
        self.cash_box_id = cash_box_id
        super().__init__(messages.CASH_BOX_CLOSED)


# ---------- Money box admin ----------


class MoneyBoxInUseError(CashboxError):
    code = "MONEY_BOX_IN_USE"
    status_code = 409

    def __init__(self, money_box_id: Any):
        self.money_box_id = money_box_id
        super().__init__(messages.MONEY_BOX_IN_USE)


class DuplicateMoneyBoxError(CashboxError):
    code = "MONEY_BOX_EXISTS"
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(messages.MONEY_BOX_EXISTS)


# ---------- Auth ----------


class AuthenticationError(CashboxError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str | None = None):
        super().__init__(message or messages.UNAUTHORIZED)


class PermissionDeniedError(CashboxError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str | None = None):
        super().__init__(message or messages.FORBIDDEN)
