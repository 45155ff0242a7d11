"""
LedgerStore: append-only balance ledgers for cash boxes and money boxes.

Every row carries ``balance_before`` and ``balance_after``; the box's cached
balance column always equals the ``balance_after`` of its latest row.

Serialisation:
    ``append`` locks the box row (``SELECT ... FOR UPDATE``) before reading
    the previous balance. On SQLite the engine opens every transaction with
    ``BEGIN IMMEDIATE`` (see ``cashbox.models.base``), which gives the same
    single-writer guarantee. Two appends to one box can therefore never read
    the same previous balance.

The store never commits. The caller owns the transaction boundary, so a
business write and its ledger rows commit or roll back together.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.exceptions import (
    CashBoxNotFoundError,
    InsufficientBalanceError,
    MoneyBoxNotFoundError,
    ValidationError,
)
from cashbox.logging_config import get_logger
from cashbox.models.cashbook import CashBox, CashBoxTransaction, MoneyBox, MoneyBoxTransaction
from cashbox.services.amounts import D, ZERO, positive_amount, round2

logger = get_logger("services.ledger_store")

# Signed direction of every ledger type
CREDIT_TYPES: frozenset[str] = frozenset({
    "deposit",
    "sale",
    "customer_receipt",
    "purchase_return",
    "expense_reversal",
    "cash_deposit",
    "transfer_in",
    "transfer_from_cash_box",
    "transfer_from_daily_box",
    "transfer_from_money_box",
    "opening",
    "adjustment_in",
})

DEBIT_TYPES: frozenset[str] = frozenset({
    "withdrawal",
    "withdraw",
    "purchase",
    "expense",
    "expense_update",
    "supplier_payment",
    "sale_return",
    "transfer_out",
    "transfer_to_cashier",
    "transfer_to_cash_box",
    "transfer_to_money_box",
    "transfer_to_bank",
    "closing",
    "adjustment_out",
})


def direction(transaction_type: str) -> int:
    """+1 for credit types, -1 for debit types."""
    if transaction_type in CREDIT_TYPES:
        return 1
    if transaction_type in DEBIT_TYPES:
        return -1
    raise ValidationError(messages.INVALID_TRANSACTION_TYPE, field="type")


@dataclass(frozen=True)
class LedgerKind:
    name: str
    box_model: Any
    tx_model: Any
    box_fk: str
    balance_attr: str
    user_attr: str
    has_description: bool
    not_found: type


CASH_BOX = LedgerKind(
    name="cash_box",
    box_model=CashBox,
    tx_model=CashBoxTransaction,
    box_fk="cash_box_id",
    balance_attr="current_amount",
    user_attr="user_id",
    has_description=True,
    not_found=CashBoxNotFoundError,
)

MONEY_BOX = LedgerKind(
    name="money_box",
    box_model=MoneyBox,
    tx_model=MoneyBoxTransaction,
    box_fk="box_id",
    balance_attr="amount",
    user_attr="created_by",
    has_description=False,
    not_found=MoneyBoxNotFoundError,
)


class LedgerStore:
    """
    Atomic append plus the read path (balance, history, date range, replay).

    Usage:
        store = LedgerStore(db)
        row = store.append(MONEY_BOX, box_id, "withdraw", "30.00", user_id=1)
        db.commit()
    """

    def __init__(self, session: Session):
        self._session = session

    # ---------- write path ----------

    def lock_box(self, kind: LedgerKind, box_id: int):
        box = self._session.execute(
            select(kind.box_model)
            .where(kind.box_model.id == box_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if box is None:
            raise kind.not_found(box_id)
        return box

    def append(
        self,
        kind: LedgerKind,
        box_id: int,
        transaction_type: str,
        amount,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
        notes: str | None = None,
        user_id: int | None = None,
        related_box_id: int | None = None,
        allow_negative: bool = False,
    ):
        """
        Append one ledger row and move the box balance.

        Raises:
            ValidationError: unknown type or amount <= 0.
            InsufficientBalanceError: a debit would take the balance below
                zero and ``allow_negative`` is False. Nothing is written.
        """
        sign = direction(transaction_type)
        amt = positive_amount(amount)

        box = self.lock_box(kind, box_id)
        before = self.current_balance(kind, box_id)
        after = round2(before + amt) if sign > 0 else round2(before - amt)

        if after < 0 and not allow_negative:
            logger.info(
                "ledger_append_rejected",
                extra={
                    "ledger": kind.name,
                    "box_id": box_id,
                    "transaction_type": transaction_type,
                    "available_balance": before,
                    "required_amount": amt,
                },
            )
            raise InsufficientBalanceError(box.name, before, amt)

        fields: dict[str, Any] = {
            kind.box_fk: box_id,
            kind.user_attr: user_id,
            "transaction_type": transaction_type,
            "amount": amt,
            "balance_before": before,
            "balance_after": after,
            "reference_type": reference_type,
            "reference_id": reference_id,
        }
        if kind.has_description:
            fields["description"] = description
            fields["notes"] = notes
        else:
            fields["notes"] = notes or description
            fields["related_box_id"] = related_box_id

        row = kind.tx_model(**fields)
        self._session.add(row)
        setattr(box, kind.balance_attr, after)
        self._session.flush()

        logger.debug(
            "ledger_entry_appended",
            extra={
                "ledger": kind.name,
                "box_id": box_id,
                "entry_id": row.id,
                "transaction_type": transaction_type,
                "amount": amt,
                "balance_after": after,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )
        return row

    # ---------- read path ----------

    def current_balance(self, kind: LedgerKind, box_id: int) -> Decimal:
        """balance_after of the latest row, 0 for a box without rows."""
        fk = getattr(kind.tx_model, kind.box_fk)
        last = self._session.execute(
            select(kind.tx_model.balance_after)
            .where(fk == box_id)
            .order_by(kind.tx_model.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return ZERO if last is None else round2(D(last))

    def count(self, kind: LedgerKind, box_id: int) -> int:
        fk = getattr(kind.tx_model, kind.box_fk)
        return self._session.execute(
            select(func.count()).select_from(kind.tx_model).where(fk == box_id)
        ).scalar_one()

    def history(self, kind: LedgerKind, box_id: int, limit: int, offset: int = 0) -> tuple[list, int]:
        """Newest first, with the total row count for pagination."""
        fk = getattr(kind.tx_model, kind.box_fk)
        rows = self._session.execute(
            select(kind.tx_model)
            .where(fk == box_id)
            .order_by(kind.tx_model.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(rows), self.count(kind, box_id)

    def history_between(
        self,
        kind: LedgerKind,
        box_id: int,
        start: datetime | None,
        end: datetime | None,
        limit: int,
        offset: int = 0,
    ) -> tuple[list, int]:
        fk = getattr(kind.tx_model, kind.box_fk)
        conds = [fk == box_id]
        if start is not None:
            conds.append(kind.tx_model.created_at >= start)
        if end is not None:
            conds.append(kind.tx_model.created_at <= end)

        rows = self._session.execute(
            select(kind.tx_model)
            .where(*conds)
            .order_by(kind.tx_model.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        total = self._session.execute(
            select(func.count()).select_from(kind.tx_model).where(*conds)
        ).scalar_one()
        return list(rows), total

    def verify(self, kind: LedgerKind, box_id: int) -> dict:
        """
        Replays a box's rows in insertion order.

        Every row must satisfy balance_before == previous balance_after and
        balance_after == balance_before +/- amount, starting from 0. The
        cached balance on the box must equal the last balance_after.
        """
        box = self._session.get(kind.box_model, box_id)
        if box is None:
            raise kind.not_found(box_id)

        fk = getattr(kind.tx_model, kind.box_fk)
        rows = self._session.execute(
            select(kind.tx_model).where(fk == box_id).order_by(kind.tx_model.id.asc())
        ).scalars().all()

        running = ZERO
        broken: list[int] = []
        for row in rows:
            expected = round2(running + direction(row.transaction_type) * D(row.amount))
            if round2(D(row.balance_before)) != running or round2(D(row.balance_after)) != expected:
                broken.append(row.id)
            running = round2(D(row.balance_after))

        cached = round2(D(getattr(box, kind.balance_attr)))
        ok = not broken and cached == running
        if not ok:
            logger.warning(
                "ledger_verification_failed",
                extra={"ledger": kind.name, "box_id": box_id, "broken_entries": broken,
                       "cached_balance": cached, "ledger_balance": running},
            )
        return {
            "ok": ok,
            "entries": len(rows),
            "broken_entries": broken,
            "cached_balance": cached,
            "ledger_balance": running,
        }
