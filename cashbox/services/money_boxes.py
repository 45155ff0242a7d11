"""
MoneyBoxService: named, shared fund pools (safe, bank, daily box).

Money boxes never go negative. Box-to-box transfers write a linked
``transfer_out`` / ``transfer_in`` pair inside one savepoint.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.exceptions import (
    DuplicateMoneyBoxError,
    MoneyBoxInUseError,
    MoneyBoxNotFoundError,
    ValidationError,
)
from cashbox.logging_config import get_logger
from cashbox.models.cashbook import MoneyBox, MoneyBoxTransaction
from cashbox.services.amounts import D, ZERO, money, positive_amount, round2
from cashbox.services.ledger_store import CREDIT_TYPES, DEBIT_TYPES, MONEY_BOX, LedgerStore

logger = get_logger("services.money_boxes")


class MoneyBoxService:
    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    # ---------- CRUD ----------

    def list_boxes(self) -> list[MoneyBox]:
        return list(self.db.execute(select(MoneyBox).order_by(MoneyBox.name)).scalars())

    def get_box(self, box_id: int) -> MoneyBox:
        box = self.db.get(MoneyBox, box_id)
        if box is None:
            raise MoneyBoxNotFoundError(box_id)
        return box

    def get_box_by_name(self, name: str) -> Optional[MoneyBox]:
        return self.db.execute(select(MoneyBox).where(MoneyBox.name == name)).scalar_one_or_none()

    def _clean_name(self, name: Optional[str], exclude_id: Optional[int] = None) -> str:
        clean = (name or "").strip()
        if not clean:
            raise ValidationError(messages.MONEY_BOX_NAME_REQUIRED, field="name")
        other = self.get_box_by_name(clean)
        if other is not None and other.id != exclude_id:
            raise DuplicateMoneyBoxError(clean)
        return clean

    def create_box(self, name: str, amount=0, notes: Optional[str] = None, user_id: Optional[int] = None) -> MoneyBox:
        """The opening amount is booked as one 'deposit' row, so the box and its ledger agree."""
        clean = self._clean_name(name)
        opening = money(amount or 0)
        if opening < 0:
            raise ValidationError(messages.AMOUNT_MUST_BE_POSITIVE, field="amount")

        box = MoneyBox(name=clean, amount=ZERO, notes=notes, created_by=user_id)
        self.db.add(box)
        self.db.flush()

        if opening > 0:
            self.store.append(
                MONEY_BOX, box.id, "deposit", opening,
                notes=messages.DESC_INITIAL_DEPOSIT, user_id=user_id,
            )
        logger.info("money_box_created", extra={"money_box_id": box.id, "opening_amount": opening})
        return box

    def update_box(self, box_id: int, name: str, notes: Optional[str] = None) -> MoneyBox:
        box = self.get_box(box_id)
        box.name = self._clean_name(name, exclude_id=box_id)
        box.notes = notes
        self.db.flush()
        return box

    def delete_box(self, box_id: int) -> None:
        box = self.get_box(box_id)
        if self.store.count(MONEY_BOX, box_id) > 0:
            raise MoneyBoxInUseError(box_id)
        self.db.delete(box)
        self.db.flush()
        logger.info("money_box_deleted", extra={"money_box_id": box_id})

    # ---------- ledger ----------

    def add_transaction(
        self,
        box_id: int,
        transaction_type: str,
        amount,
        notes: Optional[str] = None,
        user_id: Optional[int] = None,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        related_box_id: Optional[int] = None,
    ) -> MoneyBoxTransaction:
        return self.store.append(
            MONEY_BOX,
            box_id,
            transaction_type,
            amount,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            user_id=user_id,
            related_box_id=related_box_id,
            allow_negative=False,
        )

    def transfer_between_boxes(
        self, from_box_id: int, to_box_id: int, amount, notes: Optional[str] = None, user_id: Optional[int] = None
    ) -> tuple[MoneyBoxTransaction, MoneyBoxTransaction]:
        if from_box_id == to_box_id:
            raise ValidationError(messages.SAME_BOX_TRANSFER, field="toBoxId")
        amt = positive_amount(amount)
        source = self.get_box(from_box_id)
        target = self.get_box(to_box_id)

        with self.db.begin_nested():
            # fixed lock order keeps two opposite transfers from deadlocking
            for box_id in sorted((from_box_id, to_box_id)):
                self.store.lock_box(MONEY_BOX, box_id)
            out_row = self.add_transaction(
                from_box_id, "transfer_out", amt,
                notes or messages.DESC_TRANSFER_OUT.format(name=target.name), user_id,
                related_box_id=to_box_id,
            )
            in_row = self.add_transaction(
                to_box_id, "transfer_in", amt,
                notes or messages.DESC_TRANSFER_IN.format(name=source.name), user_id,
                related_box_id=from_box_id,
            )

        logger.info(
            "transfer_completed",
            extra={"from_box_id": from_box_id, "to_box_id": to_box_id, "amount": amt},
        )
        return out_row, in_row

    # ---------- reads ----------

    def transactions(self, box_id: int, limit: int, offset: int = 0):
        self.get_box(box_id)
        return self.store.history(MONEY_BOX, box_id, limit, offset)

    def transactions_between(self, box_id: int, start: datetime | None, end: datetime | None, limit: int, offset: int = 0):
        self.get_box(box_id)
        return self.store.history_between(MONEY_BOX, box_id, start, end, limit, offset)

    def box_summary(self, box_id: int) -> dict:
        box = self.get_box(box_id)
        tx = MoneyBoxTransaction
        stats = self.db.execute(
            select(
                func.count(tx.id),
                func.sum(case((tx.transaction_type.in_(sorted(CREDIT_TYPES)), tx.amount), else_=0)),
                func.sum(case((tx.transaction_type.in_(sorted(DEBIT_TYPES)), tx.amount), else_=0)),
                func.max(tx.created_at),
            ).where(tx.box_id == box_id)
        ).one()
        count, deposits, withdrawals, last_ts = stats
        return {
            "moneyBox": box,
            "statistics": {
                "total_transactions": count or 0,
                "total_deposits": round2(D(deposits or 0)),
                "total_withdrawals": round2(D(withdrawals or 0)),
                "current_balance": round2(D(box.amount)),
                "last_transaction_date": last_ts,
            },
        }

    def all_boxes_summary(self) -> dict:
        summaries = [self.box_summary(b.id) for b in self.list_boxes()]
        total: Decimal = sum((s["statistics"]["current_balance"] for s in summaries), ZERO)
        return {"moneyBoxes": summaries, "totalBalance": total, "totalBoxes": len(summaries)}

    def verify(self, box_id: int) -> dict:
        return self.store.verify(MONEY_BOX, box_id)
