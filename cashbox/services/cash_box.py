"""
CashBoxService: per-user tills opened for a shift.

A user has at most one open cash box. Whether it may go negative is the
user's ``allow_negative_balance`` setting. Transfers between a till and a
money box write both legs in one savepoint.
"""
from __future__ import annotations

from datetime import datetime, time
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.config import settings as app_settings
from cashbox.exceptions import (
    CashBoxAlreadyOpenError,
    CashBoxClosedError,
    CashBoxNotFoundError,
    MoneyBoxNotFoundError,
    NoOpenCashBoxError,
    ValidationError,
)
from cashbox.logging_config import get_logger
from cashbox.models.cashbook import (
    STATUS_CLOSED,
    STATUS_OPEN,
    CashBox,
    CashBoxSettings,
    CashBoxTransaction,
)
from cashbox.models.user import User
from cashbox.services.amounts import D, ZERO, money, positive_amount, round2
from cashbox.services.ledger_store import CASH_BOX, CREDIT_TYPES, DEBIT_TYPES, LedgerStore
from cashbox.services.money_boxes import MoneyBoxService

logger = get_logger("services.cash_box")

MANUAL_KINDS = {"deposit", "withdrawal", "adjustment"}


class CashBoxService:
    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)
        self.money_boxes = MoneyBoxService(db)

    # ---------- settings ----------

    def get_settings(self, user_id: int) -> CashBoxSettings:
        row = self.db.execute(
            select(CashBoxSettings).where(CashBoxSettings.user_id == user_id)
        ).scalar_one_or_none()
        if row is None:
            row = CashBoxSettings(
                user_id=user_id,
                default_opening_amount=ZERO,
                allow_negative_balance=False,
                max_withdrawal_amount=ZERO,
            )
            self.db.add(row)
            self.db.flush()
        return row

    def update_settings(
        self,
        user_id: int,
        *,
        default_opening_amount=None,
        allow_negative_balance: Optional[bool] = None,
        max_withdrawal_amount=None,
    ) -> CashBoxSettings:
        row = self.get_settings(user_id)
        if default_opening_amount is not None:
            row.default_opening_amount = self._non_negative(default_opening_amount, "default_opening_amount")
        if allow_negative_balance is not None:
            row.allow_negative_balance = bool(allow_negative_balance)
        if max_withdrawal_amount is not None:
            row.max_withdrawal_amount = self._non_negative(max_withdrawal_amount, "max_withdrawal_amount")
        self.db.flush()
        return row

    @staticmethod
    def _non_negative(value, field: str):
        amt = money(value)
        if amt < 0:
            raise ValidationError(messages.AMOUNT_MUST_BE_POSITIVE, field=field)
        return amt

    # ---------- lookup ----------

    def get_user_cash_box(self, user_id: int) -> Optional[CashBox]:
        """The user's open cash box, or None."""
        return self.db.execute(
            select(CashBox)
            .where(CashBox.user_id == user_id, CashBox.status == STATUS_OPEN)
            .order_by(CashBox.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def require_open_cash_box(self, user_id: int) -> CashBox:
        box = self.get_user_cash_box(user_id)
        if box is None:
            raise NoOpenCashBoxError(user_id)
        return box

    def get_cash_box(self, cash_box_id: int) -> CashBox:
        box = self.db.get(CashBox, cash_box_id)
        if box is None:
            raise CashBoxNotFoundError(cash_box_id)
        return box

    # ---------- lifecycle ----------

    def open_cash_box(self, user: User, opening_amount=None, notes: Optional[str] = None) -> CashBox:
        existing = self.get_user_cash_box(user.id)
        if existing is not None:
            raise CashBoxAlreadyOpenError(existing.id)

        if opening_amount is None:
            amount = money(self.get_settings(user.id).default_opening_amount)
        else:
            amount = self._non_negative(opening_amount, "opening_amount")

        box = CashBox(
            user_id=user.id,
            name=f"{user.full_name} - صندوق",
            initial_amount=amount,
            current_amount=ZERO,
            status=STATUS_OPEN,
            opened_at=datetime.utcnow(),
            opened_by=user.id,
            notes=notes,
        )
        self.db.add(box)
        self.db.flush()

        if amount > 0:
            self.store.append(
                CASH_BOX, box.id, "opening", amount,
                reference_type="opening", description=messages.DESC_OPENING,
                notes=notes, user_id=user.id,
            )
        logger.info("cash_box_opened", extra={"cash_box_id": box.id, "opening_amount": amount})
        return box

    def close_cash_box(self, user_id: int, counted_amount=None, notes: Optional[str] = None) -> CashBox:
        """
        Closes the user's open box. When a counted amount is given, the
        difference to the ledger balance is booked as adjustment_in/out.
        """
        box = self.require_open_cash_box(user_id)
        if counted_amount is not None:
            counted = self._non_negative(counted_amount, "closing_amount")
            self._post_adjustment(box, user_id, counted, messages.DESC_CLOSING_ADJUSTMENT, notes, "closing")

        box.status = STATUS_CLOSED
        box.closed_at = datetime.utcnow()
        box.closed_by = user_id
        if notes is not None:
            box.notes = notes
        self.db.flush()
        logger.info("cash_box_closed", extra={"cash_box_id": box.id, "closing_balance": box.current_amount})
        return box

    def _post_adjustment(self, box: CashBox, user_id: int, target, description: str,
                         notes: Optional[str], reference_type: str) -> Optional[CashBoxTransaction]:
        diff = round2(target - self.store.current_balance(CASH_BOX, box.id))
        if diff == 0:
            return None
        tx_type = "adjustment_in" if diff > 0 else "adjustment_out"
        return self.store.append(
            CASH_BOX, box.id, tx_type, abs(diff),
            reference_type=reference_type, description=description,
            notes=notes, user_id=user_id, allow_negative=True,
        )

    # ---------- ledger ----------

    def add_transaction(
        self,
        cash_box_id: int,
        user_id: int,
        transaction_type: str,
        amount,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CashBoxTransaction:
        box = self.get_cash_box(cash_box_id)
        if not box.is_open:
            raise CashBoxClosedError(cash_box_id)
        allow_negative = bool(self.get_settings(box.user_id).allow_negative_balance)
        return self.store.append(
            CASH_BOX,
            cash_box_id,
            transaction_type,
            amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            notes=notes,
            user_id=user_id,
            allow_negative=allow_negative,
        )

    def manual_transaction(self, user_id: int, kind: str, amount, description: Optional[str] = None,
                           notes: Optional[str] = None) -> Optional[CashBoxTransaction]:
        """deposit | withdrawal | adjustment (sets the balance to ``amount``)."""
        if kind not in MANUAL_KINDS:
            raise ValidationError(messages.INVALID_TRANSACTION_TYPE, field="transaction_type")
        box = self.require_open_cash_box(user_id)

        if kind == "adjustment":
            target = self._non_negative(amount, "amount")
            return self._post_adjustment(
                box, user_id, target, description or messages.DESC_MANUAL_ADJUSTMENT, notes, "manual"
            )

        amt = positive_amount(amount)
        if kind == "withdrawal":
            limit = money(self.get_settings(user_id).max_withdrawal_amount)
            if limit > 0 and amt > limit:
                raise ValidationError(messages.MAX_WITHDRAWAL_EXCEEDED.format(limit=limit), field="amount")
        return self.add_transaction(box.id, user_id, kind, amt, "manual", None, description, notes)

    # ---------- transfers with money boxes ----------

    def _daily_box(self):
        box = self.money_boxes.get_box_by_name(app_settings.DAILY_MONEY_BOX_NAME)
        if box is None:
            raise MoneyBoxNotFoundError(app_settings.DAILY_MONEY_BOX_NAME)
        return box

    def _till_to_money_box(self, user_id: int, money_box, amount, description: str, notes: Optional[str]):
        amt = positive_amount(amount)
        box = self.require_open_cash_box(user_id)
        with self.db.begin_nested():
            cash_row = self.add_transaction(box.id, user_id, "withdrawal", amt, "manual", None, description, notes)
            money_row = self.money_boxes.add_transaction(
                money_box.id, "transfer_from_cash_box", amt,
                messages.DESC_FROM_CASH_BOX.format(notes=notes or ""), user_id,
                reference_type="cash_box", reference_id=box.id,
            )
        logger.info(
            "transfer_completed",
            extra={"cash_box_id": box.id, "money_box_id": money_box.id, "amount": amt, "direction": "to_money_box"},
        )
        return cash_row, money_row

    def transfer_to_daily_money_box(self, user_id: int, amount, notes: Optional[str] = None):
        return self._till_to_money_box(user_id, self._daily_box(), amount, messages.DESC_TRANSFER_TO_DAILY, notes)

    def transfer_to_money_box(self, user_id: int, amount, money_box_name: str, notes: Optional[str] = None):
        target = self.money_boxes.get_box_by_name((money_box_name or "").strip())
        if target is None:
            raise MoneyBoxNotFoundError(money_box_name)
        return self._till_to_money_box(
            user_id, target, amount, messages.DESC_TRANSFER_TO_BOX.format(name=target.name), notes
        )

    def transfer_from_daily_money_box(self, user_id: int, amount, notes: Optional[str] = None):
        amt = positive_amount(amount)
        daily = self._daily_box()
        box = self.require_open_cash_box(user_id)
        with self.db.begin_nested():
            money_row = self.money_boxes.add_transaction(
                daily.id, "transfer_to_cashier", amt,
                messages.DESC_TO_CASHIER.format(notes=notes or ""), user_id,
                reference_type="cash_box", reference_id=box.id,
            )
            cash_row = self.add_transaction(
                box.id, user_id, "deposit", amt, "manual", None, messages.DESC_TRANSFER_FROM_DAILY, notes
            )
        logger.info(
            "transfer_completed",
            extra={"cash_box_id": box.id, "money_box_id": daily.id, "amount": amt, "direction": "from_money_box"},
        )
        return cash_row, money_row

    # ---------- reads ----------

    def transactions(self, cash_box_id: int, limit: int, offset: int = 0):
        self.get_cash_box(cash_box_id)
        return self.store.history(CASH_BOX, cash_box_id, limit, offset)

    def summary(self, user_id: int) -> dict:
        box = self.get_user_cash_box(user_id)
        if box is None:
            return {
                "has_open_cash_box": False,
                "cash_box_id": None,
                "current_amount": ZERO,
                "opened_at": None,
                "today_transactions": 0,
                "today_amount": ZERO,
            }
        start = datetime.combine(datetime.utcnow().date(), time.min)
        totals = self._totals(box.id, start, None)
        return {
            "has_open_cash_box": True,
            "cash_box_id": box.id,
            "current_amount": self.store.current_balance(CASH_BOX, box.id),
            "opened_at": box.opened_at,
            "today_transactions": totals["count"],
            "today_amount": round2(totals["credits"] - totals["debits"]),
        }

    def _totals(self, cash_box_id: int, start: Optional[datetime], end: Optional[datetime]) -> dict:
        tx = CashBoxTransaction
        conds = [tx.cash_box_id == cash_box_id]
        if start is not None:
            conds.append(tx.created_at >= start)
        if end is not None:
            conds.append(tx.created_at <= end)
        count, credits, debits = self.db.execute(
            select(
                func.count(tx.id),
                func.sum(case((tx.transaction_type.in_(sorted(CREDIT_TYPES)), tx.amount), else_=0)),
                func.sum(case((tx.transaction_type.in_(sorted(DEBIT_TYPES)), tx.amount), else_=0)),
            ).where(*conds)
        ).one()
        return {"count": count or 0, "credits": round2(D(credits or 0)), "debits": round2(D(debits or 0))}

    def report(self, cash_box_id: int, start: Optional[datetime], end: Optional[datetime],
               limit: int, offset: int = 0) -> dict:
        box = self.get_cash_box(cash_box_id)
        rows, total = self.store.history_between(CASH_BOX, cash_box_id, start, end, limit, offset)
        totals = self._totals(cash_box_id, start, end)
        return {
            "cash_box": box,
            "transactions": rows,
            "total": total,
            "total_credits": totals["credits"],
            "total_debits": totals["debits"],
            "net": round2(totals["credits"] - totals["debits"]),
            "current_balance": self.store.current_balance(CASH_BOX, cash_box_id),
        }

    def user_history(self, user_id: int, limit: int, offset: int = 0) -> tuple[list[CashBox], int]:
        return self._history([CashBox.user_id == user_id], limit, offset)

    def all_history(self, limit: int, offset: int = 0, status: Optional[str] = None) -> tuple[list[CashBox], int]:
        conds = [CashBox.status == status] if status else []
        return self._history(conds, limit, offset)

    def _history(self, conds: list, limit: int, offset: int):
        rows = self.db.execute(
            select(CashBox).where(*conds).order_by(CashBox.opened_at.desc(), CashBox.id.desc())
            .limit(limit).offset(offset)
        ).scalars().all()
        total = self.db.execute(select(func.count()).select_from(CashBox).where(*conds)).scalar_one()
        return list(rows), total

    def verify(self, cash_box_id: int) -> dict:
        return self.store.verify(CASH_BOX, cash_box_id)

    # ---------- admin ----------

    def open_cash_boxes(self) -> list[tuple[CashBox, User]]:
        return list(
            self.db.execute(
                select(CashBox, User)
                .join(User, User.id == CashBox.user_id)
                .where(CashBox.status == STATUS_OPEN)
                .order_by(CashBox.opened_at.desc())
            ).all()
        )

    def force_close(self, cash_box_id: int, admin_id: int, reason: Optional[str] = None,
                    money_box_id: Optional[int] = None) -> dict:
        """
        Closes any user's box. With a money box, the remaining balance is
        moved there in the same savepoint as the closing row.
        """
        box = self.get_cash_box(cash_box_id)
        if not box.is_open:
            raise CashBoxClosedError(cash_box_id)
        target = self.money_boxes.get_box(money_box_id) if money_box_id else None

        transferred = ZERO
        with self.db.begin_nested():
            balance = self.store.current_balance(CASH_BOX, box.id)
            if balance > 0:
                self.store.append(
                    CASH_BOX, box.id, "closing", balance,
                    reference_type="closing", description=messages.DESC_FORCE_CLOSE,
                    notes=reason, user_id=admin_id,
                )
                if target is not None:
                    self.money_boxes.add_transaction(
                        target.id, "deposit", balance,
                        messages.DESC_FORCE_CLOSE_TRANSFER.format(name=box.name), admin_id,
                        reference_type="cash_box", reference_id=box.id,
                    )
                    transferred = balance
            box.status = STATUS_CLOSED
            box.closed_at = datetime.utcnow()
            box.closed_by = admin_id
            box.notes = reason
            self.db.flush()

        logger.info(
            "cash_box_force_closed",
            extra={"cash_box_id": box.id, "admin_id": admin_id, "money_box_id": money_box_id,
                   "transferred": transferred},
        )
        return {"cash_box": box, "transferred_amount": transferred, "money_box": target}
