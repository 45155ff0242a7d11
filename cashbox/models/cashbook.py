# cashbox/models/cashbook.py
from __future__ import annotations
from datetime import datetime
from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, event,
)

from cashbox.exceptions import ImmutableLedgerEntryError
from cashbox.models.base import Base

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"


class CashBox(Base):
    """A user's till for one shift. current_amount mirrors the last ledger row."""

    __tablename__ = "cash_boxes"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    initial_amount = Column(Numeric(12, 2), nullable=False, default=0)
    current_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(10), nullable=False, default=STATUS_OPEN)  # open | closed
    opened_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True)
    opened_by = Column(Integer, nullable=True)
    closed_by = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_OPEN


class CashBoxTransaction(Base):
    __tablename__ = "cash_box_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_cash_box_tx_amount_positive"),)

    id = Column(Integer, primary_key=True)
    cash_box_id = Column(Integer, ForeignKey("cash_boxes.id"), nullable=False)
    user_id = Column(Integer, nullable=False)
    transaction_type = Column(String(40), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    reference_type = Column(String(40), nullable=True)
    reference_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class CashBoxSettings(Base):
    __tablename__ = "user_cash_box_settings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    default_opening_amount = Column(Numeric(12, 2), nullable=False, default=0)
    allow_negative_balance = Column(Boolean, nullable=False, default=False)
    max_withdrawal_amount = Column(Numeric(12, 2), nullable=False, default=0)  # 0 = unlimited
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class MoneyBox(Base):
    __tablename__ = "money_boxes"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class MoneyBoxTransaction(Base):
    __tablename__ = "money_box_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_money_box_tx_amount_positive"),)

    id = Column(Integer, primary_key=True)
    box_id = Column(Integer, ForeignKey("money_boxes.id"), nullable=False)
    transaction_type = Column(String(40), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    reference_type = Column(String(40), nullable=True)
    reference_id = Column(Integer, nullable=True)
    related_box_id = Column(Integer, ForeignKey("money_boxes.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


Index("ix_cash_box_tx_box_id", CashBoxTransaction.cash_box_id, CashBoxTransaction.id)
Index("ix_cash_box_tx_reference", CashBoxTransaction.reference_type, CashBoxTransaction.reference_id)
Index("ix_money_box_tx_box_id", MoneyBoxTransaction.box_id, MoneyBoxTransaction.id)
Index("ix_money_box_tx_reference", MoneyBoxTransaction.reference_type, MoneyBoxTransaction.reference_id)
Index("ix_cash_boxes_user_status", CashBox.user_id, CashBox.status)


# ---------- Ledger rows are append-only ----------

def _register_immutability(model) -> None:
    table = model.__tablename__

    @event.listens_for(model, "before_update")
    def _no_update(mapper, connection, target):
        raise ImmutableLedgerEntryError(table, target.id, "update")

    @event.listens_for(model, "before_delete")
    def _no_delete(mapper, connection, target):
        raise ImmutableLedgerEntryError(table, target.id, "delete")


_register_immutability(CashBoxTransaction)
_register_immutability(MoneyBoxTransaction)
