"""
Posting: turns business writes into ledger entries.

Each money-moving business event (sale, purchase, expense, receipt, payment,
return, debt repayment, installment payment) has a *planner*: a pure function
that reads the just-written record and returns a ``PostingPlan``. The route
handler hands the plan to ``TransactionInjector.apply`` inside the same
database transaction as the business write, then commits.

Failure policies:
    COMPENSATE  expense create/update, purchase create. A posting failure
                rolls back the whole request transaction, so the business
                record is never persisted, and the error reaches the client.
    LOG         every other event. Each posting runs in a savepoint; a
                failure is logged and only that posting is dropped. The
                business write still commits.

Planners only read ``payment_method``, the amount, ``money_box_id`` and the
record id. ``money_box_id`` of None means "the user's open cash box".
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.config import settings as app_settings
from cashbox.exceptions import CashboxError
from cashbox.logging_config import get_logger
from cashbox.services.amounts import D, ZERO, round2
from cashbox.services.cash_box import CashBoxService
from cashbox.services.money_boxes import MoneyBoxService

logger = get_logger("services.posting")

# Business events
SALE_CREATED = "sale_created"
SALE_RETURNED = "sale_returned"
PURCHASE_CREATED = "purchase_created"
PURCHASE_RETURNED = "purchase_returned"
EXPENSE_CREATED = "expense_created"
EXPENSE_UPDATED = "expense_updated"
CUSTOMER_RECEIPT_CREATED = "customer_receipt_created"
SUPPLIER_PAYMENT_CREATED = "supplier_payment_created"
DEBT_REPAID = "debt_repaid"
INSTALLMENT_PAID = "installment_paid"


class FailurePolicy(str, enum.Enum):
    COMPENSATE = "compensate"
    LOG = "log"


@dataclass(frozen=True)
class PostingInstruction:
    transaction_type: str
    amount: Decimal
    reference_type: str
    reference_id: Optional[int]
    description: str
    notes: Optional[str] = None
    money_box_id: Optional[int] = None
    fallback_to_cash_box: bool = False


@dataclass
class PostingPlan:
    event: str
    record_id: Optional[int]
    policy: FailurePolicy
    instructions: list[PostingInstruction] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def empty(self) -> bool:
        return not self.instructions


@dataclass(frozen=True)
class ExpenseSnapshot:
    """Expense fields as they were before an update."""

    amount: Decimal
    money_box_id: Optional[int]
    payment_method: str = "cash"
    description: Optional[str] = None

    @classmethod
    def of(cls, expense) -> "ExpenseSnapshot":
        return cls(
            amount=round2(D(expense.amount)),
            money_box_id=expense.money_box_id,
            payment_method=expense.payment_method,
            description=expense.description,
        )


# ---------- helpers ----------

def is_cash(method: Optional[str]) -> bool:
    return (method or "").strip().lower() in app_settings.CASH_PAYMENT_METHODS


def _amount(value) -> Decimal:
    return round2(D(value or 0))


def _skip(event: str, record_id, policy: FailurePolicy, reason: str) -> PostingPlan:
    return PostingPlan(event, record_id, policy, [], skipped_reason=reason)


def _single(event: str, record, policy: FailurePolicy, *, method: Optional[str], amount,
            transaction_type: str, reference_type: str, description: str,
            notes: Optional[str] = None, money_box_id: Optional[int] = None,
            fallback_to_cash_box: bool = False) -> PostingPlan:
    if not is_cash(method):
        return _skip(event, record.id, policy, "not_cash")
    amt = _amount(amount)
    if amt <= 0:
        return _skip(event, record.id, policy, "zero_amount")
    return PostingPlan(event, record.id, policy, [
        PostingInstruction(
            transaction_type=transaction_type,
            amount=amt,
            reference_type=reference_type,
            reference_id=record.id,
            description=description,
            notes=notes,
            money_box_id=money_box_id,
            fallback_to_cash_box=fallback_to_cash_box,
        )
    ])


# ---------- planners ----------

def plan_sale(sale) -> PostingPlan:
    return _single(
        SALE_CREATED, sale, FailurePolicy.LOG,
        method=sale.payment_method, amount=sale.paid_amount,
        transaction_type="sale", reference_type="sale",
        description=messages.DESC_SALE.format(id=sale.id),
        notes=sale.notes, money_box_id=sale.money_box_id,
    )


def plan_purchase(purchase) -> PostingPlan:
    if (purchase.payment_status or "").strip().lower() not in app_settings.PAID_PURCHASE_STATUSES:
        return _skip(PURCHASE_CREATED, purchase.id, FailurePolicy.COMPENSATE, "unpaid")
    return _single(
        PURCHASE_CREATED, purchase, FailurePolicy.COMPENSATE,
        method=purchase.payment_method, amount=purchase.paid_amount,
        transaction_type="purchase", reference_type="purchase",
        description=messages.DESC_PURCHASE.format(id=purchase.id),
        notes=purchase.notes, money_box_id=purchase.money_box_id,
    )


def _expense_label(description: Optional[str]) -> str:
    return (description or "").strip() or messages.DESC_EXPENSE_DEFAULT


def plan_expense(expense) -> PostingPlan:
    return _single(
        EXPENSE_CREATED, expense, FailurePolicy.COMPENSATE,
        method=expense.payment_method, amount=expense.amount,
        transaction_type="expense", reference_type="expense",
        description=messages.DESC_EXPENSE.format(description=_expense_label(expense.description)),
        money_box_id=expense.money_box_id,
    )


def plan_expense_update(before: ExpenseSnapshot, expense) -> PostingPlan:
    """
    Net-effect correction of an edited expense.

    Same box: one row for the delta (expense_update debit if it grew,
    expense_reversal credit if it shrank). Box changed: the old box gets
    the full old amount back and the new box is debited the full new
    amount, as two independent rows. Non-cash sides count as zero.
    """
    old_amt = before.amount if is_cash(before.payment_method) else ZERO
    new_amt = _amount(expense.amount) if is_cash(expense.payment_method) else ZERO
    label = _expense_label(expense.description)
    reversal_desc = messages.DESC_EXPENSE_REVERSAL.format(description=_expense_label(before.description))
    update_desc = messages.DESC_EXPENSE_UPDATE.format(description=label)

    def _instr(tx_type, amount, box_id, desc):
        return PostingInstruction(
            transaction_type=tx_type, amount=amount, reference_type="expense",
            reference_id=expense.id, description=desc, money_box_id=box_id,
        )

    out: list[PostingInstruction] = []
    if before.money_box_id == expense.money_box_id:
        delta = round2(new_amt - old_amt)
        if delta > 0:
            out.append(_instr("expense_update", delta, expense.money_box_id, update_desc))
        elif delta < 0:
            out.append(_instr("expense_reversal", -delta, expense.money_box_id, reversal_desc))
    else:
        if old_amt > 0:
            out.append(_instr("expense_reversal", old_amt, before.money_box_id, reversal_desc))
        if new_amt > 0:
            out.append(_instr("expense_update", new_amt, expense.money_box_id, update_desc))

    if not out:
        return _skip(EXPENSE_UPDATED, expense.id, FailurePolicy.COMPENSATE, "unchanged")
    return PostingPlan(EXPENSE_UPDATED, expense.id, FailurePolicy.COMPENSATE, out)


def plan_customer_receipt(receipt) -> PostingPlan:
    return _single(
        CUSTOMER_RECEIPT_CREATED, receipt, FailurePolicy.LOG,
        method=receipt.payment_method, amount=receipt.amount,
        transaction_type="customer_receipt", reference_type="customer_receipt",
        description=messages.DESC_CUSTOMER_RECEIPT.format(name=receipt.customer_name or messages.UNKNOWN_PARTY),
        notes=receipt.notes, money_box_id=receipt.money_box_id,
    )


def plan_supplier_payment(receipt) -> PostingPlan:
    return _single(
        SUPPLIER_PAYMENT_CREATED, receipt, FailurePolicy.LOG,
        method=receipt.payment_method, amount=receipt.amount,
        transaction_type="supplier_payment", reference_type="supplier_payment",
        description=messages.DESC_SUPPLIER_PAYMENT.format(name=receipt.supplier_name or messages.UNKNOWN_PARTY),
        notes=receipt.notes, money_box_id=receipt.money_box_id,
    )


def plan_sale_return(sale_return, money_box_id: Optional[int] = None) -> PostingPlan:
    return _single(
        SALE_RETURNED, sale_return, FailurePolicy.LOG,
        method=sale_return.refund_method, amount=sale_return.amount,
        transaction_type="withdrawal", reference_type="sale_return",
        description=messages.DESC_SALE_RETURN.format(id=sale_return.sale_id),
        notes=sale_return.reason, money_box_id=money_box_id,
    )


def plan_purchase_return(purchase_return, purchase, money_box_id: Optional[int] = None) -> PostingPlan:
    """Refund goes back to the purchase's money box, else the cash box."""
    target = money_box_id if money_box_id is not None else purchase.money_box_id
    return _single(
        PURCHASE_RETURNED, purchase_return, FailurePolicy.LOG,
        method=purchase_return.refund_method, amount=purchase_return.amount,
        transaction_type="deposit", reference_type="purchase_return",
        description=messages.DESC_PURCHASE_RETURN.format(id=purchase.id),
        notes=purchase_return.reason, money_box_id=target,
        fallback_to_cash_box=target is not None,
    )


def plan_debt_repayment(payment, debt) -> PostingPlan:
    plan = _single(
        DEBT_REPAID, payment, FailurePolicy.LOG,
        method=payment.payment_method, amount=payment.amount,
        transaction_type="customer_receipt", reference_type="debt",
        description=messages.DESC_DEBT_REPAYMENT.format(id=debt.sale_id or debt.id),
        money_box_id=payment.money_box_id,
    )
    return _rereference(plan, debt.id)


def plan_installment_payment(payment, installment) -> PostingPlan:
    plan = _single(
        INSTALLMENT_PAID, payment, FailurePolicy.LOG,
        method=payment.payment_method, amount=payment.amount,
        transaction_type="customer_receipt", reference_type="installment",
        description=messages.DESC_INSTALLMENT_PAYMENT.format(id=installment.id),
        money_box_id=payment.money_box_id,
    )
    return _rereference(plan, installment.id)


def _rereference(plan: PostingPlan, reference_id: int) -> PostingPlan:
    # debt/installment rows point at the receivable, not the payment row
    plan.instructions = [replace(i, reference_id=reference_id) for i in plan.instructions]
    return plan


# ---------- orchestrator ----------

class TransactionInjector:
    """
    Applies a PostingPlan inside the caller's open transaction.

    Never commits; the route handler commits after ``apply`` returns, so the
    business write and its ledger rows land together.
    """

    def __init__(self, db: Session, user_id: int):
        self.db = db
        self.user_id = user_id
        self.cash_boxes = CashBoxService(db)
        self.money_boxes = MoneyBoxService(db)

    def apply(self, plan: PostingPlan) -> list:
        if plan.empty:
            logger.debug(
                "posting_skipped",
                extra={"event": plan.event, "record_id": plan.record_id, "reason": plan.skipped_reason},
            )
            return []
        if plan.policy is FailurePolicy.COMPENSATE:
            return self._apply_compensating(plan)
        return self._apply_logged(plan)

    def _apply_compensating(self, plan: PostingPlan) -> list:
        rows = []
        try:
            for instr in plan.instructions:
                rows.append(self._post(instr))
        except Exception as exc:
            self.db.rollback()
            logger.warning(
                "business_write_compensated",
                extra={
                    "event": plan.event,
                    "record_id": plan.record_id,
                    "error_code": getattr(exc, "code", type(exc).__name__),
                },
            )
            raise
        self._log_applied(plan, rows)
        return rows

    def _apply_logged(self, plan: PostingPlan) -> list:
        rows = []
        for instr in plan.instructions:
            try:
                with self.db.begin_nested():
                    rows.append(self._post(instr))
            except CashboxError as exc:
                logger.error(
                    "posting_failed",
                    extra={
                        "event": plan.event,
                        "record_id": plan.record_id,
                        "transaction_type": instr.transaction_type,
                        "amount": instr.amount,
                        "money_box_id": instr.money_box_id,
                        "error_code": exc.code,
                        "error_message": exc.message,
                    },
                )
        if rows:
            self._log_applied(plan, rows)
        return rows

    def _log_applied(self, plan: PostingPlan, rows: list) -> None:
        logger.info(
            "posting_applied",
            extra={"event": plan.event, "record_id": plan.record_id, "entries": [r.id for r in rows]},
        )

    def _post(self, instr: PostingInstruction):
        if instr.money_box_id is None:
            box = self.cash_boxes.require_open_cash_box(self.user_id)
            return self.cash_boxes.add_transaction(
                box.id,
                self.user_id,
                instr.transaction_type,
                instr.amount,
                instr.reference_type,
                instr.reference_id,
                instr.description,
                instr.notes,
            )

        if not instr.fallback_to_cash_box:
            return self._post_money_box(instr)

        try:
            with self.db.begin_nested():
                return self._post_money_box(instr)
        except CashboxError as exc:
            logger.warning(
                "posting_fallback",
                extra={
                    "money_box_id": instr.money_box_id,
                    "reference_type": instr.reference_type,
                    "reference_id": instr.reference_id,
                    "error_code": exc.code,
                },
            )
            return self._post(replace(instr, money_box_id=None, fallback_to_cash_box=False))

    def _post_money_box(self, instr: PostingInstruction):
        return self.money_boxes.add_transaction(
            instr.money_box_id,
            instr.transaction_type,
            instr.amount,
            instr.description,
            self.user_id,
            reference_type=instr.reference_type,
            reference_id=instr.reference_id,
        )


def post_and_commit(db: Session, user_id: int, plan: PostingPlan) -> list[int]:
    """Applies the plan and commits the business write with its ledger rows."""
    rows = TransactionInjector(db, user_id).apply(plan)
    ids = [r.id for r in rows]
    db.commit()
    return ids
