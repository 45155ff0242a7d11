from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.exceptions import RecordNotFoundError, ValidationError
from cashbox.models.base import get_db
from cashbox.models.entities import Debt, DebtPayment, Installment, InstallmentPayment, Sale
from cashbox.models.user import User
from cashbox.serializers import ok, record_to_dict
from cashbox.services.amounts import D, positive_amount, round2
from cashbox.services.posting import plan_debt_repayment, plan_installment_payment, post_and_commit
from cashbox.validation import Amount, MoneyBoxRouted, PaymentMethod

router = APIRouter(tags=["debts"])


class ReceivableIn(BaseModel):
    customer_name: Optional[str] = None
    sale_id: Optional[int] = None
    amount: Amount
    due_date: Optional[date] = None


class PaymentIn(MoneyBoxRouted):
    amount: Amount
    payment_method: PaymentMethod = "cash"


def _settle(receivable, amount) -> None:
    """Adds a payment to a debt/installment and moves its status."""
    remaining = round2(D(receivable.amount) - D(receivable.paid_amount))
    if amount > remaining:
        raise ValidationError(messages.AMOUNT_EXCEEDS_REMAINING, field="amount")
    receivable.paid_amount = round2(D(receivable.paid_amount) + amount)
    receivable.status = "paid" if receivable.paid_amount >= D(receivable.amount) else "partial"


def _check_sale(db: Session, sale_id: Optional[int]) -> None:
    if sale_id is not None and db.get(Sale, sale_id) is None:
        raise RecordNotFoundError("sale", sale_id)


# ---------- debts ----------

@router.post("/debts", status_code=201)
def create_debt(data: ReceivableIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    _check_sale(db, data.sale_id)
    debt = Debt(
        customer_name=data.customer_name,
        sale_id=data.sale_id,
        amount=positive_amount(data.amount),
        paid_amount=0,
        status="unpaid",
        due_date=data.due_date,
    )
    db.add(debt)
    db.flush()
    body = record_to_dict(debt)
    db.commit()
    return ok(body, messages.SAVED)


@router.post("/debts/{debt_id}/repay")
def repay_debt(debt_id: int, data: PaymentIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    debt = db.get(Debt, debt_id)
    if debt is None:
        raise RecordNotFoundError("debt", debt_id)

    amount = positive_amount(data.amount)
    _settle(debt, amount)
    payment = DebtPayment(
        debt_id=debt.id,
        amount=amount,
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        created_by=user.id,
    )
    db.add(payment)
    db.flush()

    body = {"debt": record_to_dict(debt), "payment": record_to_dict(payment), "id": payment.id}
    body["ledger_entries"] = post_and_commit(db, user.id, plan_debt_repayment(payment, debt))
    return ok(body, messages.SAVED)


# ---------- installments ----------

@router.post("/installments", status_code=201)
def create_installment(data: ReceivableIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    _check_sale(db, data.sale_id)
    inst = Installment(
        customer_name=data.customer_name,
        sale_id=data.sale_id,
        amount=positive_amount(data.amount),
        paid_amount=0,
        status="unpaid",
        due_date=data.due_date,
    )
    db.add(inst)
    db.flush()
    body = record_to_dict(inst)
    db.commit()
    return ok(body, messages.SAVED)


@router.post("/installments/{installment_id}/payment")
def pay_installment(installment_id: int, data: PaymentIn, db: Session = Depends(get_db),
                    user: User = Depends(require_user)):
    inst = db.get(Installment, installment_id)
    if inst is None:
        raise RecordNotFoundError("installment", installment_id)

    amount = positive_amount(data.amount)
    _settle(inst, amount)
    payment = InstallmentPayment(
        installment_id=inst.id,
        amount=amount,
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        created_by=user.id,
    )
    db.add(payment)
    db.flush()

    body = {"installment": record_to_dict(inst), "payment": record_to_dict(payment), "id": payment.id}
    body["ledger_entries"] = post_and_commit(db, user.id, plan_installment_payment(payment, inst))
    return ok(body, messages.SAVED)
