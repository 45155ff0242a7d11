from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.exceptions import RecordNotFoundError, ValidationError
from cashbox.models.base import get_db
from cashbox.models.entities import Purchase, PurchaseReturn
from cashbox.models.user import User
from cashbox.serializers import ok, record_to_dict
from cashbox.services.amounts import D, money, positive_amount, round2
from cashbox.services.posting import plan_purchase, plan_purchase_return, post_and_commit
from cashbox.validation import Amount, MoneyBoxRouted, PaymentMethod

router = APIRouter(prefix="/purchases", tags=["purchases"])


class PurchaseIn(MoneyBoxRouted):
    supplier_name: Optional[str] = None
    total_amount: Amount
    paid_amount: Amount = 0
    payment_method: PaymentMethod = "cash"
    payment_status: str = "paid"
    notes: Optional[str] = None


class PurchaseReturnIn(MoneyBoxRouted):
    amount: Amount
    refund_method: PaymentMethod = "cash"
    reason: Optional[str] = None


def _check_refundable(db: Session, purchase: Purchase, amount) -> None:
    returned = (
        db.query(func.coalesce(func.sum(PurchaseReturn.amount), 0))
        .filter(PurchaseReturn.purchase_id == purchase.id)
        .scalar()
    )
    remaining = round2(D(purchase.paid_amount) - D(returned))
    if amount > remaining:
        raise ValidationError(messages.RETURN_EXCEEDS_REMAINING.format(remaining=remaining), field="amount")


@router.post("", status_code=201)
def create_purchase(data: PurchaseIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    total = money(data.total_amount)
    paid = money(data.paid_amount)
    if total < 0 or paid < 0:
        raise ValidationError(messages.AMOUNT_MUST_BE_POSITIVE, field="paid_amount")

    purchase = Purchase(
        supplier_name=data.supplier_name,
        total_amount=total,
        paid_amount=paid,
        payment_method=data.payment_method,
        payment_status=data.payment_status.strip(),
        money_box_id=data.money_box_id,
        notes=data.notes,
        created_by=user.id,
    )
    db.add(purchase)
    db.flush()

    body = record_to_dict(purchase)
    # an insufficient balance rolls the purchase back
    body["ledger_entries"] = post_and_commit(db, user.id, plan_purchase(purchase))
    return ok(body, messages.SAVED)


@router.post("/{purchase_id}/return", status_code=201)
def return_purchase(purchase_id: int, data: PurchaseReturnIn, db: Session = Depends(get_db),
                    user: User = Depends(require_user)):
    purchase = db.get(Purchase, purchase_id)
    if purchase is None:
        raise RecordNotFoundError("purchase", purchase_id)

    amount = positive_amount(data.amount)
    _check_refundable(db, purchase, amount)

    ret = PurchaseReturn(
        purchase_id=purchase.id,
        amount=amount,
        refund_method=data.refund_method,
        reason=data.reason,
        created_by=user.id,
    )
    db.add(ret)
    db.flush()

    body = record_to_dict(ret)
    body["ledger_entries"] = post_and_commit(
        db, user.id, plan_purchase_return(ret, purchase, data.money_box_id)
    )
    return ok(body, messages.SAVED)
