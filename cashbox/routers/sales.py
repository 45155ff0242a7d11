from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.exceptions import RecordNotFoundError, ValidationError
from cashbox.models.base import get_db
from cashbox.models.entities import Sale, SaleReturn
from cashbox.models.user import User
from cashbox.serializers import ok, record_to_dict
from cashbox.services.amounts import D, money, positive_amount, round2
from cashbox.services.posting import plan_sale, plan_sale_return, post_and_commit
from cashbox.validation import Amount, MoneyBoxRouted, PaymentMethod

router = APIRouter(prefix="/sales", tags=["sales"])


class SaleIn(MoneyBoxRouted):
    customer_name: Optional[str] = None
    total_amount: Amount
    paid_amount: Optional[Amount] = None
    payment_method: PaymentMethod = "cash"
    notes: Optional[str] = None


class SaleReturnIn(MoneyBoxRouted):
    amount: Amount
    refund_method: PaymentMethod = "cash"
    reason: Optional[str] = None


def _check_refundable(db: Session, sale: Sale, amount) -> None:
    """A sale can be refunded up to what was paid, less earlier returns."""
    returned = (
        db.query(func.coalesce(func.sum(SaleReturn.amount), 0))
        .filter(SaleReturn.sale_id == sale.id)
        .scalar()
    )
    remaining = round2(D(sale.paid_amount) - D(returned))
    if amount > remaining:
        raise ValidationError(messages.RETURN_EXCEEDS_REMAINING.format(remaining=remaining), field="amount")


@router.post("", status_code=201)
def create_sale(data: SaleIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    total = money(data.total_amount)
    paid = total if data.paid_amount is None else money(data.paid_amount)
    if total < 0 or paid < 0:
        raise ValidationError(messages.AMOUNT_MUST_BE_POSITIVE, field="paid_amount")

    sale = Sale(
        customer_name=data.customer_name,
        total_amount=total,
        paid_amount=paid,
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        notes=data.notes,
        created_by=user.id,
    )
    db.add(sale)
    db.flush()

    body = record_to_dict(sale)
    body["ledger_entries"] = post_and_commit(db, user.id, plan_sale(sale))
    return ok(body, messages.SAVED)


@router.post("/{sale_id}/return", status_code=201)
def return_sale(sale_id: int, data: SaleReturnIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise RecordNotFoundError("sale", sale_id)

    amount = positive_amount(data.amount)
    _check_refundable(db, sale, amount)

    ret = SaleReturn(
        sale_id=sale.id,
        amount=amount,
        refund_method=data.refund_method,
        reason=data.reason,
        created_by=user.id,
    )
    db.add(ret)
    db.flush()

    body = record_to_dict(ret)
    body["ledger_entries"] = post_and_commit(db, user.id, plan_sale_return(ret, data.money_box_id))
    return ok(body, messages.SAVED)
