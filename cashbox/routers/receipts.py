from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.models.base import get_db
from cashbox.models.entities import CustomerReceipt, SupplierPaymentReceipt
from cashbox.models.user import User
from cashbox.serializers import ok, record_to_dict
from cashbox.services.amounts import positive_amount
from cashbox.services.posting import plan_customer_receipt, plan_supplier_payment, post_and_commit
from cashbox.validation import Amount, MoneyBoxRouted, PaymentMethod

router = APIRouter(tags=["receipts"])


class ReceiptIn(MoneyBoxRouted):
    amount: Amount
    payment_method: PaymentMethod = "cash"
    receipt_date: Optional[date] = None
    notes: Optional[str] = None


class CustomerReceiptIn(ReceiptIn):
    customer_name: Optional[str] = None


class SupplierPaymentIn(ReceiptIn):
    supplier_name: Optional[str] = None


@router.post("/customer-receipts", status_code=201)
def create_customer_receipt(data: CustomerReceiptIn, db: Session = Depends(get_db),
                            user: User = Depends(require_user)):
    receipt = CustomerReceipt(
        customer_name=data.customer_name,
        amount=positive_amount(data.amount),
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        receipt_date=data.receipt_date or date.today(),
        notes=data.notes,
        created_by=user.id,
    )
    db.add(receipt)
    db.flush()

    body = record_to_dict(receipt)
    body["ledger_entries"] = post_and_commit(db, user.id, plan_customer_receipt(receipt))
    return ok(body, messages.SAVED)


@router.post("/supplier-payment-receipts", status_code=201)
def create_supplier_payment(data: SupplierPaymentIn, db: Session = Depends(get_db),
                            user: User = Depends(require_user)):
    receipt = SupplierPaymentReceipt(
        supplier_name=data.supplier_name,
        amount=positive_amount(data.amount),
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        receipt_date=data.receipt_date or date.today(),
        notes=data.notes,
        created_by=user.id,
    )
    db.add(receipt)
    db.flush()

    body = record_to_dict(receipt)
    body["ledger_entries"] = post_and_commit(db, user.id, plan_supplier_payment(receipt))
    return ok(body, messages.SAVED)
