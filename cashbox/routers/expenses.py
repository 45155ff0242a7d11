from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.exceptions import RecordNotFoundError
from cashbox.models.base import get_db
from cashbox.models.entities import Expense
from cashbox.models.user import User
from cashbox.serializers import ok, record_to_dict
from cashbox.services.amounts import positive_amount
from cashbox.services.posting import ExpenseSnapshot, plan_expense, plan_expense_update, post_and_commit
from cashbox.validation import Amount, MoneyBoxRouted, PaymentMethod

router = APIRouter(prefix="/expenses", tags=["expenses"])


class ExpenseIn(MoneyBoxRouted):
    description: Optional[str] = None
    amount: Amount
    category: Optional[str] = None
    expense_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("date", "expense_date"))
    payment_method: PaymentMethod = "cash"


class ExpenseUpdate(MoneyBoxRouted):
    description: Optional[str] = None
    amount: Optional[Amount] = None
    category: Optional[str] = None
    expense_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("date", "expense_date"))
    payment_method: Optional[PaymentMethod] = None


@router.post("", status_code=201)
def create_expense(data: ExpenseIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    expense = Expense(
        description=data.description,
        amount=positive_amount(data.amount),
        category=data.category,
        date=data.expense_date or date.today(),
        payment_method=data.payment_method,
        money_box_id=data.money_box_id,
        created_by=user.id,
    )
    db.add(expense)
    db.flush()

    body = record_to_dict(expense)
    # an insufficient balance rolls the expense back
    body["ledger_entries"] = post_and_commit(db, user.id, plan_expense(expense))
    return ok(body, messages.SAVED)


@router.put("/{expense_id}")
def update_expense(expense_id: int, data: ExpenseUpdate, db: Session = Depends(get_db),
                   user: User = Depends(require_user)):
    expense = db.get(Expense, expense_id)
    if expense is None:
        raise RecordNotFoundError("expense", expense_id)

    before = ExpenseSnapshot.of(expense)
    if data.description is not None:
        expense.description = data.description
    if data.amount is not None:
        expense.amount = positive_amount(data.amount)
    if data.category is not None:
        expense.category = data.category
    if data.expense_date is not None:
        expense.date = data.expense_date
    if data.payment_method is not None:
        expense.payment_method = data.payment_method
    # an explicit null moves the expense back to the cash box
    if "money_box_id" in data.model_fields_set:
        expense.money_box_id = data.money_box_id
    db.flush()

    body = record_to_dict(expense)
    body["ledger_entries"] = post_and_commit(db, user.id, plan_expense_update(before, expense))
    return ok(body, messages.SAVED)
