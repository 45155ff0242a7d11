from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.config.settings import page_window
from cashbox.deps import require_admin, require_user
from cashbox.exceptions import PermissionDeniedError
from cashbox.models.base import get_db
from cashbox.models.user import User
from cashbox.serializers import (
    cash_box_to_dict,
    cash_tx_to_dict,
    money_box_to_dict,
    money_tx_to_dict,
    ok,
    page,
    settings_to_dict,
)
from cashbox.services.amounts import as_float
from cashbox.services.auth import is_admin_or_owner
from cashbox.services.cash_box import CashBoxService
from cashbox.validation import Amount, MoneyBoxRef

router = APIRouter(prefix="/cash-box", tags=["cash-box"])


class OpenIn(BaseModel):
    opening_amount: Optional[Amount] = Field(
        default=None, validation_alias=AliasChoices("opening_amount", "openingAmount")
    )
    notes: Optional[str] = None


class CloseIn(BaseModel):
    closing_amount: Optional[Amount] = Field(
        default=None, validation_alias=AliasChoices("closing_amount", "closingAmount")
    )
    notes: Optional[str] = None


class ManualTxIn(BaseModel):
    transaction_type: str = Field(validation_alias=AliasChoices("transaction_type", "type"))
    amount: Amount
    description: Optional[str] = None
    notes: Optional[str] = None


class SettingsIn(BaseModel):
    default_opening_amount: Optional[Amount] = None
    allow_negative_balance: Optional[bool] = None
    max_withdrawal_amount: Optional[Amount] = None


class TransferIn(BaseModel):
    amount: Amount
    notes: Optional[str] = None


class TransferToBoxIn(TransferIn):
    money_box_name: str = Field(validation_alias=AliasChoices("money_box_name", "moneyBoxName"))


class ForceCloseIn(BaseModel):
    reason: Optional[str] = None
    money_box_id: MoneyBoxRef = Field(default=None, validation_alias=AliasChoices("money_box_id", "moneyBoxId"))


def _transfer_body(cash_row, money_row) -> dict:
    return {"cashBoxTransaction": cash_tx_to_dict(cash_row), "moneyBoxTransaction": money_tx_to_dict(money_row)}


# ---------- own till ----------

@router.get("/my-cash-box")
def my_cash_box(db: Session = Depends(get_db), user: User = Depends(require_user)):
    box = CashBoxService(db).get_user_cash_box(user.id)
    return ok(cash_box_to_dict(box) if box else None)


@router.get("/my-summary")
def my_summary(db: Session = Depends(get_db), user: User = Depends(require_user)):
    s = CashBoxService(db).summary(user.id)
    s["current_amount"] = as_float(s["current_amount"])
    s["today_amount"] = as_float(s["today_amount"])
    s["opened_at"] = s["opened_at"].isoformat() if s["opened_at"] else None
    return ok(s)


@router.get("/my-history")
def my_history(limit: Optional[int] = None, offset: Optional[int] = None,
               db: Session = Depends(get_db), user: User = Depends(require_user)):
    lim, off = page_window(limit, offset)
    rows, total = CashBoxService(db).user_history(user.id, lim, off)
    return ok(page((cash_box_to_dict(b) for b in rows), total, lim, off, key="cash_boxes"))


@router.get("/my-settings")
def my_settings(db: Session = Depends(get_db), user: User = Depends(require_user)):
    row = CashBoxService(db).get_settings(user.id)
    body = ok(settings_to_dict(row))
    db.commit()
    return body


@router.put("/my-settings")
def update_my_settings(data: SettingsIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    row = CashBoxService(db).update_settings(
        user.id,
        default_opening_amount=data.default_opening_amount,
        allow_negative_balance=data.allow_negative_balance,
        max_withdrawal_amount=data.max_withdrawal_amount,
    )
    body = ok(settings_to_dict(row), messages.SETTINGS_SAVED)
    db.commit()
    return body


@router.post("/open", status_code=201)
def open_cash_box(data: OpenIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    box = CashBoxService(db).open_cash_box(user, data.opening_amount, data.notes)
    body = ok(cash_box_to_dict(box), messages.CASH_BOX_OPENED)
    db.commit()
    return body


@router.post("/close")
def close_cash_box(data: CloseIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    box = CashBoxService(db).close_cash_box(user.id, data.closing_amount, data.notes)
    body = ok(cash_box_to_dict(box), messages.CASH_BOX_CLOSED_OK)
    db.commit()
    return body


@router.post("/manual-transaction")
def manual_transaction(data: ManualTxIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    row = CashBoxService(db).manual_transaction(
        user.id, data.transaction_type.strip(), data.amount, data.description, data.notes
    )
    body = ok(cash_tx_to_dict(row) if row else None, messages.TRANSACTION_ADDED)
    db.commit()
    return body


@router.get("/transactions/{cash_box_id}")
def cash_box_transactions(cash_box_id: int, limit: Optional[int] = None, offset: Optional[int] = None,
                          db: Session = Depends(get_db), user: User = Depends(require_user)):
    svc = CashBoxService(db)
    _check_owner(svc, cash_box_id, user)
    lim, off = page_window(limit, offset)
    rows, total = svc.transactions(cash_box_id, lim, off)
    return ok(page((cash_tx_to_dict(r) for r in rows), total, lim, off))


@router.get("/report/{cash_box_id}")
def cash_box_report(cash_box_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None,
                    limit: Optional[int] = None, offset: Optional[int] = None,
                    db: Session = Depends(get_db), user: User = Depends(require_user)):
    svc = CashBoxService(db)
    _check_owner(svc, cash_box_id, user)
    lim, off = page_window(limit, offset)
    rep = svc.report(
        cash_box_id,
        datetime.combine(start_date, time.min) if start_date else None,
        datetime.combine(end_date, time.max) if end_date else None,
        lim, off,
    )
    return ok({
        "cash_box": cash_box_to_dict(rep["cash_box"]),
        "transactions": [cash_tx_to_dict(r) for r in rep["transactions"]],
        "total": rep["total"],
        "limit": lim,
        "offset": off,
        "total_credits": as_float(rep["total_credits"]),
        "total_debits": as_float(rep["total_debits"]),
        "net": as_float(rep["net"]),
        "current_balance": as_float(rep["current_balance"]),
    })


def _check_owner(svc: CashBoxService, cash_box_id: int, user: User) -> None:
    box = svc.get_cash_box(cash_box_id)
    if box.user_id != user.id and not is_admin_or_owner(user):
        raise PermissionDeniedError()


# ---------- till <-> money boxes ----------

@router.post("/transfer-to-daily-money-box")
def transfer_to_daily(data: TransferIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    cash_row, money_row = CashBoxService(db).transfer_to_daily_money_box(user.id, data.amount, data.notes)
    body = ok(_transfer_body(cash_row, money_row), messages.TRANSFER_TO_DAILY_DONE)
    db.commit()
    return body


@router.post("/transfer-from-daily-money-box")
def transfer_from_daily(data: TransferIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    cash_row, money_row = CashBoxService(db).transfer_from_daily_money_box(user.id, data.amount, data.notes)
    body = ok(_transfer_body(cash_row, money_row), messages.TRANSFER_FROM_DAILY_DONE)
    db.commit()
    return body


@router.post("/transfer-to-money-box")
def transfer_to_money_box(data: TransferToBoxIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    cash_row, money_row = CashBoxService(db).transfer_to_money_box(
        user.id, data.amount, data.money_box_name, data.notes
    )
    body = ok(_transfer_body(cash_row, money_row), messages.TRANSFER_TO_BOX_DONE.format(name=data.money_box_name))
    db.commit()
    return body


# ---------- admin ----------

@router.get("/admin/open-cash-boxes")
def admin_open_cash_boxes(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    rows = CashBoxService(db).open_cash_boxes()
    return ok([{**cash_box_to_dict(box), "user_name": owner.full_name} for box, owner in rows])


@router.get("/admin/cash-box/{cash_box_id}")
def admin_get_cash_box(cash_box_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    svc = CashBoxService(db)
    box = svc.get_cash_box(cash_box_id)
    data = cash_box_to_dict(box)
    data["verification"] = {
        k: (as_float(v) if k.endswith("_balance") else v) for k, v in svc.verify(cash_box_id).items()
    }
    return ok(data)


@router.post("/admin/force-close/{cash_box_id}")
def admin_force_close(cash_box_id: int, data: ForceCloseIn, db: Session = Depends(get_db),
                      admin: User = Depends(require_admin)):
    res = CashBoxService(db).force_close(cash_box_id, admin.id, data.reason, data.money_box_id)
    body = ok(
        {
            "cash_box": cash_box_to_dict(res["cash_box"]),
            "transferred_amount": as_float(res["transferred_amount"]),
            "money_box": money_box_to_dict(res["money_box"]) if res["money_box"] else None,
        },
        messages.CASH_BOX_FORCE_CLOSED,
    )
    db.commit()
    return body


@router.get("/admin/history")
def admin_history(status: Optional[str] = None, limit: Optional[int] = None, offset: Optional[int] = None,
                  db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    lim, off = page_window(limit, offset)
    rows, total = CashBoxService(db).all_history(lim, off, status)
    return ok(page((cash_box_to_dict(b) for b in rows), total, lim, off, key="cash_boxes"))
