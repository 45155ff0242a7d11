from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.config.settings import page_window
from cashbox.deps import require_admin, require_user
from cashbox.exceptions import ValidationError
from cashbox.models.base import get_db
from cashbox.models.user import User
from cashbox.serializers import money_box_to_dict, money_tx_to_dict, ok, page
from cashbox.services.amounts import as_float
from cashbox.services.money_boxes import MoneyBoxService
from cashbox.validation import Amount

router = APIRouter(prefix="/money-boxes", tags=["money-boxes"])

# Types a client may post directly; the rest are written by the system
CLIENT_TX_TYPES = {"deposit", "withdraw", "transfer_in", "transfer_out"}


class MoneyBoxIn(BaseModel):
    name: Optional[str] = None
    amount: Optional[Amount] = None
    notes: Optional[str] = None


class MoneyBoxTxIn(BaseModel):
    type: str
    amount: Amount
    notes: Optional[str] = None


class TransferIn(BaseModel):
    from_box_id: int = Field(validation_alias=AliasChoices("fromBoxId", "from_box_id"))
    to_box_id: int = Field(validation_alias=AliasChoices("toBoxId", "to_box_id"))
    amount: Amount
    notes: Optional[str] = None


def _summary_dict(summary: dict) -> dict:
    stats = summary["statistics"]
    return {
        "moneyBox": money_box_to_dict(summary["moneyBox"]),
        "statistics": {
            "total_transactions": stats["total_transactions"],
            "total_deposits": as_float(stats["total_deposits"]),
            "total_withdrawals": as_float(stats["total_withdrawals"]),
            "current_balance": as_float(stats["current_balance"]),
            "last_transaction_date": stats["last_transaction_date"].isoformat()
            if stats["last_transaction_date"] else None,
        },
    }


@router.get("")
def list_money_boxes(db: Session = Depends(get_db), user: User = Depends(require_user)):
    return ok([money_box_to_dict(b) for b in MoneyBoxService(db).list_boxes()])


@router.get("/summary")
def all_money_boxes_summary(db: Session = Depends(get_db), user: User = Depends(require_user)):
    summary = MoneyBoxService(db).all_boxes_summary()
    return ok({
        "moneyBoxes": [_summary_dict(s) for s in summary["moneyBoxes"]],
        "totalBalance": as_float(summary["totalBalance"]),
        "totalBoxes": summary["totalBoxes"],
    })


@router.post("/transfer")
def transfer_between_boxes(data: TransferIn, db: Session = Depends(get_db), user: User = Depends(require_user)):
    out_row, in_row = MoneyBoxService(db).transfer_between_boxes(
        data.from_box_id, data.to_box_id, data.amount, data.notes, user.id
    )
    body = ok(
        {"transfer_out": money_tx_to_dict(out_row), "transfer_in": money_tx_to_dict(in_row)},
        messages.TRANSFER_DONE,
    )
    db.commit()
    return body


@router.post("", status_code=201)
def create_money_box(data: MoneyBoxIn, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    box = MoneyBoxService(db).create_box(data.name, data.amount or 0, data.notes, user.id)
    body = ok(money_box_to_dict(box), messages.MONEY_BOX_CREATED)
    db.commit()
    return body


@router.get("/{box_id}")
def get_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return ok(money_box_to_dict(MoneyBoxService(db).get_box(box_id)))


@router.put("/{box_id}")
def update_money_box(box_id: int, data: MoneyBoxIn, db: Session = Depends(get_db),
                     user: User = Depends(require_admin)):
    box = MoneyBoxService(db).update_box(box_id, data.name, data.notes)
    body = ok(money_box_to_dict(box), messages.MONEY_BOX_UPDATED)
    db.commit()
    return body


@router.delete("/{box_id}")
def delete_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    MoneyBoxService(db).delete_box(box_id)
    db.commit()
    return ok({"id": box_id}, messages.MONEY_BOX_DELETED)


@router.get("/{box_id}/summary")
def money_box_summary(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return ok(_summary_dict(MoneyBoxService(db).box_summary(box_id)))


@router.get("/{box_id}/verify")
def verify_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    result = MoneyBoxService(db).verify(box_id)
    result["cached_balance"] = as_float(result["cached_balance"])
    result["ledger_balance"] = as_float(result["ledger_balance"])
    return ok(result)


@router.post("/{box_id}/transactions")
def add_money_box_transaction(box_id: int, data: MoneyBoxTxIn, db: Session = Depends(get_db),
                              user: User = Depends(require_user)):
    tx_type = (data.type or "").strip()
    if tx_type not in CLIENT_TX_TYPES:
        raise ValidationError(messages.INVALID_TRANSACTION_TYPE, field="type")
    row = MoneyBoxService(db).add_transaction(box_id, tx_type, data.amount, data.notes, user.id)
    body = ok(money_tx_to_dict(row), messages.TRANSACTION_ADDED)
    db.commit()
    return body


@router.get("/{box_id}/transactions")
def money_box_transactions(box_id: int, limit: Optional[int] = None, offset: Optional[int] = None,
                           db: Session = Depends(get_db), user: User = Depends(require_user)):
    lim, off = page_window(limit, offset)
    rows, total = MoneyBoxService(db).transactions(box_id, lim, off)
    return ok(page((money_tx_to_dict(r) for r in rows), total, lim, off))


@router.get("/{box_id}/transactions/date-range")
def money_box_transactions_by_date(box_id: int, start_date: date, end_date: date,
                                   limit: Optional[int] = None, offset: Optional[int] = None,
                                   db: Session = Depends(get_db), user: User = Depends(require_user)):
    if end_date < start_date:
        raise ValidationError(field="end_date")
    lim, off = page_window(limit, offset)
    rows, total = MoneyBoxService(db).transactions_between(
        box_id, datetime.combine(start_date, time.min), datetime.combine(end_date, time.max), lim, off
    )
    body = page((money_tx_to_dict(r) for r in rows), total, lim, off)
    body["dateRange"] = {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}
    return ok(body)
