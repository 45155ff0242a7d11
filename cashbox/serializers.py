# cashbox/serializers.py
"""Row -> JSON dict helpers shared by the routers."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import Numeric

from cashbox.services.amounts import as_float


def _ts(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def cash_box_to_dict(box) -> dict[str, Any]:
    return {
        "id": box.id,
        "user_id": box.user_id,
        "name": box.name,
        "initial_amount": as_float(box.initial_amount),
        "current_amount": as_float(box.current_amount),
        "status": box.status,
        "opened_at": _ts(box.opened_at),
        "closed_at": _ts(box.closed_at),
        "opened_by": box.opened_by,
        "closed_by": box.closed_by,
        "notes": box.notes,
    }


def cash_tx_to_dict(tx) -> dict[str, Any]:
    return {
        "id": tx.id,
        "cash_box_id": tx.cash_box_id,
        "user_id": tx.user_id,
        "transaction_type": tx.transaction_type,
        "amount": as_float(tx.amount),
        "balance_before": as_float(tx.balance_before),
        "balance_after": as_float(tx.balance_after),
        "reference_type": tx.reference_type,
        "reference_id": tx.reference_id,
        "description": tx.description,
        "notes": tx.notes,
        "created_at": _ts(tx.created_at),
    }


def money_box_to_dict(box) -> dict[str, Any]:
    return {
        "id": box.id,
        "name": box.name,
        "amount": as_float(box.amount),
        "notes": box.notes,
        "created_by": box.created_by,
        "created_at": _ts(box.created_at),
        "updated_at": _ts(box.updated_at),
    }


def money_tx_to_dict(tx) -> dict[str, Any]:
    return {
        "id": tx.id,
        "box_id": tx.box_id,
        "type": tx.transaction_type,
        "amount": as_float(tx.amount),
        "balance_before": as_float(tx.balance_before),
        "balance_after": as_float(tx.balance_after),
        "reference_type": tx.reference_type,
        "reference_id": tx.reference_id,
        "related_box_id": tx.related_box_id,
        "notes": tx.notes,
        "created_by": tx.created_by,
        "created_at": _ts(tx.created_at),
    }


def settings_to_dict(s) -> dict[str, Any]:
    return {
        "default_opening_amount": as_float(s.default_opening_amount),
        "allow_negative_balance": bool(s.allow_negative_balance),
        "max_withdrawal_amount": as_float(s.max_withdrawal_amount),
    }


def page(items: Iterable[dict], total: int, limit: int, offset: int, key: str = "transactions") -> dict[str, Any]:
    return {key: list(items), "total": total, "limit": limit, "offset": offset}


def record_to_dict(obj) -> dict[str, Any]:
    """Generic column dump for the thin business records."""
    out: dict[str, Any] = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.name)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        elif isinstance(col.type, Numeric) and val is not None:
            val = as_float(val)
        out[col.name] = val
    return out


def ok(data: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    body.update(extra)
    return body
