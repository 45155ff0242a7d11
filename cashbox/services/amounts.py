from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from cashbox import messages
from cashbox.exceptions import ValidationError

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")

def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None or x == "":
        return Decimal("0")
    try:
        return Decimal(str(x))
    except InvalidOperation as exc:
        raise ValidationError(messages.VALIDATION_FAILED, field="amount") from exc

def round2(x: Decimal) -> Decimal:
    return x.quantize(Q2, rounding=ROUND_HALF_UP)

def money(x) -> Decimal:
    """Parses and rounds to cents. NaN/Infinity are rejected."""
    d = D(x)
    if not d.is_finite():
        raise ValidationError(messages.VALIDATION_FAILED, field="amount")
    return round2(d)

def positive_amount(x, field: str = "amount") -> Decimal:
    amt = money(x)
    if amt <= 0:
        raise ValidationError(messages.AMOUNT_MUST_BE_POSITIVE, field=field)
    return amt

def as_float(x) -> float:
    # JSON responses carry plain numbers like the rest of the API
    return float(round2(D(x)))
