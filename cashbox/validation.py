from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from cashbox.config import settings as app_settings


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _money_box_ref(v: Any):
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip()
        if v in ("", app_settings.MAIN_CASH_BOX_SENTINEL):
            return None
        if not v.isdigit():
            raise ValueError("money_box_id must be a box id or 'cash_box'")
    return v


PaymentMethod = Annotated[str, BeforeValidator(_to_lower_str)]

# None means the user's own cash box
MoneyBoxRef = Annotated[Optional[int], BeforeValidator(_money_box_ref)]

Amount = Annotated[Decimal, Field(allow_inf_nan=False)]


class MoneyBoxRouted(BaseModel):
    """Request bodies that may redirect their posting to a money box."""

    model_config = ConfigDict(populate_by_name=True)

    money_box_id: MoneyBoxRef = Field(
        default=None, validation_alias=AliasChoices("money_box_id", "moneyBoxId")
    )
