"""Money value type.

Totals are only ever accumulated per currency code: adding a USD row to an
INR row is a bug, not a number.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Money(BaseModel):
    """An amount tied to its ISO currency code."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., description="Amount in major units.")
    currency_code: str = Field(..., min_length=3, max_length=3)

    @field_validator("currency_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency_code}"


def sum_by_currency(items: Iterable[Money]) -> dict[str, Decimal]:
    """Group and sum amounts by currency, keeping first-seen order of codes."""

    totals: dict[str, Decimal] = {}
    for money in items:
        totals[money.currency_code] = totals.get(money.currency_code, Decimal("0")) + money.amount
    return totals
