"""Payout rails supported by the backend.

Kept in the domain layer so validators, services and the CLI share a single
source of truth without importing adapters.
"""

from __future__ import annotations

from enum import Enum


class ProviderKind(str, Enum):
    """External payment rails a batch can be driven through."""

    PAYOUT = "paypal"
    BANK_TRANSFER = "xe"
    GIFT_CARD = "giftogram"

    @classmethod
    def default(cls) -> "ProviderKind":
        return cls.PAYOUT

    @classmethod
    def from_value(cls, value: "str | ProviderKind") -> "ProviderKind":
        """Accept the wire value (`xe`) or the member name (`bank_transfer`)."""

        if isinstance(value, ProviderKind):
            return value
        key = value.strip().lower()
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown provider: {value!r}")

    @property
    def is_denomination_constrained(self) -> bool:
        """Gift cards only accept fixed increments; transfers take any amount."""

        return self is ProviderKind.GIFT_CARD

    def label(self) -> str:
        return {
            ProviderKind.PAYOUT: "Card/account payout",
            ProviderKind.BANK_TRANSFER: "FX bank transfer",
            ProviderKind.GIFT_CARD: "Gift card",
        }[self]
