"""Rail clients: one per external payment provider, all `PayoutRail`s."""

from __future__ import annotations

import httpx

from adapters.rails.base import BatchRailClient, RailClient
from adapters.rails.giftogram import GiftCardRailClient
from adapters.rails.paypal import PayoutRailClient
from adapters.rails.xe import XeRailClient
from core.config import AppSettings
from core.domain.provider import ProviderKind

__all__ = [
    "BatchRailClient",
    "GiftCardRailClient",
    "PayoutRailClient",
    "RailClient",
    "XeRailClient",
    "build_rail",
]

_RAILS: dict[ProviderKind, type[RailClient]] = {
    ProviderKind.PAYOUT: PayoutRailClient,
    ProviderKind.BANK_TRANSFER: XeRailClient,
    ProviderKind.GIFT_CARD: GiftCardRailClient,
}


def build_rail(provider: ProviderKind | str, client: httpx.AsyncClient, settings: AppSettings | None = None) -> RailClient:
    return _RAILS[ProviderKind.from_value(provider)](client, settings)
