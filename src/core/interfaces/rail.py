"""Contracts for payout rails.

Why Protocol:
- Structural contract (duck typing) without rigid inheritance.
- Lets the orchestrator and CLI drive XE, gift-card and payout clients (or a
  test fake) interchangeably.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from core.domain.models import BulkEntity

# One network call for one id. Raises on failure; the orchestrator records it.
ItemOperation = Callable[[str], Awaitable[Any]]


@runtime_checkable
class PayoutRail(Protocol):
    """Minimal contract for a rail's per-entity operations.

    Design rules:
    - Every method is async because it performs HTTP I/O.
    - Failures raise `core.errors.TransportError`; no method retries on its own.
    """

    async def approve(self, entity_id: str) -> Any:
        """Approve one entity (quote/contract, payout batch)."""

        ...

    async def cancel(self, entity_id: str) -> Any:
        """Cancel/delete one entity."""

        ...

    async def fetch(self, entity_id: str) -> BulkEntity:
        """Read the authoritative state of one entity."""

        ...
