"""Gift-card rail.

Amounts must be multiples of the card denomination (rounded before the batch
is created). Processing sends one card per row and can be followed live over
the data-only event stream.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from adapters.http_client import stream_timeout, with_environment
from adapters.rails.base import BatchRailClient, batch_to_entity
from adapters.streaming_client import ProgressCallback, stream_bulk_create
from core.domain.models import BulkEntity, CompletionEvent

logger = logging.getLogger(__name__)


class GiftCardRailClient(BatchRailClient):
    name = "giftogram"
    payment_method = "giftogram"

    def _path(self, batch_id: str, action: str) -> str:
        return f"/giftogram/batches/{quote(batch_id, safe='')}/{action}"

    async def process(self, batch_id: str, config: dict[str, Any] | None = None) -> BulkEntity:
        """Send every card of the batch without streaming."""

        data = await self._post(self._path(batch_id, "process"), {"giftogramConfig": config or {}})
        if isinstance(data, dict) and (data.get("batchId") or data.get("batch")):
            return batch_to_entity(data)
        return await self.fetch(batch_id)

    async def process_stream(
        self,
        batch_id: str,
        config: dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CompletionEvent:
        """Send the batch, reporting each card as the server pushes it."""

        payload = with_environment(self.settings, {"giftogramConfig": config or {}})
        logger.info("Processing gift-card batch %s (streamed)", batch_id)
        return await stream_bulk_create(
            self._client,
            self._path(batch_id, "process-stream"),
            payload,
            on_progress,
            timeout=stream_timeout(self.settings),
        )

    async def sync(self, batch_id: str) -> BulkEntity:
        await self._post(self._path(batch_id, "sync"))
        return await self.fetch(batch_id)

    async def approve(self, entity_id: str) -> BulkEntity:
        return await self.process(entity_id)

    async def campaigns(self) -> list[dict[str, Any]]:
        data = await self._get("/giftogram/campaigns")
        return list(data) if isinstance(data, list) else list((data or {}).get("campaigns", []))
