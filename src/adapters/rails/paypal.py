"""Card/account payout rail.

The whole batch is one group entity: `create_batch` is the single atomic
create and `approve` processes every payment in it at once.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from adapters.rails.base import BatchRailClient, batch_to_entity
from core.domain.models import BulkEntity


class PayoutRailClient(BatchRailClient):
    name = "paypal"
    payment_method = "paypal"

    async def approve(self, entity_id: str) -> BulkEntity:
        data = await self._post(
            f"/payments/batches/{quote(entity_id, safe='')}/process",
            {"senderBatchHeader": {}},
        )
        if isinstance(data, dict) and (data.get("batchId") or data.get("batch")):
            return batch_to_entity(data)
        return await self.fetch(entity_id)

    async def sync(self, entity_id: str) -> Any:
        return await self._post(f"/payments/batches/{quote(entity_id, safe='')}/sync")
