"""Shared plumbing for rail clients.

Every rail talks to the same backend: bearer-authenticated JSON calls with a
`{success, message, data}` envelope and an `environment` switch (query param
on GET, body field otherwise).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx

from adapters.http_client import raise_for_api_error, unwrap_data, with_environment
from core.config import AppSettings
from core.domain.models import BulkEntity, RecipientRow
from core.errors import TransportError

logger = logging.getLogger(__name__)


class RailClient:
    """Thin JSON client; subclasses add the rail-specific endpoints."""

    name = "rail"

    def __init__(self, client: httpx.AsyncClient, settings: AppSettings | None = None) -> None:
        self._client = client
        self._settings = settings or AppSettings()

    @property
    def settings(self) -> AppSettings:
        return self._settings

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        if method == "GET":
            params = {**(params or {}), "environment": self._settings.environment}
            kwargs: dict[str, Any] = {"params": params}
        else:
            kwargs = {"json": with_environment(self._settings, body)}
            if params:
                kwargs["params"] = params
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        raise_for_api_error(response)
        return unwrap_data(response)

    async def _get(self, path: str, **params: Any) -> Any:
        return await self._request("GET", path, params={k: v for k, v in params.items() if v is not None})

    async def _post(self, path: str, body: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", path, body=body)

    async def _delete(self, path: str, body: dict[str, Any] | None = None) -> Any:
        return await self._request("DELETE", path, body=body)


def row_payload(row: RecipientRow, amount: Decimal | None = None) -> dict[str, Any]:
    """One row as the backend expects it; `amount` overrides the row's own."""

    payload: dict[str, Any] = {
        "rowNumber": row.row_number,
        "name": row.name,
        "email": row.email,
        "amount": str(row.amount if amount is None else amount),
        "currency": row.currency.upper(),
    }
    if row.country_code:
        payload["countryCode"] = row.country_code.upper()
    payload.update(row.extra_fields)
    return payload


def rows_payload(rows: Iterable[RecipientRow], adjusted: Mapping[int, Decimal] | None = None) -> list[dict[str, Any]]:
    adjusted = adjusted or {}
    return [row_payload(row, adjusted.get(row.row_number)) for row in rows]


def batch_to_entity(data: Mapping[str, Any]) -> BulkEntity:
    """Payment batch document -> `BulkEntity` (members are its payments).

    Accepts the bare batch or a creation response `{batch, payments, ...}`.
    """

    outer_payments = data.get("payments")
    if isinstance(data.get("batch"), Mapping):
        data = data["batch"]
    batch_id = data.get("batchId") or data.get("_id") or data.get("id")
    if not batch_id:
        raise TransportError("Batch response has no batchId")
    payments = data.get("payments") or outer_payments or []
    member_ids = [
        str(p.get("paymentId") or p.get("_id"))
        for p in payments
        if isinstance(p, Mapping) and (p.get("paymentId") or p.get("_id"))
    ]
    return BulkEntity(
        id=str(batch_id),
        status=data.get("status"),
        amount=Decimal(str(data.get("totalAmount") or 0)),
        currency=str(data.get("currency") or "USD"),
        member_ids=member_ids,
    )


class BatchRailClient(RailClient):
    """Rails whose unit of work is one payment batch (payout, gift card).

    Creating the batch is one atomic request covering every row; approval
    (processing) and cancellation then apply to the whole group.
    """

    payment_method = "paypal"

    async def create_batch(
        self,
        rows: Sequence[RecipientRow],
        adjusted: Mapping[int, Decimal] | None = None,
        *,
        name: str | None = None,
    ) -> BulkEntity:
        data = await self._post(
            "/payments/batches",
            {"name": name, "paymentMethod": self.payment_method, "payments": rows_payload(rows, adjusted)},
        )
        entity = batch_to_entity(data)
        logger.info("Created %s batch %s with %d row(s)", self.name, entity.id, len(rows))
        return entity

    async def fetch(self, entity_id: str) -> BulkEntity:
        data = await self._get(f"/payments/batches/{quote(entity_id, safe='')}")
        return batch_to_entity(data)

    async def cancel(self, entity_id: str) -> Any:
        return await self._delete(f"/upload/batches/{quote(entity_id, safe='')}")
