"""FX bank-transfer rail (XE).

Lifecycle: recipients are created in bulk (optionally streamed), then one
contract (quote) per recipient is created, approved before its quote
expires, or cancelled.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
from urllib.parse import quote

from adapters.http_client import stream_timeout, with_environment
from adapters.rails.base import RailClient, row_payload
from adapters.streaming_client import ProgressCallback, stream_bulk_create
from core.domain.models import BulkEntity, CompletionEvent, EntityStatus, FieldSpec, RecipientRow
from core.errors import TransportError

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    return quote(str(value), safe="")


def sheet_rows_payload(
    rows: Sequence[RecipientRow],
    adjusted: Mapping[int, Decimal] | None = None,
) -> list[dict[str, Any]]:
    """Rows grouped per `CC_CUR` sheet, the shape the recipient import reads.

    Sheets keep the first-seen order of their country/currency pair.
    """

    adjusted = adjusted or {}
    sheets: dict[tuple[str, str], dict[str, Any]] = {}
    for row in rows:
        country, currency = row.country_code.upper(), row.currency.upper()
        sheet = sheets.get((country, currency))
        if sheet is None:
            sheet = sheets[(country, currency)] = {
                "sheetName": f"{country}_{currency}",
                "rows": [],
                "inferredCountry": country,
                "inferredCurrency": currency,
            }
        sheet["rows"].append(row_payload(row, adjusted.get(row.row_number)))
    return list(sheets.values())


def contract_to_entity(data: Mapping[str, Any]) -> BulkEntity:
    """Contract document -> `BulkEntity`; the quote expiry drives the countdown."""

    identifier = data.get("identifier") or {}
    contract_number = identifier.get("contractNumber") if isinstance(identifier, Mapping) else None
    contract_number = contract_number or data.get("contractNumber") or data.get("id")
    if not contract_number:
        raise TransportError("Contract response has no contract number")

    quote_info = data.get("quote") or {}
    expires_at = quote_info.get("expires") if isinstance(quote_info, Mapping) else None

    amount = Decimal("0")
    currency = "USD"
    fx = quote_info.get("fxDetails") if isinstance(quote_info, Mapping) else None
    sell = (fx[0] or {}).get("sell") if isinstance(fx, list) and fx else None
    if not sell:
        sell = (data.get("paymentRequest") or {}).get("sellAmount")
    if isinstance(sell, Mapping):
        amount = Decimal(str(sell.get("amount") or 0))
        currency = str(sell.get("currency") or currency)

    # Only a `Valid` quote can still be approved.
    status = EntityStatus.from_provider(data.get("status"))
    quote_status = data.get("quoteStatus")
    if status is EntityStatus.PENDING and quote_status and str(quote_status).strip().lower() != "valid":
        status = EntityStatus.EXPIRED

    return BulkEntity(
        id=str(contract_number),
        status=status,
        expires_at=expires_at,
        amount=amount,
        currency=currency,
    )


class XeRailClient(RailClient):
    name = "xe"

    # ------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------

    async def payment_fields(self, country_code: str, currency_code: str) -> list[FieldSpec]:
        """Provider field requirements for one country/currency pair."""

        data = await self._get(f"/xe/payment-fields/{_seg(country_code.upper())}/{_seg(currency_code.upper())}")
        raw = data.get("fields", data) if isinstance(data, Mapping) else data
        specs: list[FieldSpec] = []
        for item in raw or []:
            if isinstance(item, Mapping) and item.get("fieldName"):
                specs.append(FieldSpec.model_validate(item))
        return specs

    async def create_recipients(
        self,
        rows: Sequence[RecipientRow],
        adjusted: Mapping[int, Decimal] | None = None,
        *,
        batch_id: str | None = None,
    ) -> CompletionEvent:
        """Non-streamed bulk create; the response carries the same result shape."""

        data = await self._post(
            "/xe/create-recipients",
            {"sheetRows": sheet_rows_payload(rows, adjusted), "batchId": batch_id, "useSSE": False},
        )
        return CompletionEvent.model_validate(data if isinstance(data, Mapping) else {})

    async def stream_create_recipients(
        self,
        rows: Sequence[RecipientRow],
        adjusted: Mapping[int, Decimal] | None = None,
        on_progress: ProgressCallback | None = None,
        *,
        batch_id: str | None = None,
    ) -> CompletionEvent:
        payload = with_environment(
            self.settings,
            {"sheetRows": sheet_rows_payload(rows, adjusted), "batchId": batch_id, "useSSE": True},
        )
        logger.info("Creating %d XE recipient(s) (streamed)", len(rows))
        return await stream_bulk_create(
            self._client,
            "/xe/create-recipients",
            payload,
            on_progress,
            timeout=stream_timeout(self.settings),
        )

    async def delete_recipient(self, recipient_id: str) -> Any:
        return await self._delete(f"/xe/recipients/{_seg(recipient_id)}")

    # ------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------

    async def create_contract(self, recipient_id: str, amount: Decimal, buy_currency: str) -> BulkEntity:
        data = await self._post(
            "/xe/contracts",
            {"xeRecipientId": recipient_id, "amount": str(amount), "buyCurrency": buy_currency.upper()},
        )
        return contract_to_entity(data)

    async def list_contracts(self, *, page: int = 1, limit: int = 20, search: str | None = None) -> list[BulkEntity]:
        data = await self._get("/xe/contracts", page=page, limit=limit, search=search)
        items = data.get("contracts", data.get("items", [])) if isinstance(data, Mapping) else data
        return [contract_to_entity(item) for item in items or [] if isinstance(item, Mapping)]

    async def approve(self, entity_id: str) -> BulkEntity:
        data = await self._post(f"/xe/contracts/{_seg(entity_id)}/approve")
        return contract_to_entity(data)

    async def cancel(self, entity_id: str) -> Any:
        return await self._delete(f"/xe/contracts/{_seg(entity_id)}")

    async def fetch(self, entity_id: str) -> BulkEntity:
        data = await self._get(f"/xe/contracts/{_seg(entity_id)}")
        return contract_to_entity(data)
