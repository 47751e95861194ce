"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation and self-documenting fields (Field) without coupling the
  Core to I/O libraries.
- Normalizes payloads coming from three different rails (and two stream
  dialects) into one shape.

Note:
- These models describe *what* the information is, not *how* it is fetched.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def parse_timestamp(value: object) -> datetime | None:
    """Best-effort timestamp parsing; anything unusable becomes None.

    Accepts datetimes, ISO-8601 strings (with `Z`) and epoch milliseconds.
    Naive values are taken as UTC.
    """

    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============================================================
# Rows & validation
# ============================================================


class RecipientRow(BaseModel):
    """One recipient as produced by the external spreadsheet parser."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    row_number: int = Field(..., ge=1, description="Spreadsheet row (header is row 1).")
    name: str = Field(default="", max_length=256)
    email: str = Field(default="", max_length=320)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="USD", max_length=8)
    country_code: str = Field(default="", max_length=3)
    extra_fields: dict[str, str] = Field(
        default_factory=dict,
        description="Provider specific columns (bank account, NCC, address...).",
    )

    @field_validator("name", "email", "currency", "country_code", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("extra_fields", mode="before")
    @classmethod
    def _stringify_extra(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v).strip() for k, v in value.items()}
        return value


class FieldSpec(BaseModel):
    """Provider-issued requirements for one extra field (bank details form)."""

    model_config = _WIRE_CONFIG

    field_name: str = Field(..., min_length=1)
    label: str | None = None
    required: bool = False
    minimum_length: int | None = Field(default=None, ge=0)
    maximum_length: int | None = Field(default=None, ge=0)
    pattern: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.field_name


class RowValidationError(BaseModel):
    """Every problem found on one row. A row with no entries is valid."""

    row_number: int
    field_errors: dict[str, str] = Field(default_factory=dict)
    general_errors: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.field_errors and not self.general_errors

    def messages(self) -> list[str]:
        return [*self.general_errors, *(f"{k}: {v}" for k, v in self.field_errors.items())]


# ============================================================
# Entities & bulk results
# ============================================================


class EntityStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_provider(cls, raw: object) -> "EntityStatus":
        """Map the rails' own status vocabulary onto ours."""

        key = str(raw or "").strip().lower().replace("_", "").replace(" ", "")
        return _PROVIDER_STATUS.get(key, cls.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self in (
            EntityStatus.APPROVED,
            EntityStatus.COMPLETED,
            EntityStatus.EXPIRED,
            EntityStatus.FAILED,
            EntityStatus.CANCELLED,
        )


_PROVIDER_STATUS: dict[str, EntityStatus] = {
    "draft": EntityStatus.DRAFT,
    "created": EntityStatus.DRAFT,
    "uploaded": EntityStatus.DRAFT,
    "quoterequired": EntityStatus.DRAFT,
    "pending": EntityStatus.PENDING,
    "processing": EntityStatus.PENDING,
    "quoted": EntityStatus.PENDING,
    "valid": EntityStatus.PENDING,
    "awaitingapproval": EntityStatus.PENDING,
    "approved": EntityStatus.APPROVED,
    "contractconfirmed": EntityStatus.APPROVED,
    "completed": EntityStatus.COMPLETED,
    "success": EntityStatus.COMPLETED,
    "sent": EntityStatus.COMPLETED,
    "partial": EntityStatus.COMPLETED,
    "expired": EntityStatus.EXPIRED,
    "failed": EntityStatus.FAILED,
    "denied": EntityStatus.FAILED,
    "cancelled": EntityStatus.CANCELLED,
    "canceled": EntityStatus.CANCELLED,
    "deleted": EntityStatus.CANCELLED,
}


class BulkEntity(BaseModel):
    """A recipient, quote/contract or gift-card order held by a provider."""

    model_config = _WIRE_CONFIG

    id: str = Field(..., min_length=1)
    status: EntityStatus = EntityStatus.PENDING
    expires_at: datetime | None = Field(
        default=None,
        description="Absolute quote expiry. Unparsable values are treated as absent.",
    )
    amount: Decimal = Decimal("0")
    currency: str = "USD"
    member_ids: list[str] = Field(
        default_factory=list,
        description="For group entities (one atomic bulk request), the ids it covers.",
    )

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if isinstance(value, EntityStatus):
            return value
        return EntityStatus.from_provider(value)

    @field_validator("expires_at", mode="before")
    @classmethod
    def _coerce_expiry(cls, value: object) -> datetime | None:
        return parse_timestamp(value)


class FailedItem(BaseModel):
    model_config = _WIRE_CONFIG

    id: str
    error_message: str


class BulkOperationResult(BaseModel):
    """Outcome of one orchestrator run. Built fresh, never persisted."""

    model_config = _WIRE_CONFIG

    succeeded: list[str] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def failed_ids(self) -> list[str]:
        return [item.id for item in self.failed]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


# ============================================================
# Stream events
# ============================================================


class ProgressEvent(BaseModel):
    """Incremental progress pushed by the server while a bulk create runs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    processed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    message: str = ""

    @model_validator(mode="before")
    @classmethod
    def _legacy_sent(cls, data: Any) -> Any:
        # The gift-card dialect reports `sent` instead of `processed`.
        if isinstance(data, dict) and "processed" not in data and "sent" in data:
            data = {**data, "processed": data["sent"]}
        return data


class ItemResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = ""
    status: str = ""
    error: str | None = None


class CompletionEvent(BaseModel):
    """Terminal frame of a successful stream."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    per_item_results: list[ItemResult] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _legacy_counts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Gift-card dialect: {"successful": n, "failed": m}
        if "successCount" not in data and "success_count" not in data and "successful" in data:
            data["successCount"] = data["successful"]
        if "failureCount" not in data and "failure_count" not in data and isinstance(data.get("failed"), int):
            data["failureCount"] = data["failed"]
        # Recipient dialect: {"results": [{"xeRecipientId", "status", "error"}]}
        if "perItemResults" not in data and "per_item_results" not in data:
            raw = data.get("results")
            if isinstance(raw, list):
                data["perItemResults"] = [_item_from_legacy(r) for r in raw if isinstance(r, dict)]
        return data

    @property
    def synthesized(self) -> bool:
        return bool((self.model_extra or {}).get("synthesized"))


def _item_from_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    ident = raw.get("id") or raw.get("xeRecipientId") or raw.get("clientReference") or raw.get("paymentId") or ""
    return {"id": str(ident), "status": str(raw.get("status") or ""), "error": raw.get("error")}


class StreamError(BaseModel):
    message: str


class OperationError(BaseModel):
    """Failure of a single atomic operation (e.g. one group create)."""

    message: str
    status_code: int | None = None
