"""Row validation and provider amount adjustment.

Everything here is pure: no I/O, no exceptions for bad input. A bad row comes
back as a `RowValidationError` value listing every problem at once so the
operator can fix the sheet in one pass.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pydantic import BaseModel, Field

from core.domain.models import FieldSpec, RecipientRow, RowValidationError
from core.domain.money import Money, sum_by_currency
from core.domain.provider import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_DENOMINATION = 5
MAX_AMOUNT_PER_ROW = Decimal("10000")
MIN_NAME_LENGTH = 2

SUPPORTED_CURRENCIES: dict[ProviderKind, frozenset[str]] = {
    ProviderKind.PAYOUT: frozenset({"USD", "EUR", "GBP", "CAD", "AUD"}),
}

_WHITESPACE_RE = re.compile(r"\s")
_CURRENCY_RE = re.compile(r"[A-Za-z]{3}")


def is_valid_email(value: str) -> bool:
    """Email grammar used for every row, independent of provider field specs."""

    if not value or _WHITESPACE_RE.search(value):
        return False
    if value.count("@") != 1 or ".." in value:
        return False
    local, domain = value.split("@")
    if not local or not domain:
        return False
    labels = domain.split(".")
    if len(labels) < 2:
        return False
    for label in labels:
        if not label or label.startswith("-") or label.endswith("-"):
            return False
    return len(labels[-1]) >= 2


def _field_value(row: RecipientRow, field_name: str) -> str:
    if field_name in row.extra_fields:
        return row.extra_fields[field_name]
    value = getattr(row, field_name, None)
    if value is None or isinstance(value, dict):
        return ""
    return str(value)


def _add(errors: dict[str, str], field: str, message: str) -> None:
    errors[field] = f"{errors[field]}; {message}" if field in errors else message


def _check_spec(row: RecipientRow, spec: FieldSpec, errors: dict[str, str]) -> None:
    value = _field_value(row, spec.field_name)
    label = spec.display_name

    if spec.required and not value.strip():
        _add(errors, spec.field_name, f"{label} is required")
        return
    if not value.strip():
        return

    if spec.minimum_length is not None and len(value) < spec.minimum_length:
        _add(errors, spec.field_name, f"{label} must be at least {spec.minimum_length} characters")
    if spec.maximum_length is not None and len(value) > spec.maximum_length:
        _add(errors, spec.field_name, f"{label} must not exceed {spec.maximum_length} characters")
    if spec.pattern:
        try:
            matched = re.search(spec.pattern, value) is not None
        except re.error as exc:
            logger.warning("Ignoring unusable pattern for %s: %s", spec.field_name, exc)
            return
        if not matched:
            _add(errors, spec.field_name, f"{label} format is invalid")


def validate_row(
    row: RecipientRow,
    field_specs: Sequence[FieldSpec] | None = None,
    *,
    supported_currencies: Iterable[str] | None = None,
) -> RowValidationError | None:
    """Validate one row; returns None when the row is valid.

    Order of checks: required fields, provider length bounds, provider
    patterns, email grammar. All of them run; nothing short-circuits.
    """

    field_errors: dict[str, str] = {}
    general_errors: list[str] = []

    if not row.name and not row.email and row.amount == 0:
        general_errors.append("Row has no recipient data")

    # Required fields
    if not row.name:
        _add(field_errors, "name", "Name is required")
    elif len(row.name) < MIN_NAME_LENGTH:
        _add(field_errors, "name", f"Name must be at least {MIN_NAME_LENGTH} characters")
    if not row.email:
        _add(field_errors, "email", "Email is required")
    if row.amount <= 0:
        _add(field_errors, "amount", "Amount must be greater than 0")
    elif row.amount > MAX_AMOUNT_PER_ROW:
        _add(field_errors, "amount", f"Amount cannot exceed {MAX_AMOUNT_PER_ROW:,} per transaction")
    if not _CURRENCY_RE.fullmatch(row.currency):
        _add(field_errors, "currency", "Currency must be a 3-letter ISO code")
    elif supported_currencies is not None:
        allowed = sorted({c.upper() for c in supported_currencies})
        if row.currency.upper() not in allowed:
            _add(field_errors, "currency", f"Currency must be one of: {', '.join(allowed)}")

    # Provider field specs (required, lengths, patterns)
    for spec in field_specs or ():
        _check_spec(row, spec, field_errors)

    # Built-in email grammar
    if row.email and not is_valid_email(row.email):
        _add(field_errors, "email", "Valid email address is required")

    if not field_errors and not general_errors:
        return None
    return RowValidationError(
        row_number=row.row_number,
        field_errors=field_errors,
        general_errors=general_errors,
    )


def _to_decimal(amount: Decimal | int | float | str) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        return Decimal("0")
    # NaN and infinities have no payable value.
    return value if value.is_finite() else Decimal("0")


def adjust_amount_for_provider(
    amount: Decimal | int | float | str,
    provider: ProviderKind | str,
    *,
    denomination: int = DEFAULT_DENOMINATION,
) -> Decimal:
    """Amount the provider will actually be asked to pay.

    Identity for direct transfers; for denomination-constrained rails the
    amount is rounded half-up to the nearest multiple of `denomination`.
    """

    value = _to_decimal(amount)
    kind = ProviderKind.from_value(provider)
    if not kind.is_denomination_constrained:
        return value
    step = Decimal(denomination)
    units = (value / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return units * step


class ValidationReport(BaseModel):
    """Summary of validating a whole batch before submission."""

    provider: ProviderKind
    valid_rows: list[RecipientRow] = Field(default_factory=list)
    errors: list[RowValidationError] = Field(default_factory=list)
    adjusted_amounts: dict[int, Decimal] = Field(
        default_factory=dict,
        description="Row number -> amount actually submitted (valid rows only).",
    )
    totals_by_currency: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return len(self.valid_rows) + len(self.errors)

    @property
    def valid_count(self) -> int:
        return len(self.valid_rows)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def currencies(self) -> list[str]:
        return list(self.totals_by_currency)


def validate_rows(
    rows: Iterable[RecipientRow],
    provider: ProviderKind | str,
    field_specs: Sequence[FieldSpec] | None = None,
    *,
    denomination: int = DEFAULT_DENOMINATION,
) -> ValidationReport:
    """Validate a batch and total the adjusted amounts per currency."""

    kind = ProviderKind.from_value(provider)
    supported = SUPPORTED_CURRENCIES.get(kind)

    report = ValidationReport(provider=kind)
    money: list[Money] = []
    for row in rows:
        error = validate_row(row, field_specs, supported_currencies=supported)
        if error is not None:
            report.errors.append(error)
            continue
        adjusted = adjust_amount_for_provider(row.amount, kind, denomination=denomination)
        report.valid_rows.append(row)
        report.adjusted_amounts[row.row_number] = adjusted
        money.append(Money(amount=adjusted, currency_code=row.currency))

    report.totals_by_currency = sum_by_currency(money)
    logger.info(
        "Validated %d row(s): %d valid, %d with errors",
        report.total_rows,
        report.valid_count,
        report.error_count,
    )
    return report
