"""
Unit tests for domain models: money, providers, statuses and stream events.

Run with: pytest tests/test_models.py -v
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.domain.models import (
    BulkEntity,
    BulkOperationResult,
    CompletionEvent,
    EntityStatus,
    FailedItem,
    ProgressEvent,
    RecipientRow,
    parse_timestamp,
)
from core.domain.money import Money, sum_by_currency
from core.domain.provider import ProviderKind


class TestMoney:
    """Money keeps amounts tied to their currency."""

    def test_sum_by_currency_never_mixes_codes(self):
        """Totals are grouped per code, in first-seen order."""
        items = [
            Money(amount=Decimal("10"), currency_code="USD"),
            Money(amount=Decimal("5.50"), currency_code="inr"),
            Money(amount=Decimal("2.25"), currency_code="usd"),
        ]

        totals = sum_by_currency(items)

        assert totals == {"USD": Decimal("12.25"), "INR": Decimal("5.50")}
        assert list(totals) == ["USD", "INR"]

    def test_empty_input(self):
        """No items means no totals."""
        assert sum_by_currency([]) == {}

    def test_currency_code_must_have_three_letters(self):
        """Malformed codes are rejected at construction."""
        with pytest.raises(ValidationError):
            Money(amount=Decimal("1"), currency_code="US")

    def test_str(self):
        """Human rendering with thousands separator."""
        assert str(Money(amount=Decimal("1234.5"), currency_code="usd")) == "1,234.50 USD"


class TestProviderKind:
    """Provider lookup by wire value or member name."""

    def test_from_value(self):
        """Both `xe` and `bank_transfer` resolve to the FX rail."""
        assert ProviderKind.from_value("xe") is ProviderKind.BANK_TRANSFER
        assert ProviderKind.from_value(" Bank_Transfer ") is ProviderKind.BANK_TRANSFER
        assert ProviderKind.from_value(ProviderKind.GIFT_CARD) is ProviderKind.GIFT_CARD

    def test_unknown_provider(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError):
            ProviderKind.from_value("venmo")

    def test_only_gift_cards_are_denomination_constrained(self):
        """Rounding applies to gift cards only."""
        assert ProviderKind.GIFT_CARD.is_denomination_constrained
        assert not ProviderKind.PAYOUT.is_denomination_constrained
        assert not ProviderKind.BANK_TRANSFER.is_denomination_constrained
        assert ProviderKind.default() is ProviderKind.PAYOUT


class TestParseTimestamp:
    """Best-effort timestamp parsing."""

    def test_iso_with_z(self):
        """Trailing Z means UTC."""
        assert parse_timestamp("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_epoch_millis(self):
        """Integers are epoch milliseconds."""
        assert parse_timestamp(1704110400000) == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        """Naive values are taken as UTC."""
        parsed = parse_timestamp(datetime(2024, 1, 1, 12))

        assert parsed.tzinfo is not None
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, "", "not-a-date", True, object()])
    def test_unusable_values_become_none(self, value):
        """Nothing unusable ever raises."""
        assert parse_timestamp(value) is None


class TestEntityStatus:
    """Provider vocabularies mapped onto one status enum."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Quoted", EntityStatus.PENDING),
            ("QuoteRequired", EntityStatus.DRAFT),
            ("ContractConfirmed", EntityStatus.APPROVED),
            ("uploaded", EntityStatus.DRAFT),
            ("processing", EntityStatus.PENDING),
            ("completed", EntityStatus.COMPLETED),
            ("Cancelled", EntityStatus.CANCELLED),
            ("canceled", EntityStatus.CANCELLED),
            ("failed", EntityStatus.FAILED),
            ("something-new", EntityStatus.PENDING),
            (None, EntityStatus.PENDING),
        ],
    )
    def test_from_provider(self, raw, expected):
        """Known values map, unknown ones default to pending."""
        assert EntityStatus.from_provider(raw) is expected

    def test_terminal_states(self):
        """Only draft and pending can still move."""
        assert not EntityStatus.DRAFT.is_terminal
        assert not EntityStatus.PENDING.is_terminal
        assert EntityStatus.APPROVED.is_terminal
        assert EntityStatus.EXPIRED.is_terminal
        assert EntityStatus.CANCELLED.is_terminal


class TestBulkEntity:
    """Entity payloads from the wire."""

    def test_camel_case_payload_with_bad_expiry(self):
        """Unparsable expiries are normalized to None."""
        entity = BulkEntity.model_validate({"id": "C-1", "status": "Quoted", "expiresAt": "soon"})

        assert entity.status is EntityStatus.PENDING
        assert entity.expires_at is None

    def test_expiry_is_parsed(self):
        """ISO expiries become aware datetimes."""
        entity = BulkEntity(id="C-2", expires_at="2024-01-01T12:01:30Z")

        assert entity.expires_at == datetime(2024, 1, 1, 12, 1, 30, tzinfo=timezone.utc)


class TestBulkOperationResult:
    """Result counts and serialization."""

    def test_counts(self):
        """Both counts are always available."""
        result = BulkOperationResult(
            succeeded=["a", "c"],
            failed=[FailedItem(id="b", error_message="boom")],
        )

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.failed_ids == ["b"]
        assert not result.all_succeeded

    def test_dump_by_alias(self):
        """Wire form uses camelCase."""
        result = BulkOperationResult(failed=[FailedItem(id="b", error_message="boom")])

        dumped = result.model_dump(by_alias=True)

        assert dumped["failed"] == [{"id": "b", "errorMessage": "boom"}]


class TestStreamEvents:
    """Both stream dialects normalize to the same events."""

    def test_progress_accepts_sent(self):
        """Gift-card progress reports `sent` rather than `processed`."""
        event = ProgressEvent.model_validate({"sent": 3, "total": 10, "email": "a@b.co"})

        assert event.processed == 3
        assert event.total == 10

    def test_completion_standard_shape(self):
        """camelCase counts and per-item results."""
        event = CompletionEvent.model_validate(
            {"successCount": 1, "failureCount": 1, "perItemResults": [{"id": "x", "status": "ok"}]}
        )

        assert event.success_count == 1
        assert event.per_item_results[0].id == "x"
        assert not event.synthesized

    def test_completion_gift_card_shape(self):
        """`successful`/`failed` map onto the counts."""
        event = CompletionEvent.model_validate({"done": True, "successful": 4, "failed": 1, "hasFailures": True})

        assert event.success_count == 4
        assert event.failure_count == 1

    def test_completion_recipient_results(self):
        """Recipient results carry their ids under different keys."""
        event = CompletionEvent.model_validate(
            {
                "results": [
                    {"xeRecipientId": "R-1", "status": "success"},
                    {"clientReference": "ref-2", "status": "failed", "error": "Invalid IBAN"},
                ]
            }
        )

        assert [item.id for item in event.per_item_results] == ["R-1", "ref-2"]
        assert event.per_item_results[1].error == "Invalid IBAN"


class TestRecipientRow:
    """Rows arrive from the sheet parser in camelCase."""

    def test_camel_case_and_stripping(self):
        """Strings are stripped and extra fields stringified."""
        row = RecipientRow.model_validate(
            {
                "rowNumber": 2,
                "name": "  Ana  ",
                "email": " ana@example.com ",
                "amount": "10.5",
                "countryCode": "IN",
                "extraFields": {"accountNumber": 12345678, "ncc": None},
            }
        )

        assert row.name == "Ana"
        assert row.email == "ana@example.com"
        assert row.amount == Decimal("10.5")
        assert row.extra_fields == {"accountNumber": "12345678", "ncc": ""}

    def test_negative_amount_rejected(self):
        """Negative amounts are rejected at construction."""
        with pytest.raises(ValidationError):
            RecipientRow(row_number=2, amount=Decimal("-1"))
