"""Submission flow: validate -> adjust -> streamed create -> track expiries.

The network side is injected (`create`, `resolve_entities`) so this module
stays free of HTTP; the CLI wires in the rail clients. Whatever happens on
the wire, the caller gets a `SubmissionOutcome` value back, never an exception
(except cancellation, which propagates untouched).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from core.domain.models import BulkEntity, CompletionEvent, FieldSpec, ProgressEvent, RecipientRow, StreamError
from core.domain.provider import ProviderKind
from core.errors import BulkPayoutError, TransportError
from core.services.expiry_timers import ExpiryTimerManager
from core.services.row_validation import DEFAULT_DENOMINATION, ValidationReport, validate_rows

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
StreamCreate = Callable[
    [Sequence[RecipientRow], Mapping[int, Decimal], ProgressCallback | None],
    Awaitable[CompletionEvent],
]
EntityResolver = Callable[[CompletionEvent], Awaitable[Sequence[BulkEntity]]]


@dataclass
class SubmissionOutcome:
    report: ValidationReport
    completion: CompletionEvent | None = None
    error: StreamError | None = None
    entities: list[BulkEntity] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.completion is not None and not self.completion.synthesized


async def submit_rows(
    rows: Sequence[RecipientRow],
    provider: ProviderKind | str,
    create: StreamCreate,
    *,
    field_specs: Sequence[FieldSpec] | None = None,
    denomination: int = DEFAULT_DENOMINATION,
    skip_invalid: bool = False,
    on_progress: ProgressCallback | None = None,
    timers: ExpiryTimerManager | None = None,
    resolve_entities: EntityResolver | None = None,
) -> SubmissionOutcome:
    """Run one bulk submission end to end.

    Invalid rows block the submission unless `skip_invalid` is set, in which
    case only the valid rows are sent. Adjusted amounts (not the originals)
    are what `create` receives. When both `timers` and `resolve_entities` are
    given, the created entities are fetched and their expiries tracked.
    """

    report = validate_rows(rows, provider, field_specs, denomination=denomination)
    outcome = SubmissionOutcome(report=report)

    if report.error_count and not skip_invalid:
        outcome.error = StreamError(message=f"{report.error_count} row(s) failed validation; nothing was submitted")
        return outcome
    if not report.valid_rows:
        outcome.error = StreamError(message="No valid rows to submit")
        return outcome

    try:
        completion = await create(report.valid_rows, report.adjusted_amounts, on_progress)
    except BulkPayoutError as exc:
        message = exc.message if isinstance(exc, TransportError) else str(exc)
        logger.warning("Bulk create failed: %s", message)
        outcome.error = StreamError(message=message or type(exc).__name__)
        return outcome

    outcome.completion = completion
    if completion.synthesized:
        logger.warning("Stream closed without a terminal frame; outcome unknown")
    else:
        logger.info(
            "Bulk create finished: %d succeeded, %d failed",
            completion.success_count,
            completion.failure_count,
        )

    if timers is not None and resolve_entities is not None:
        try:
            entities = list(await resolve_entities(completion))
        except BulkPayoutError as exc:
            logger.warning("Could not refresh created entities: %s", exc)
            return outcome
        for entity in entities:
            timers.track_entity(entity)
        outcome.entities = entities

    return outcome
