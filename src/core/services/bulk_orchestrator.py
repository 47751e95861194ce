"""Bulk operation orchestration.

Drives a caller-chosen set of ids through one operation (approve, cancel,
create-contract) with best-effort semantics: a failure on one id is recorded
and the next id is still attempted. The orchestrator never filters ids and
never retries on its own; both are caller decisions (`select_eligible`,
`with_retry`).

Results always come back in input order, whatever the concurrency.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from core.config import AppSettings
from core.domain.models import (
    BulkEntity,
    BulkOperationResult,
    FailedItem,
    OperationError,
)
from core.errors import TransportError
from core.interfaces.rail import ItemOperation
from core.services.expiry_timers import ExpiryTimerManager

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ResultCallback = Callable[[Any, BaseException | None], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ItemError(Generic[T]):
    item: T
    error: BaseException


@dataclass
class PartialResult(Generic[T, R]):
    """`ok` holds results of successful calls, `ok_items` the matching inputs."""

    ok: list[R] = field(default_factory=list)
    ok_items: list[T] = field(default_factory=list)
    err: list[ItemError[T]] = field(default_factory=list)


def describe_error(error: BaseException) -> str:
    if isinstance(error, TransportError):
        return error.message
    message = str(error).strip()
    return message or type(error).__name__


async def _call(fn: Callable[[T], Awaitable[R]], item: T, timeout: float | None) -> R:
    if timeout is None:
        return await fn(item)

    # Timeouts raised by the item call itself are not ours to relabel.
    raised_inside: list[BaseException] = []

    async def guarded() -> R:
        try:
            return await fn(item)
        except asyncio.TimeoutError as exc:
            raised_inside.append(exc)
            raise

    try:
        return await asyncio.wait_for(guarded(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        if raised_inside:
            raise
        raise TransportError(f"Timed out after {timeout:g}s") from exc


async def map_with_partial_failure(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    max_concurrency: int = 1,
    item_timeout: float | None = None,
    on_result: ResultCallback | None = None,
) -> PartialResult[T, R]:
    """Apply `fn` to every item, collecting successes and failures.

    With `max_concurrency == 1` items run strictly one after another; above
    that a semaphore bounds the in-flight calls. Either way `ok`/`err` keep
    the input order.
    """

    items = list(items)
    outcomes: list[tuple[bool, Any]] = [(False, None)] * len(items)

    async def run_one(index: int, item: T) -> None:
        try:
            value = await _call(fn, item, item_timeout)
        except Exception as exc:
            outcomes[index] = (False, exc)
            logger.warning("Bulk item %s failed: %s", item, describe_error(exc))
            if on_result is not None:
                on_result(item, exc)
            return
        outcomes[index] = (True, value)
        if on_result is not None:
            on_result(item, None)

    if max_concurrency <= 1:
        for index, item in enumerate(items):
            await run_one(index, item)
    else:
        sem = asyncio.Semaphore(max_concurrency)

        async def bounded(index: int, item: T) -> None:
            async with sem:
                await run_one(index, item)

        await asyncio.gather(*(bounded(i, item) for i, item in enumerate(items)))

    result: PartialResult[T, R] = PartialResult()
    for item, (ok, payload) in zip(items, outcomes):
        if ok:
            result.ok.append(payload)
            result.ok_items.append(item)
        else:
            result.err.append(ItemError(item=item, error=payload))
    return result


def _to_bulk_result(partial: PartialResult[str, Any]) -> BulkOperationResult:
    return BulkOperationResult(
        succeeded=list(partial.ok_items),
        failed=[FailedItem(id=e.item, error_message=describe_error(e.error)) for e in partial.err],
    )


async def run_bulk(
    ids: Sequence[str],
    operation: ItemOperation,
    *,
    item_timeout: float | None = None,
    on_result: ResultCallback | None = None,
) -> BulkOperationResult:
    """Run `operation` once per id, one at a time, in input order."""

    partial = await map_with_partial_failure(
        ids, operation, max_concurrency=1, item_timeout=item_timeout, on_result=on_result
    )
    result = _to_bulk_result(partial)
    logger.info("Bulk run finished: %s", summarize(result))
    return result


async def run_bulk_concurrent(
    ids: Sequence[str],
    operation: ItemOperation,
    *,
    max_concurrency: int,
    item_timeout: float | None = None,
    on_result: ResultCallback | None = None,
) -> BulkOperationResult:
    """Bounded worker-pool variant; results stay paired with their id."""

    partial = await map_with_partial_failure(
        ids,
        operation,
        max_concurrency=max_concurrency,
        item_timeout=item_timeout,
        on_result=on_result,
    )
    result = _to_bulk_result(partial)
    logger.info("Concurrent bulk run finished: %s", summarize(result))
    return result


@dataclass(frozen=True)
class BulkPolicy:
    """Rate-limit policy: chunk size, pause between chunks, concurrency, timeout."""

    max_batch_size: int = 25
    chunk_delay_seconds: float = 1.0
    max_concurrency: int = 1
    item_timeout_seconds: float | None = 60.0

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "BulkPolicy":
        return cls(
            max_batch_size=settings.bulk_max_batch_size,
            chunk_delay_seconds=settings.bulk_chunk_delay_seconds,
            max_concurrency=settings.bulk_max_concurrency,
            item_timeout_seconds=settings.bulk_item_timeout_seconds,
        )


async def run_bulk_with_policy(
    ids: Sequence[str],
    operation: ItemOperation,
    policy: BulkPolicy,
    *,
    on_result: ResultCallback | None = None,
    sleep: Sleep = asyncio.sleep,
) -> BulkOperationResult:
    """`run_bulk` split into chunks with a pause between them."""

    ids = list(ids)
    size = max(1, policy.max_batch_size)
    chunks = [ids[i : i + size] for i in range(0, len(ids), size)]

    result = BulkOperationResult()
    for number, chunk in enumerate(chunks, start=1):
        logger.debug("Bulk chunk %d/%d (%d ids)", number, len(chunks), len(chunk))
        partial = await map_with_partial_failure(
            chunk,
            operation,
            max_concurrency=policy.max_concurrency,
            item_timeout=policy.item_timeout_seconds,
            on_result=on_result,
        )
        chunk_result = _to_bulk_result(partial)
        result.succeeded.extend(chunk_result.succeeded)
        result.failed.extend(chunk_result.failed)
        if number < len(chunks) and policy.chunk_delay_seconds > 0:
            await sleep(policy.chunk_delay_seconds)

    logger.info("Bulk run finished (%d chunk(s)): %s", len(chunks), summarize(result))
    return result


def with_retry(
    operation: ItemOperation,
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> ItemOperation:
    """Opt-in retry wrapper for one item call.

    Only `TransportError`s that look transient (429, 5xx, no status) are
    retried, with linear backoff: `base_delay * attempt`. `attempts` counts
    the first call and must be at least 1.
    """

    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    async def retrying(entity_id: str) -> Any:
        for attempt in range(1, attempts + 1):
            try:
                return await operation(entity_id)
            except TransportError as exc:
                if not exc.retryable or attempt == attempts:
                    raise
                delay = base_delay * attempt
                logger.info(
                    "Retrying %s in %.1fs (attempt %d/%d): %s",
                    entity_id,
                    delay,
                    attempt,
                    attempts,
                    exc.message,
                )
                await sleep(delay)
        raise AssertionError("unreachable")

    return retrying


async def run_bulk_create(
    rows: Sequence[Any],
    create: Callable[[Sequence[Any]], Awaitable[BulkEntity]],
) -> BulkEntity | OperationError:
    """One atomic provider-side request creating a single group entity."""

    try:
        entity = await create(rows)
    except Exception as exc:
        status = exc.status_code if isinstance(exc, TransportError) else None
        logger.warning("Bulk create of %d row(s) failed: %s", len(rows), describe_error(exc))
        return OperationError(message=describe_error(exc), status_code=status)
    logger.info("Bulk create of %d row(s) produced %s", len(rows), entity.id)
    return entity


def summarize(result: BulkOperationResult) -> str:
    return f"{result.success_count} succeeded, {result.failure_count} failed"


def select_eligible(entities: Iterable[BulkEntity], timers: ExpiryTimerManager) -> list[str]:
    """Ids that can still be approved (pending and not expired)."""

    return [entity.id for entity in entities if timers.is_eligible_for_approval(entity)]


def select_not_terminal(entities: Iterable[BulkEntity]) -> list[str]:
    return [entity.id for entity in entities if not entity.status.is_terminal]
