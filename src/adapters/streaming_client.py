"""Streaming progress client.

One long-lived POST carries the whole payload; the server answers with an
event stream. Frames are decoded incrementally (`adapters.event_stream`) and
dispatched:

- `progress` -> `on_progress(ProgressEvent)`, synchronously, then continue.
- `complete` -> return the `CompletionEvent`.
- `error`    -> raise `StreamFailed(message)`.
- default `message` (gift-card dialect) -> `done: true` terminates (as an
  error when `error` is set), anything else is progress.

If the connection ends without a terminal frame a synthesized failure is
returned instead of waiting forever. Cancelling the awaiting task aborts the
request; no `on_progress` call happens after that.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, Callable
from typing import Any

import httpx
from pydantic import ValidationError

from adapters.event_stream import DEFAULT_EVENT, Frame, FrameDecoder
from adapters.http_client import raise_for_api_error
from core.domain.models import CompletionEvent, ProgressEvent
from core.errors import StreamFailed, StreamProtocolError, TransportError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

CLOSED_WITHOUT_RESULT = "Connection closed before the server reported completion"


def synthesized_failure(message: str = CLOSED_WITHOUT_RESULT, *, failure_count: int = 0) -> CompletionEvent:
    """Zero-success result used when the stream ends without a terminal frame."""

    return CompletionEvent(
        success_count=0,
        failure_count=failure_count,
        has_failures=True,
        synthesized=True,
        error=message,
    )


def _error_message(payload: Any, default: str = "Stream reported an error") -> str:
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


class _StreamState:
    """Per-stream bookkeeping; `last_total` sizes the synthesized failure."""

    def __init__(self, on_progress: ProgressCallback | None) -> None:
        self.on_progress = on_progress
        self.last_total = 0
        self.progress_count = 0

    def progress(self, payload: dict[str, Any]) -> None:
        try:
            event = ProgressEvent.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Skipping malformed progress frame: %s", exc.errors()[0].get("msg", exc))
            return
        self.last_total = max(self.last_total, event.total)
        self.progress_count += 1
        if self.on_progress is not None:
            self.on_progress(event)

    def handle(self, frame: Frame) -> CompletionEvent | None:
        """Dispatch one frame; a returned event terminates the stream."""

        try:
            payload = json.loads(frame.data)
        except ValueError:
            if frame.event == "error":
                raise StreamFailed(_error_message(frame.data)) from None
            logger.warning("Skipping %s frame with non-JSON data", frame.event)
            return None

        if frame.event == "error":
            raise StreamFailed(_error_message(payload))

        if not isinstance(payload, dict):
            logger.warning("Skipping %s frame with non-object data", frame.event)
            return None

        if frame.event == "progress":
            self.progress(payload)
            return None
        if frame.event == "complete":
            return self._complete(payload)
        if frame.event == DEFAULT_EVENT:
            if payload.get("done"):
                if payload.get("error"):
                    raise StreamFailed(_error_message(payload.get("error")))
                return self._complete(payload)
            self.progress(payload)
            return None

        logger.debug("Ignoring stream event %r", frame.event)
        return None

    def _complete(self, payload: dict[str, Any]) -> CompletionEvent:
        try:
            return CompletionEvent.model_validate(payload)
        except ValidationError as exc:
            raise StreamProtocolError(f"Malformed completion frame: {exc.errors()[0].get('msg')}") from exc


async def consume_event_stream(
    chunks: AsyncIterable[bytes | str],
    on_progress: ProgressCallback | None = None,
) -> CompletionEvent:
    """Decode `chunks` until a terminal frame or the end of the stream."""

    decoder = FrameDecoder()
    state = _StreamState(on_progress)
    try:
        async for chunk in chunks:
            for frame in decoder.feed(chunk):
                logger.debug("Stream frame: %s", frame.event)
                result = state.handle(frame)
                if result is not None:
                    return result
    except (httpx.ReadError, httpx.RemoteProtocolError, httpx.ReadTimeout) as exc:
        logger.warning("Event stream dropped after %d progress frame(s): %s", state.progress_count, exc)
        return synthesized_failure(f"{CLOSED_WITHOUT_RESULT}: {exc}", failure_count=state.last_total)

    if decoder.pending.strip():
        logger.warning("Discarding incomplete trailing frame (%d chars)", len(decoder.pending))
    logger.warning("Event stream closed after %d progress frame(s) with no result", state.progress_count)
    return synthesized_failure(failure_count=state.last_total)


async def stream_bulk_create(
    client: httpx.AsyncClient,
    path: str,
    payload: dict[str, Any],
    on_progress: ProgressCallback | None = None,
    *,
    timeout: httpx.Timeout | None = None,
) -> CompletionEvent:
    """POST `payload` to `path` and follow the event stream it opens.

    Raises `TransportError` when the request cannot be opened or is
    rejected, `StreamProtocolError` when the answer is not an event stream,
    and `StreamFailed` when the server sends an `error` frame.
    """

    request_kwargs: dict[str, Any] = {"json": payload, "headers": {"Accept": "text/event-stream"}}
    if timeout is not None:
        request_kwargs["timeout"] = timeout

    try:
        async with client.stream("POST", path, **request_kwargs) as response:
            if not response.is_success:
                await response.aread()
                raise_for_api_error(response)
            content_type = response.headers.get("content-type", "")
            if content_type.startswith("application/json"):
                await response.aread()
                raise StreamProtocolError(f"Expected an event stream from {path}, got {content_type}")
            return await consume_event_stream(response.aiter_bytes(), on_progress)
    except httpx.HTTPError as exc:
        raise TransportError(f"Stream request to {path}: {exc}") from exc
