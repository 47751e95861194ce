"""Expiry countdowns for quotes/contracts.

The manager is an explicit registry owned by whoever shows the countdowns (a
list view, a detail view, the `watch` command). It performs no network calls:
`seconds_left` is a projection of the clock against a fixed deadline,
recomputed for every tracked id on each tick.

Per id the state machine is `Active(seconds_left) -> Expired`. Expired is
sticky until the id is tracked again with a fresh deadline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from core.domain.models import BulkEntity, EntityStatus, parse_timestamp

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TickCallback = Callable[[dict[str, int]], None]

WARNING_THRESHOLD_SECONDS = 60
_ONE_SECOND = timedelta(seconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_seconds_left(expires_at: datetime | None, now: datetime) -> int:
    """`max(0, floor((expires_at - now) / 1s))`; a missing deadline is 0."""

    if expires_at is None:
        return 0
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, (expires_at - now) // _ONE_SECOND)


def format_countdown(seconds: int) -> str:
    if seconds <= 0:
        return "Expired"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def countdown_urgency(seconds: int) -> str:
    """Display hint: `expired`, `warning` (under a minute) or `ok`."""

    if seconds <= 0:
        return "expired"
    if seconds < WARNING_THRESHOLD_SECONDS:
        return "warning"
    return "ok"


def is_eligible_for_approval(entity: BulkEntity, seconds_left: int) -> bool:
    return entity.status is EntityStatus.PENDING and seconds_left > 0


@dataclass
class TimerState:
    entity_id: str
    expires_at: datetime | None
    seconds_left: int = 0
    expired: bool = False


class ExpiryTimerManager:
    """Registry of countdowns, one per tracked entity id."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        tick_seconds: float = 1.0,
        on_tick: TickCallback | None = None,
    ) -> None:
        self._clock = clock or utc_now
        self._tick_seconds = tick_seconds
        self._on_tick = on_tick
        self._timers: dict[str, TimerState] = {}
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None

    # ------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------

    def track(self, entity_id: str, expires_at: object) -> int:
        """Start (or restart) the countdown for `entity_id`.

        `expires_at` may be a datetime, an ISO string or epoch millis; anything
        unusable makes the timer start already expired.
        """

        deadline = parse_timestamp(expires_at)
        if deadline is None and expires_at not in (None, ""):
            logger.debug("Unparsable expiry for %s: %r", entity_id, expires_at)
        state = TimerState(entity_id=entity_id, expires_at=deadline)
        self._timers[entity_id] = state
        self._refresh(state, self._clock())
        return state.seconds_left

    def track_entity(self, entity: BulkEntity) -> int:
        return self.track(entity.id, entity.expires_at)

    def untrack(self, entity_id: str) -> None:
        self._timers.pop(entity_id, None)

    def clear(self) -> None:
        self._timers.clear()

    @property
    def tracked_ids(self) -> list[str]:
        return list(self._timers)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._timers

    def __len__(self) -> int:
        return len(self._timers)

    # ------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------

    def _refresh(self, state: TimerState, now: datetime) -> None:
        if state.expired:
            return
        state.seconds_left = compute_seconds_left(state.expires_at, now)
        if state.seconds_left == 0:
            state.expired = True
            logger.debug("Timer expired: %s", state.entity_id)

    def tick(self) -> dict[str, int]:
        """Recompute every tracked countdown against one clock reading."""

        now = self._clock()
        # Copy: callbacks may track/untrack while we iterate.
        for state in list(self._timers.values()):
            self._refresh(state, now)
        return self.snapshot()

    def snapshot(self) -> dict[str, int]:
        return {entity_id: state.seconds_left for entity_id, state in self._timers.items()}

    def seconds_left(self, entity_id: str) -> int:
        state = self._timers.get(entity_id)
        return state.seconds_left if state else 0

    def is_expired(self, entity_id: str) -> bool:
        state = self._timers.get(entity_id)
        return state.expired if state else True

    def is_eligible_for_approval(self, entity: BulkEntity) -> bool:
        return is_eligible_for_approval(entity, self.seconds_left(entity.id))

    def apply_expiry(self, entity: BulkEntity) -> BulkEntity:
        """Project timer-driven expiry onto a pending entity."""

        if entity.status is EntityStatus.PENDING and entity.id in self and self.is_expired(entity.id):
            return entity.model_copy(update={"status": EntityStatus.EXPIRED})
        return entity

    # ------------------------------------------------------------
    # Lifecycle (repeating tick)
    # ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        """Tick every `tick_seconds` until `stop()` is called."""

        if self._stopping is None:
            self._stopping = asyncio.Event()
        stopping = self._stopping
        while not stopping.is_set():
            snapshot = self.tick()
            if self._on_tick is not None:
                self._on_tick(snapshot)
            try:
                await asyncio.wait_for(stopping.wait(), timeout=self._tick_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self) -> asyncio.Task[None]:
        """Schedule `run()` on the current loop (mount)."""

        if self.running:
            assert self._task is not None
            return self._task
        if self._stopping is None:
            self._stopping = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop ticking (unmount). Tracked timers are kept."""

        if self._stopping is not None:
            self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._stopping = None

    async def __aenter__(self) -> "ExpiryTimerManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
