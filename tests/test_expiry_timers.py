"""
Unit tests for the expiry timer manager.

Run with: pytest tests/test_expiry_timers.py -v

Time is driven by an injected clock (see conftest.FakeClock); no test waits
for wall-clock seconds.
"""

import asyncio
from datetime import timedelta

from core.domain.models import BulkEntity, EntityStatus
from core.services.expiry_timers import (
    ExpiryTimerManager,
    compute_seconds_left,
    countdown_urgency,
    format_countdown,
)


class TestCountdown:
    """Seconds-left projection of the clock against a deadline."""

    def test_decreases_by_one_per_tick_and_stops_at_zero(self, clock):
        """now + 90s counts 90, 89, ... 0 and never goes negative."""
        manager = ExpiryTimerManager(clock=clock)
        assert manager.track("C-1", clock.now + timedelta(seconds=90)) == 90

        seen = []
        for _ in range(95):
            clock.advance(1)
            seen.append(manager.tick()["C-1"])

        assert seen[:90] == list(range(89, -1, -1))
        assert seen[89] == 0
        assert seen[90:] == [0] * 5
        assert manager.is_expired("C-1")

    def test_floor_of_partial_seconds(self, clock):
        """Fractions of a second are floored."""
        assert compute_seconds_left(clock.now + timedelta(seconds=1.9), clock.now) == 1
        assert compute_seconds_left(clock.now - timedelta(seconds=5), clock.now) == 0

    def test_accepts_iso_and_epoch_millis(self, clock):
        """Server expiries arrive as ISO strings or epoch milliseconds."""
        manager = ExpiryTimerManager(clock=clock)
        epoch_ms = int((clock.now + timedelta(seconds=30)).timestamp() * 1000)

        assert manager.track("iso", "2024-01-01T12:01:00Z") == 60
        assert manager.track("ms", epoch_ms) == 30

    def test_missing_or_unparsable_expiry_is_already_expired(self, clock):
        """Bad input never raises; the timer starts expired."""
        manager = ExpiryTimerManager(clock=clock)

        assert manager.track("none", None) == 0
        assert manager.track("junk", "next tuesday") == 0
        assert manager.is_expired("none")
        assert manager.is_expired("junk")

    def test_expired_is_sticky_until_retracked(self, clock):
        """A clock going backwards does not revive an expired timer."""
        manager = ExpiryTimerManager(clock=clock)
        manager.track("C-1", clock.now + timedelta(seconds=5))
        clock.advance(10)
        manager.tick()
        clock.advance(-20)
        manager.tick()

        assert manager.seconds_left("C-1") == 0
        assert manager.is_expired("C-1")

        manager.track("C-1", clock.now + timedelta(seconds=60))
        assert not manager.is_expired("C-1")
        assert manager.seconds_left("C-1") == 60

    def test_formatting_and_urgency(self):
        """m:ss rendering and display urgency."""
        assert format_countdown(125) == "2:05"
        assert format_countdown(59) == "0:59"
        assert format_countdown(0) == "Expired"
        assert countdown_urgency(0) == "expired"
        assert countdown_urgency(59) == "warning"
        assert countdown_urgency(60) == "ok"


class TestRegistry:
    """Timers are added and removed independently."""

    def test_untrack_leaves_others_alone(self, clock):
        """Closing one view stops only its timer."""
        manager = ExpiryTimerManager(clock=clock)
        manager.track("a", clock.now + timedelta(seconds=10))
        manager.track("b", clock.now + timedelta(seconds=20))

        manager.untrack("a")
        clock.advance(1)

        assert manager.tick() == {"b": 19}
        assert "a" not in manager
        assert len(manager) == 1
        assert manager.is_expired("a")

    def test_clear(self, clock):
        """clear() drops every timer."""
        manager = ExpiryTimerManager(clock=clock)
        manager.track("a", clock.now + timedelta(seconds=10))
        manager.clear()

        assert manager.tracked_ids == []


class TestEligibility:
    """Approval needs a pending entity with time left."""

    def test_pending_with_time_left(self, clock):
        """Pending + seconds left > 0 is eligible."""
        manager = ExpiryTimerManager(clock=clock)
        entity = BulkEntity(id="C-1", status="pending", expires_at=clock.now + timedelta(seconds=30))
        manager.track_entity(entity)

        assert manager.is_eligible_for_approval(entity)

    def test_not_pending_or_expired_or_untracked(self, clock):
        """Approved, expired or unknown entities are not eligible."""
        manager = ExpiryTimerManager(clock=clock)
        approved = BulkEntity(id="A", status="approved", expires_at=clock.now + timedelta(seconds=30))
        expiring = BulkEntity(id="B", status="pending", expires_at=clock.now + timedelta(seconds=2))
        untracked = BulkEntity(id="C", status="pending", expires_at=clock.now + timedelta(seconds=30))
        manager.track_entity(approved)
        manager.track_entity(expiring)
        clock.advance(2)
        manager.tick()

        assert not manager.is_eligible_for_approval(approved)
        assert not manager.is_eligible_for_approval(expiring)
        assert not manager.is_eligible_for_approval(untracked)

    def test_apply_expiry(self, clock):
        """Timer expiry is projected onto pending entities only."""
        manager = ExpiryTimerManager(clock=clock)
        pending = BulkEntity(id="P", status="pending", expires_at=clock.now + timedelta(seconds=1))
        approved = BulkEntity(id="A", status="approved", expires_at=clock.now + timedelta(seconds=1))
        manager.track_entity(pending)
        manager.track_entity(approved)
        clock.advance(1)
        manager.tick()

        assert manager.apply_expiry(pending).status is EntityStatus.EXPIRED
        assert manager.apply_expiry(approved).status is EntityStatus.APPROVED
        assert pending.status is EntityStatus.PENDING


class TestLifecycle:
    """The repeating tick is started and stopped explicitly."""

    def test_run_ticks_and_tolerates_untrack_from_callback(self, clock):
        """Callbacks may untrack timers while the loop runs."""
        snapshots = []
        done = asyncio.Event()

        def on_tick(snapshot):
            snapshots.append(snapshot)
            manager.untrack("a")
            clock.advance(1)
            if len(snapshots) >= 3:
                done.set()

        manager = ExpiryTimerManager(clock=clock, tick_seconds=0.001, on_tick=on_tick)
        manager.track("a", clock.now + timedelta(seconds=10))
        manager.track("b", clock.now + timedelta(seconds=10))

        async def scenario():
            manager.start()
            await asyncio.wait_for(done.wait(), timeout=5)
            await manager.stop()

        asyncio.run(scenario())

        assert snapshots[0] == {"a": 10, "b": 10}
        assert snapshots[1] == {"b": 9}
        assert not manager.running

    def test_stop_right_after_start(self, clock):
        """Stopping before the first tick does not hang."""
        manager = ExpiryTimerManager(clock=clock, tick_seconds=60)

        async def scenario():
            manager.start()
            await asyncio.wait_for(manager.stop(), timeout=5)

        asyncio.run(scenario())

        assert not manager.running

    def test_context_manager(self, clock):
        """`async with` mounts and unmounts the ticker."""
        manager = ExpiryTimerManager(clock=clock, tick_seconds=60)
        states = []

        async def scenario():
            async with manager:
                states.append(manager.running)
            states.append(manager.running)

        asyncio.run(scenario())

        assert states == [True, False]
