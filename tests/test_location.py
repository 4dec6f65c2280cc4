"""
test_location.py — Geo maths, location provider adapter and tracker.

Run with:
    pytest tests/test_location.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from safecircle.app.core.errors import (
    LocationUnavailableError,
    PermissionDeniedError,
    RemoteDispatchError,
)
from safecircle.app.location.geo import Coordinate, format_coordinates, haversine_m
from safecircle.app.location.provider import (
    LocationProvider,
    LocationSample,
    LocationSubscription,
    PermissionStatus,
    SimulatedPositionSource,
)
from safecircle.app.location.tracker import LocationTracker


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

HOME = Coordinate(6.7106, 79.9074)
# ~11 m north of HOME (0.0001° latitude ≈ 11.1 m)
NEAR = Coordinate(6.7107, 79.9074)
# ~1.1 km north of HOME
FAR = Coordinate(6.7206, 79.9074)

T0 = datetime(2026, 6, 15, 8, 0, tzinfo=timezone.utc)


class StepClock:
    """Clock that advances a fixed step on every read."""

    def __init__(self, step_ms: int):
        self.now = T0 - timedelta(milliseconds=step_ms)
        self.step = timedelta(milliseconds=step_ms)

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


def _sample(coord: Coordinate, seconds: float = 0.0) -> LocationSample:
    return LocationSample(coord.latitude, coord.longitude, T0 + timedelta(seconds=seconds))


async def _take(subscription: LocationSubscription, n: int):
    out = []
    async for sample in subscription:
        out.append(sample)
        if len(out) == n:
            break
    return out


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Geo
# ═══════════════════════════════════════════════════════════════════════════

class TestGeo:

    def test_haversine_zero(self):
        assert haversine_m(HOME, HOME) == 0.0

    def test_haversine_small_step(self):
        assert 10.0 < haversine_m(HOME, NEAR) < 12.5

    def test_haversine_symmetric(self):
        assert haversine_m(HOME, FAR) == pytest.approx(haversine_m(FAR, HOME))

    def test_format_four_decimals(self):
        assert format_coordinates(6.710612, 79.907399) == "6.7106,79.9074"
        assert format_coordinates(-33.8688, 151.2093) == "-33.8688,151.2093"

    @pytest.mark.parametrize("lat, lon", [(91, 0), (-91, 0), (0, 181), (0, -181)])
    def test_coordinate_range(self, lat, lon):
        with pytest.raises(ValueError):
            Coordinate(lat, lon)


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Provider
# ═══════════════════════════════════════════════════════════════════════════

class TestLocationProvider:

    def test_current_sample(self):
        provider = LocationProvider(SimulatedPositionSource([HOME]))
        sample = asyncio.run(provider.get_current_sample())
        assert sample.formatted() == "6.7106,79.9074"
        assert provider.permission == PermissionStatus.GRANTED

    def test_permission_denied_is_distinct(self):
        provider = LocationProvider(
            SimulatedPositionSource([HOME], permission=PermissionStatus.DENIED),
        )
        with pytest.raises(PermissionDeniedError):
            asyncio.run(provider.get_current_sample())

    def test_no_fix_yet(self):
        provider = LocationProvider(SimulatedPositionSource([]))
        with pytest.raises(LocationUnavailableError):
            asyncio.run(provider.get_current_sample())

    def test_subscribe_denied(self):
        source = SimulatedPositionSource([HOME], permission=PermissionStatus.DENIED)
        provider = LocationProvider(source)
        with pytest.raises(PermissionDeniedError):
            asyncio.run(provider.subscribe())
        assert source.active_watches == 0

    def test_subscribe_defaults(self):
        provider = LocationProvider(SimulatedPositionSource([HOME]))

        async def scenario():
            sub = await provider.subscribe()
            sub.unsubscribe()
            return sub

        sub = asyncio.run(scenario())
        assert sub.min_interval_ms == 5000
        assert sub.min_distance_m == 10.0

    def test_sample_to_dict(self):
        d = _sample(HOME).to_dict()
        assert d["capturedAt"] == T0.isoformat()
        assert d["latitude"] == HOME.latitude


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Subscription debounce
# ═══════════════════════════════════════════════════════════════════════════

class TestDebounce:

    def _subscription(self, fixes, step_ms, *, interval_ms=5000, distance_m=10.0):
        source = SimulatedPositionSource(fixes)
        sub = LocationSubscription(
            source,
            min_interval_ms=interval_ms,
            min_distance_m=distance_m,
            clock=StepClock(step_ms),
        )
        return source, sub

    def test_first_fix_always_emitted(self):
        _, sub = self._subscription([HOME], step_ms=1)
        samples = asyncio.run(_take(sub, 1))
        assert samples[0].captured_at == T0

    def test_stationary_emits_on_interval(self):
        # 1 s between raw fixes, 5 s interval: every fifth raw fix is emitted
        _, sub = self._subscription([HOME], step_ms=1000)
        samples = asyncio.run(_take(sub, 3))
        gaps = [
            (b.captured_at - a.captured_at).total_seconds()
            for a, b in zip(samples, samples[1:])
        ]
        assert gaps == [5.0, 5.0]

    def test_movement_emits_before_interval(self):
        _, sub = self._subscription([HOME, HOME, FAR], step_ms=100)
        samples = asyncio.run(_take(sub, 2))
        assert samples[1].formatted() == "6.7206,79.9074"
        assert (samples[1].captured_at - samples[0].captured_at).total_seconds() < 5

    def test_small_movement_suppressed(self):
        _, sub = self._subscription([HOME, NEAR], step_ms=100, distance_m=50.0)
        samples = asyncio.run(_take(sub, 2))
        # NEAR is within 50 m, so the second emission waits for the interval
        assert (samples[1].captured_at - samples[0].captured_at).total_seconds() >= 5

    def test_either_threshold_suffices(self):
        _, sub = self._subscription([HOME], step_ms=100)
        first = _sample(HOME, 0)
        sub._last = first
        assert not sub._should_emit(_sample(HOME, 1))
        assert sub._should_emit(_sample(HOME, 5))
        assert sub._should_emit(_sample(FAR, 1))
        sub.unsubscribe()


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Unsubscribe releases the watch
# ═══════════════════════════════════════════════════════════════════════════

class TestUnsubscribe:

    def test_unsubscribe_closes_watch(self):
        source = SimulatedPositionSource([HOME])
        provider = LocationProvider(source)

        async def scenario():
            sub = await provider.subscribe(0, 0)
            assert source.active_watches == 1
            await _take(sub, 2)
            sub.unsubscribe()
            sub.unsubscribe()
            return sub

        sub = asyncio.run(scenario())
        assert source.active_watches == 0
        assert sub.closed

    def test_iteration_stops_after_unsubscribe(self):
        source = SimulatedPositionSource([HOME])

        async def scenario():
            sub = await LocationProvider(source).subscribe(0, 0)
            sub.unsubscribe()
            return [s async for s in sub]

        assert asyncio.run(scenario()) == []

    def test_context_manager_releases(self):
        source = SimulatedPositionSource([HOME])

        async def scenario():
            async with await LocationProvider(source).subscribe(0, 0) as sub:
                await _take(sub, 1)
                assert source.active_watches == 1

        asyncio.run(scenario())
        assert source.active_watches == 0

    def test_resubscribe_gets_fresh_watch(self):
        source = SimulatedPositionSource([HOME])
        provider = LocationProvider(source)

        async def scenario():
            for _ in range(3):
                async with await provider.subscribe(0, 0) as sub:
                    await _take(sub, 1)

        asyncio.run(scenario())
        assert source.watches_opened == 3
        assert source.active_watches == 0


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: Tracker
# ═══════════════════════════════════════════════════════════════════════════

class TestLocationTracker:

    def test_record_last_write_wins(self):
        tracker = LocationTracker(LocationProvider(SimulatedPositionSource()))
        assert tracker.record(_sample(HOME, 1))
        assert tracker.record(_sample(FAR, 2))
        assert tracker.latest.formatted() == "6.7206,79.9074"

    def test_record_drops_older_sample(self):
        tracker = LocationTracker(LocationProvider(SimulatedPositionSource()))
        tracker.record(_sample(FAR, 10))
        assert tracker.record(_sample(HOME, 5)) is False
        assert tracker.latest.formatted() == "6.7206,79.9074"

    def test_start_and_stop(self):
        source = SimulatedPositionSource([HOME, FAR], poll_seconds=0.001)
        shared = []

        async def sink(sample):
            shared.append(sample)

        async def scenario():
            tracker = LocationTracker(
                LocationProvider(source), sink=sink, min_interval_ms=0, min_distance_m=0,
            )
            await tracker.start()
            assert tracker.running
            for _ in range(100):
                if len(shared) >= 2:
                    break
                await asyncio.sleep(0.01)
            await tracker.stop()
            return tracker

        tracker = asyncio.run(scenario())
        assert not tracker.running
        assert source.active_watches == 0
        assert tracker.latest is not None
        assert len(shared) >= 2

    def test_permission_denied_does_not_start(self):
        source = SimulatedPositionSource([HOME], permission=PermissionStatus.DENIED)

        async def scenario():
            tracker = LocationTracker(LocationProvider(source))
            await tracker.start()
            return tracker, await tracker.current_or_none()

        tracker, current = asyncio.run(scenario())
        assert tracker.permission_denied
        assert not tracker.running
        assert current is None
        assert source.active_watches == 0

    def test_sharing_disabled(self):
        shared = []

        async def sink(sample):
            shared.append(sample)

        tracker = LocationTracker(
            LocationProvider(SimulatedPositionSource()),
            sink=sink,
            sharing_enabled=lambda: False,
        )
        assert asyncio.run(tracker.ingest(_sample(HOME)))
        assert shared == []
        assert tracker.latest is not None

    def test_sink_failure_does_not_stop_tracking(self):
        async def sink(sample):
            raise RemoteDispatchError("upsert_user_location", "HTTP 500")

        tracker = LocationTracker(LocationProvider(SimulatedPositionSource()), sink=sink)

        async def scenario():
            await tracker.ingest(_sample(HOME, 1))
            await tracker.ingest(_sample(FAR, 2))

        asyncio.run(scenario())
        assert tracker.latest.formatted() == "6.7206,79.9074"
        assert tracker.samples_shared == 0

    def test_current_or_none_falls_back_to_fix(self):
        tracker = LocationTracker(LocationProvider(SimulatedPositionSource([HOME])))
        sample = asyncio.run(tracker.current_or_none())
        assert sample.formatted() == "6.7106,79.9074"
        assert tracker.latest == sample
