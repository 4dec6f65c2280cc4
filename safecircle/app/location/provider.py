"""
provider.py — Location Provider adapter over a platform position source.

═══════════════════════════════════════════════════════════════════════════
BOUNDARY
═══════════════════════════════════════════════════════════════════════════

    request_permission()                 → GRANTED | DENIED
    get_current_sample()                 → LocationSample
                                           raises PermissionDeniedError  (denied)
                                           raises LocationUnavailableError (no fix yet)
    subscribe(min_interval_ms,
              min_distance_m)            → LocationSubscription (async iterator)
    LocationSubscription.unsubscribe()   → releases the platform watch

═══════════════════════════════════════════════════════════════════════════
SAMPLING DEBOUNCE
═══════════════════════════════════════════════════════════════════════════

The platform delivers raw fixes as often as it likes. A subscription only
emits a fix when, measured from the previously *emitted* sample:

    elapsed_ms  ≥ min_interval_ms      (periodic keep-alive)
        OR
    distance_m  ≥ min_distance_m       (moved far enough to matter)

The first fix of a subscription is always emitted. A device that sits
still therefore produces one sample every min_interval_ms; a device that
moves produces one sample every min_distance_m.

Each subscribe() opens its own platform watch. Unsubscribing (explicitly,
via ``async with``, or by closing the iterator) closes that watch, and a
later subscribe() starts from scratch.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from safecircle.app.core.config import settings
from safecircle.app.core.errors import LocationUnavailableError, PermissionDeniedError
from safecircle.app.location.geo import Coordinate, format_coordinates, haversine_m

logger = logging.getLogger(__name__)


class PermissionStatus(str, Enum):
    """Foreground location permission answer."""
    UNDETERMINED = "undetermined"
    GRANTED      = "granted"
    DENIED       = "denied"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LocationSample:
    """One emitted position fix. Ephemeral, never persisted as an entity."""
    latitude: float
    longitude: float
    captured_at: datetime

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def formatted(self) -> str:
        return format_coordinates(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "capturedAt": self.captured_at.isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Platform abstraction
# ═══════════════════════════════════════════════════════════════════════════

class PositionWatch(ABC):
    """An open platform watch producing raw fixes."""

    @abstractmethod
    async def next_fix(self) -> Optional[Coordinate]:
        """Wait for the next raw fix. None means no fix is available yet."""


class PositionSource(ABC):
    """Platform geolocation (GPS / OS location service)."""

    @abstractmethod
    async def request_permission(self) -> PermissionStatus:
        ...

    @abstractmethod
    async def current_fix(self) -> Optional[Coordinate]:
        ...

    @abstractmethod
    def open_watch(self) -> PositionWatch:
        ...

    @abstractmethod
    def close_watch(self, watch: PositionWatch) -> None:
        ...


class _ScriptedWatch(PositionWatch):

    def __init__(self, source: "SimulatedPositionSource"):
        self._source = source
        self._index = 0

    async def next_fix(self) -> Optional[Coordinate]:
        await asyncio.sleep(self._source.poll_seconds)
        fixes = self._source.fixes
        if not fixes:
            return None
        # Scripted route, then the device stays at the last point
        fix = fixes[min(self._index, len(fixes) - 1)]
        self._index += 1
        return fix


class SimulatedPositionSource(PositionSource):
    """
    Development / test platform.

    Replays a scripted route of fixes on every watch and keeps count of
    open watches so leaked subscriptions are visible.
    """

    def __init__(
        self,
        fixes: Sequence[Coordinate] = (),
        *,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        poll_seconds: float = 0.0,
    ):
        self.fixes: List[Coordinate] = list(fixes)
        self.permission = permission
        self.poll_seconds = poll_seconds
        self._open: List[PositionWatch] = []
        self.watches_opened = 0

    @property
    def active_watches(self) -> int:
        return len(self._open)

    async def request_permission(self) -> PermissionStatus:
        return self.permission

    async def current_fix(self) -> Optional[Coordinate]:
        return self.fixes[0] if self.fixes else None

    def open_watch(self) -> PositionWatch:
        watch = _ScriptedWatch(self)
        self._open.append(watch)
        self.watches_opened += 1
        return watch

    def close_watch(self, watch: PositionWatch) -> None:
        if watch in self._open:
            self._open.remove(watch)


# ═══════════════════════════════════════════════════════════════════════════
# Subscription
# ═══════════════════════════════════════════════════════════════════════════

class LocationSubscription:
    """Lazy, infinite stream of debounced samples over one platform watch."""

    def __init__(
        self,
        source: PositionSource,
        *,
        min_interval_ms: int,
        min_distance_m: float,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._source = source
        self._watch = source.open_watch()
        self.min_interval_ms = min_interval_ms
        self.min_distance_m = min_distance_m
        self._clock = clock
        self._last: Optional[LocationSample] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _should_emit(self, sample: LocationSample) -> bool:
        if self._last is None:
            return True
        elapsed_ms = (sample.captured_at - self._last.captured_at).total_seconds() * 1000
        if elapsed_ms >= self.min_interval_ms:
            return True
        return haversine_m(self._last.coordinate, sample.coordinate) >= self.min_distance_m

    def __aiter__(self) -> "LocationSubscription":
        return self

    async def __anext__(self) -> LocationSample:
        while not self._closed:
            fix = await self._watch.next_fix()
            if self._closed:
                break
            if fix is None:
                continue
            sample = LocationSample(fix.latitude, fix.longitude, self._clock())
            if self._should_emit(sample):
                self._last = sample
                return sample
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Stop sampling and release the platform watch. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._source.close_watch(self._watch)
        logger.debug("Location watch released")

    async def __aenter__(self) -> "LocationSubscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.unsubscribe()


# ═══════════════════════════════════════════════════════════════════════════
# Provider
# ═══════════════════════════════════════════════════════════════════════════

class LocationProvider:
    """Permission-aware facade over a PositionSource."""

    def __init__(
        self,
        source: PositionSource,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self._clock = clock
        self.permission = PermissionStatus.UNDETERMINED

    async def request_permission(self) -> PermissionStatus:
        self.permission = await self.source.request_permission()
        if self.permission != PermissionStatus.GRANTED:
            logger.warning("Location permission %s", self.permission.value)
        return self.permission

    async def _ensure_permission(self) -> None:
        if self.permission != PermissionStatus.GRANTED:
            await self.request_permission()
        if self.permission != PermissionStatus.GRANTED:
            raise PermissionDeniedError()

    async def get_current_sample(self) -> LocationSample:
        await self._ensure_permission()
        fix = await self.source.current_fix()
        if fix is None:
            raise LocationUnavailableError()
        return LocationSample(fix.latitude, fix.longitude, self._clock())

    async def subscribe(
        self,
        min_interval_ms: Optional[int] = None,
        min_distance_m: Optional[float] = None,
    ) -> LocationSubscription:
        await self._ensure_permission()
        return LocationSubscription(
            self.source,
            min_interval_ms=(
                settings.LOCATION_MIN_INTERVAL_MS
                if min_interval_ms is None else min_interval_ms
            ),
            min_distance_m=(
                settings.LOCATION_MIN_DISTANCE_M
                if min_distance_m is None else min_distance_m
            ),
            clock=self._clock,
        )
