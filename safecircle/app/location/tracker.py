"""
tracker.py — Continuous location tracking into a single "latest sample" slot.

The tracker runs one subscription in a background task for the lifetime of
the application. Every emitted sample lands in ``latest`` (last write wins;
a sample captured *earlier* than the one already held is dropped so
consumers only ever see capture time move forward) and, while location
sharing is switched on, is forwarded to the sharing sink.

The alert lifecycle reads ``latest`` at fire time. It never waits on the
tracker: if nothing has been captured it asks the provider for a one-off
fix, and if that fails too the alert carries the sentinel location.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from safecircle.app.core.errors import (
    LocationError,
    PermissionDeniedError,
    RemoteDispatchError,
)
from safecircle.app.location.provider import LocationProvider, LocationSample, LocationSubscription

logger = logging.getLogger(__name__)

SharingSink = Callable[[LocationSample], Awaitable[None]]


class LocationTracker:
    """Owns the most-recent-sample slot and the background subscription."""

    def __init__(
        self,
        provider: LocationProvider,
        *,
        sink: Optional[SharingSink] = None,
        sharing_enabled: Callable[[], bool] = lambda: True,
        min_interval_ms: Optional[int] = None,
        min_distance_m: Optional[float] = None,
    ):
        self.provider = provider
        self.sink = sink
        self._sharing_enabled = sharing_enabled
        self._min_interval_ms = min_interval_ms
        self._min_distance_m = min_distance_m
        self._latest: Optional[LocationSample] = None
        self._subscription: Optional[LocationSubscription] = None
        self._task: Optional[asyncio.Task] = None
        self.permission_denied = False
        self.samples_shared = 0

    @property
    def latest(self) -> Optional[LocationSample]:
        return self._latest

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def record(self, sample: LocationSample) -> bool:
        """Store a sample in the slot. Returns False if it was older than the held one."""
        if self._latest is not None and sample.captured_at < self._latest.captured_at:
            return False
        self._latest = sample
        return True

    async def ingest(self, sample: LocationSample) -> bool:
        """Accept a fix reported by the device itself (bypasses the subscription)."""
        if not self.record(sample):
            return False
        await self._share(sample)
        return True

    async def _share(self, sample: LocationSample) -> None:
        if self.sink is None or not self._sharing_enabled():
            return
        try:
            await self.sink(sample)
            self.samples_shared += 1
        except RemoteDispatchError as exc:
            logger.warning("Location sharing failed: %s", exc.message)

    async def start(self) -> None:
        """Prime the slot with a one-off fix and start the background subscription."""
        if self.running:
            return
        try:
            self.record(await self.provider.get_current_sample())
        except PermissionDeniedError:
            self.permission_denied = True
            logger.warning("Location tracking disabled: permission denied")
            return
        except LocationError as exc:
            logger.info("No initial fix: %s", exc.message)

        self.permission_denied = False
        self._subscription = await self.provider.subscribe(
            self._min_interval_ms, self._min_distance_m,
        )
        self._task = asyncio.create_task(self._run(self._subscription))
        logger.info(
            "Location tracking started (%d ms / %.0f m)",
            self._subscription.min_interval_ms, self._subscription.min_distance_m,
        )

    async def _run(self, subscription: LocationSubscription) -> None:
        async for sample in subscription:
            if self.record(sample):
                logger.debug(
                    "Location %s", sample.formatted(),
                    extra={"lat": sample.latitude, "lon": sample.longitude},
                )
                await self._share(sample)

    async def stop(self) -> None:
        """Release the platform watch and wait for the background task to end."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Location tracking stopped")

    async def current_or_none(self) -> Optional[LocationSample]:
        """Latest sample, else a one-off fix, else None. Never raises."""
        if self._latest is not None:
            return self._latest
        try:
            sample = await self.provider.get_current_sample()
        except LocationError as exc:
            logger.info("Location unavailable at fire time: %s", exc.message)
            return None
        self.record(sample)
        return sample
