"""
timer.py — Cancellable one-second countdown handle.

A CountdownTimer is created per arming session and never reused. The
background task sleeps one tick interval, then calls ``tick()``; ``tick()``
checks the cancelled flag *before* decrementing, so once ``cancel()`` has
returned no further tick can change the count or reach expiry, even one
that was already scheduled on the loop.

    remaining: N → N-1 → ... → 1 → 0  ⇒  on_expire() (exactly once)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from safecircle.app.core.config import settings

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], Awaitable[None]]


class CountdownTimer:
    """Explicit countdown handle with its own asyncio task."""

    def __init__(
        self,
        seconds: int,
        on_expire: ExpireCallback,
        *,
        on_tick: Optional[TickCallback] = None,
        tick_interval: Optional[float] = None,
        name: str = "countdown",
    ):
        if seconds < 1:
            raise ValueError("Countdown must be at least one tick")
        self.name = name
        self.initial = seconds
        self.remaining = seconds
        self.tick_interval = (
            settings.TICK_INTERVAL_SECONDS if tick_interval is None else tick_interval
        )
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._task: Optional[asyncio.Task] = None
        self.cancelled = False
        self.expired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.expired)

    def start(self) -> "CountdownTimer":
        if self._task is None and self.active:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        while self.active:
            await asyncio.sleep(self.tick_interval)
            await self.tick()

    async def tick(self) -> int:
        """Advance one second. No-op once cancelled or expired."""
        if not self.active:
            return self.remaining

        self.remaining -= 1
        logger.debug("%s: %d", self.name, self.remaining, extra={"countdown": self.remaining})
        if self._on_tick is not None:
            self._on_tick(self.remaining)

        if self.remaining <= 0:
            self.remaining = 0
            self.expired = True
            await self._on_expire()
        return self.remaining

    def cancel(self) -> bool:
        """Stop the countdown. Returns False if it had already expired or been cancelled."""
        if not self.active:
            return False
        self.cancelled = True
        # The expiry callback may cancel its own timer; never cancel the running task then
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        logger.debug("%s cancelled at %d", self.name, self.remaining)
        return True

    async def wait(self) -> None:
        """Wait for the background task to finish (expiry or cancellation)."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self.cancelled:
                raise
