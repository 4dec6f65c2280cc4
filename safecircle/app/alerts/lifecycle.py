"""
lifecycle.py — Emergency alert lifecycle: SOS countdown, fire path, safety check.

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE (SOSController)
═══════════════════════════════════════════════════════════════════════════

                 arm() / toggle()
        ┌──────┐ ───────────────▶ ┌─────────┐
        │ IDLE │                  │ ARMING  │  countdown N → 0, one tick/s
        └──────┘ ◀─────────────── └────┬────┘
            ▲    cancel() / toggle()    │ countdown reaches 0
            │    (nothing recorded)     ▼
            │                     ┌─────────┐
            └──────────────────── │ FIRING  │  transient
                                  └─────────┘

    trigger_now() (press-and-hold) skips the countdown and goes straight
    to FIRING. The safety-check timer has its own countdown and enters the
    same fire path on expiry.

═══════════════════════════════════════════════════════════════════════════
FIRE PATH
═══════════════════════════════════════════════════════════════════════════

    ┌──────────────────────┐
    │ 1. Contacts?         │  empty → outcome no_contacts, nothing recorded
    └─────────┬────────────┘
              ▼
    ┌──────────────────────┐
    │ 2. Location          │  latest tracked sample, else one-off fix,
    │                      │  else "Location not available"
    └─────────┬────────────┘
              ▼
    ┌──────────────────────┐
    │ 3. Record            │  Alert(status=sent) appended to the store
    └─────────┬────────────┘
              ▼
    ┌──────────────────────┐
    │ 4. Remote backend    │  optional insert, failure noted on the result
    └─────────┬────────────┘
              ▼
    ┌──────────────────────┐
    │ 5. Fan-out           │  best effort per contact; with
    │                      │  MARK_DELIVERED_ON_DISPATCH, anyone reached
    │                      │  advances the alert sent → delivered
    └──────────────────────┘

The alert is committed at step 3. Nothing after that step removes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from safecircle.app.alerts.dispatch import Dispatcher, dispatch_alert, select_channels
from safecircle.app.alerts.models import DeliveryChannel, DispatchReport
from safecircle.app.alerts.timer import CountdownTimer
from safecircle.app.core.config import settings
from safecircle.app.core.errors import (
    InvalidInputError,
    LifecycleStateError,
    PersistenceError,
    RemoteDispatchError,
    SafeCircleError,
)
from safecircle.app.location.tracker import LocationTracker
from safecircle.app.remote.client import RemoteBackendClient
from safecircle.app.state.container import StateContainer
from safecircle.app.state.models import (
    LOCATION_UNAVAILABLE,
    SOS_MESSAGE,
    Alert,
    AlertStatus,
    AlertType,
    AppSettings,
)

logger = logging.getLogger(__name__)

SAFETY_CHECK_MAX_MINUTES = 999


class LifecycleState(str, Enum):
    IDLE   = "idle"
    ARMING = "arming"
    FIRING = "firing"


class FireOutcome(str, Enum):
    FIRED       = "fired"
    NO_CONTACTS = "no_contacts"


@dataclass
class FireResult:
    """What one pass through the fire path produced."""
    outcome: FireOutcome
    source: str
    alert: Optional[Alert] = None
    report: Optional[DispatchReport] = None
    remote_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "source": self.source,
            "alert": self.alert.to_dict() if self.alert else None,
            "dispatch": self.report.to_dict() if self.report else None,
            "remote_error": self.remote_error,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_sos_alert(alert_id: str, location: Optional[str], now: datetime) -> Alert:
    return Alert(
        id=alert_id,
        type=AlertType.SOS,
        message=SOS_MESSAGE,
        location=location or LOCATION_UNAVAILABLE,
        timestamp=now.isoformat(),
        status=AlertStatus.SENT,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Fire path (shared by every entry point)
# ═══════════════════════════════════════════════════════════════════════════

class EmergencyAlertService:
    """Builds, records and fans out one emergency alert."""

    def __init__(
        self,
        container: StateContainer,
        tracker: Optional[LocationTracker] = None,
        *,
        remote: Optional[RemoteBackendClient] = None,
        dispatchers: Optional[Dict[DeliveryChannel, Dispatcher]] = None,
        retry_scale: Optional[float] = None,
        mark_delivered: Optional[bool] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.container = container
        self.tracker = tracker
        self.remote = remote
        self.dispatchers = dispatchers
        self.retry_scale = retry_scale
        self.mark_delivered = (
            settings.MARK_DELIVERED_ON_DISPATCH if mark_delivered is None else mark_delivered
        )
        self._clock = clock

    async def _capture_location(self, app_settings: AppSettings) -> str:
        if self.tracker is None or not app_settings.location_tracking:
            return LOCATION_UNAVAILABLE
        sample = await self.tracker.current_or_none()
        if sample is None:
            return LOCATION_UNAVAILABLE
        return sample.formatted()

    async def _push_remote(self, alert: Alert) -> Optional[str]:
        if self.remote is None:
            return None
        user = self.container.user.current
        try:
            await self.remote.insert_emergency_alert(user.id if user else None, alert)
        except RemoteDispatchError as exc:
            logger.warning(
                "Backend insert failed, alert kept locally: %s", exc.message,
                extra={"alert_id": alert.id},
            )
            return exc.message
        return None

    async def fire(self, source: str = "countdown") -> FireResult:
        """
        Run the fire path once.

        Returns a NO_CONTACTS result without recording anything when the
        contact store is empty. A PersistenceError while recording the
        alert propagates: nothing was committed.
        """
        contacts = self.container.contacts.all()
        if not contacts:
            logger.warning("SOS (%s) aborted: no emergency contacts", source)
            return FireResult(outcome=FireOutcome.NO_CONTACTS, source=source)

        app_settings = self.container.settings.current
        location = await self._capture_location(app_settings)
        now = self._clock()
        alert = await self.container.alerts.create(
            lambda alert_id: build_sos_alert(alert_id, location, now), now,
        )
        logger.warning(
            "SOS fired (%s), notifying %d contacts", source, len(contacts),
            extra={"alert_id": alert.id, "recipient_count": len(contacts)},
        )

        remote_error = await self._push_remote(alert)

        report = await dispatch_alert(
            alert,
            contacts,
            channels=select_channels(app_settings),
            dispatchers=self.dispatchers,
            retry_scale=self.retry_scale,
        )

        if self.mark_delivered and report.contacts_reached > 0:
            try:
                alert = await self.container.alerts.update_status(
                    alert.id, AlertStatus.DELIVERED,
                )
            except PersistenceError as exc:
                logger.error("Could not mark alert delivered: %s", exc.message)

        return FireResult(
            outcome=FireOutcome.FIRED,
            source=source,
            alert=alert,
            report=report,
            remote_error=remote_error,
        )


# ═══════════════════════════════════════════════════════════════════════════
# SOS controller
# ═══════════════════════════════════════════════════════════════════════════

class SOSController:
    """Manual SOS: countdown-then-fire, plus the hold-to-activate shortcut."""

    def __init__(
        self,
        service: EmergencyAlertService,
        *,
        countdown_seconds: Optional[int] = None,
        tick_interval: Optional[float] = None,
    ):
        self.service = service
        self.countdown_seconds = countdown_seconds or settings.SOS_COUNTDOWN_SECONDS
        self.tick_interval = tick_interval
        self.state = LifecycleState.IDLE
        self.countdown = self.countdown_seconds
        self.timer: Optional[CountdownTimer] = None
        self.last_result: Optional[FireResult] = None
        self.last_error: Optional[str] = None

    def arm(self) -> Optional[CountdownTimer]:
        """
        Start a fresh countdown. Pressing arm again while the countdown runs
        cancels it and returns None.
        """
        if self.state == LifecycleState.ARMING:
            self.cancel()
            return None
        if self.state != LifecycleState.IDLE:
            raise LifecycleStateError(
                f"Cannot arm SOS while {self.state.value}", state=self.state.value,
            )
        timer: Optional[CountdownTimer] = None

        async def on_expire() -> None:
            await self._countdown_expired(timer)

        timer = CountdownTimer(
            self.countdown_seconds,
            on_expire,
            on_tick=self._on_tick,
            tick_interval=self.tick_interval,
            name="sos-countdown",
        )
        self.timer = timer
        self.countdown = self.countdown_seconds
        self.state = LifecycleState.ARMING
        timer.start()
        logger.info(
            "SOS armed, sending in %ds", self.countdown_seconds,
            extra={"countdown": self.countdown_seconds},
        )
        return timer

    def cancel(self) -> bool:
        """Abort the countdown. Returns False when there was nothing to cancel."""
        if self.state != LifecycleState.ARMING:
            return False
        if self.timer is not None:
            self.timer.cancel()
        self._reset()
        logger.info("SOS cancelled")
        return True

    def toggle(self) -> LifecycleState:
        self.arm()
        return self.state

    async def trigger_now(self) -> FireResult:
        """Hold-to-activate: fire immediately through the same path."""
        if self.state == LifecycleState.FIRING:
            raise LifecycleStateError("SOS is already firing", state=self.state.value)
        if self.state == LifecycleState.ARMING:
            self.timer.cancel()
        return await self._fire("hold")

    def _on_tick(self, remaining: int) -> None:
        self.countdown = remaining

    async def _countdown_expired(self, timer: Optional[CountdownTimer]) -> None:
        if timer is not self.timer or self.state != LifecycleState.ARMING:
            return
        try:
            await self._fire("countdown")
        except SafeCircleError as exc:
            # Runs inside the timer task; there is no caller to raise to
            logger.error("SOS fire failed: %s", exc.message)

    async def _fire(self, source: str) -> FireResult:
        self.state = LifecycleState.FIRING
        self.last_error = None
        try:
            result = await self.service.fire(source)
        except SafeCircleError as exc:
            self.last_error = exc.message
            raise
        finally:
            self._reset()
        self.last_result = result
        return result

    def _reset(self) -> None:
        self.state = LifecycleState.IDLE
        self.timer = None
        self.countdown = self.countdown_seconds

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "countdown": self.countdown,
            "countdown_seconds": self.countdown_seconds,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_error": self.last_error,
        }

    async def close(self) -> None:
        self.cancel()


# ═══════════════════════════════════════════════════════════════════════════
# Safety check
# ═══════════════════════════════════════════════════════════════════════════

def format_time(seconds: int) -> str:
    """Render a second count as M:SS."""
    mins, secs = divmod(max(seconds, 0), 60)
    return f"{mins}:{secs:02d}"


class SafetyCheckTimer:
    """
    Unattended check-in timer. If the user does not cancel within the chosen
    number of minutes, an SOS goes out with no further confirmation.
    """

    def __init__(
        self,
        service: EmergencyAlertService,
        *,
        tick_interval: Optional[float] = None,
    ):
        self.service = service
        self.tick_interval = tick_interval
        self.timer: Optional[CountdownTimer] = None
        self.duration_minutes: Optional[int] = None
        self.last_result: Optional[FireResult] = None
        self.last_error: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.timer is not None and self.timer.active

    @property
    def remaining_seconds(self) -> int:
        return self.timer.remaining if self.active else 0

    def start(self, minutes: int) -> CountdownTimer:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            raise InvalidInputError("Please enter a valid number of minutes.", field="minutes")
        if minutes > SAFETY_CHECK_MAX_MINUTES:
            raise InvalidInputError(
                f"Safety check is limited to {SAFETY_CHECK_MAX_MINUTES} minutes",
                field="minutes",
            )
        if self.active:
            raise LifecycleStateError("Safety check already running", state="active")

        timer: Optional[CountdownTimer] = None

        async def on_expire() -> None:
            await self._expired(timer)

        timer = CountdownTimer(
            minutes * 60,
            on_expire,
            tick_interval=self.tick_interval,
            name="safety-check",
        )
        self.timer = timer
        self.duration_minutes = minutes
        timer.start()
        logger.info("Safety check started: %d min", minutes, extra={"countdown": minutes * 60})
        return timer

    def cancel(self) -> bool:
        if not self.active:
            return False
        self.timer.cancel()
        self.timer = None
        logger.info("Safety check cancelled")
        return True

    async def _expired(self, timer: Optional[CountdownTimer]) -> None:
        if timer is not self.timer:
            return
        self.timer = None
        logger.warning("Safety check expired, sending SOS")
        self.last_error = None
        try:
            self.last_result = await self.service.fire("safety_check")
        except SafeCircleError as exc:
            self.last_error = exc.message
            logger.error("Safety-check fire failed: %s", exc.message)

    def status(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "duration_minutes": self.duration_minutes if self.active else None,
            "remaining_seconds": self.remaining_seconds,
            "remaining": format_time(self.remaining_seconds),
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_error": self.last_error,
        }

    async def close(self) -> None:
        self.cancel()
