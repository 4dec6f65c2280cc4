"""
Application context — the objects one running service owns.

Built once in the FastAPI lifespan and stored on ``app.state.ctx``.
Route handlers receive it through the ``get_context`` dependency, so the
lifecycle code never reaches for a module-level singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request

from safecircle.app.alerts.dispatch import Dispatcher
from safecircle.app.alerts.lifecycle import EmergencyAlertService, SafetyCheckTimer, SOSController
from safecircle.app.alerts.models import DeliveryChannel
from safecircle.app.core.config import settings
from safecircle.app.location.provider import (
    LocationProvider,
    LocationSample,
    PositionSource,
    SimulatedPositionSource,
)
from safecircle.app.location.tracker import LocationTracker
from safecircle.app.remote.client import RemoteBackendClient, build_remote_client
from safecircle.app.state.container import StateContainer
from safecircle.app.state.storage import KeyValueStorage, build_storage

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    container: StateContainer
    provider: LocationProvider
    tracker: LocationTracker
    service: EmergencyAlertService
    sos: SOSController
    safety_check: SafetyCheckTimer
    remote: Optional[RemoteBackendClient] = None

    async def startup(self) -> None:
        await self.container.rehydrate()
        await self.provider.request_permission()
        await self.tracker.start()

    async def shutdown(self) -> None:
        await self.sos.close()
        await self.safety_check.close()
        await self.tracker.stop()
        if self.remote is not None:
            await self.remote.close()
        await self.container.close()


def build_context(
    *,
    storage: Optional[KeyValueStorage] = None,
    source: Optional[PositionSource] = None,
    remote: Optional[RemoteBackendClient] = None,
    dispatchers: Optional[Dict[DeliveryChannel, Dispatcher]] = None,
    tick_interval: Optional[float] = None,
    persist_alerts: Optional[bool] = None,
) -> AppContext:
    """Wire every component. Arguments override the configured defaults."""
    container = StateContainer(
        storage if storage is not None else build_storage(),
        persist_alerts=persist_alerts,
    )
    if remote is None:
        remote = build_remote_client()
    provider = LocationProvider(
        source if source is not None
        else SimulatedPositionSource(poll_seconds=settings.LOCATION_POLL_SECONDS)
    )

    async def share_location(sample: LocationSample) -> None:
        user = container.user.current
        if remote is None or user is None or not user.id:
            return
        await remote.upsert_user_location(user.id, sample)

    tracker = LocationTracker(
        provider,
        sink=share_location,
        sharing_enabled=lambda: container.settings.current.location_tracking,
    )
    service = EmergencyAlertService(
        container, tracker, remote=remote, dispatchers=dispatchers,
    )
    return AppContext(
        container=container,
        provider=provider,
        tracker=tracker,
        service=service,
        sos=SOSController(service, tick_interval=tick_interval),
        safety_check=SafetyCheckTimer(service, tick_interval=tick_interval),
        remote=remote,
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx
