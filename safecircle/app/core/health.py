"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Local state storage (read round-trip)
    • Remote backend configuration
    • Location tracking (permission + last fix)
    • Notification provider configuration
    • Disk space for the state file

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from safecircle.app.core.config import settings
from safecircle.app.core.errors import PersistenceError

if TYPE_CHECKING:
    from safecircle.app.api.deps import AppContext

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_storage(ctx: "AppContext") -> ComponentHealth:
    """Read the settings key back from the configured storage backend."""
    comp = ComponentHealth(name="storage")
    start = time.monotonic()
    storage = ctx.container.storage
    try:
        await storage.get("settings")
        comp.status = HealthStatus.HEALTHY
        comp.message = f"{storage.name} readable"
        comp.details = {
            "backend": storage.name,
            "persisted_keys": ctx.container.persisted_keys,
            "rehydrated": ctx.container.rehydrated,
        }
    except PersistenceError as e:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = e.message
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_remote_backend(ctx: "AppContext") -> ComponentHealth:
    """Remote backend is optional; report whether it is wired up."""
    comp = ComponentHealth(name="remote_backend")
    start = time.monotonic()
    if ctx.remote is None:
        comp.message = "Not configured (local mode)"
    else:
        comp.message = "Configured"
        comp.details = {
            "url": ctx.remote.base_url,
            "signed_in": ctx.remote.access_token is not None,
        }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_location(ctx: "AppContext") -> ComponentHealth:
    """Location degrades alerts to the sentinel; never unhealthy."""
    comp = ComponentHealth(name="location")
    start = time.monotonic()
    tracker = ctx.tracker
    latest = tracker.latest
    comp.details = {
        "permission": ctx.provider.permission.value,
        "tracking": tracker.running,
        "last_fix": latest.to_dict() if latest else None,
    }
    if tracker.permission_denied:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Location permission denied"
    elif latest is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "No fix yet"
    else:
        comp.message = "Tracking"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_notifications() -> ComponentHealth:
    comp = ComponentHealth(name="notifications")
    start = time.monotonic()
    provider = settings.NOTIFY_PROVIDER
    comp.details = {"provider": provider}
    if provider == "simulation":
        comp.message = "Simulation mode (messages are logged only)"
    elif provider == "http" and settings.NOTIFY_GATEWAY_URL:
        comp.message = "HTTP gateway configured"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Provider '{provider}' cannot deliver"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_disk_space() -> ComponentHealth:
    """Check available disk space where the state file lives."""
    comp = ComponentHealth(name="disk_space")
    start = time.monotonic()
    target = Path(settings.STATE_FILE).resolve().parent
    while not target.exists() and target != target.parent:
        target = target.parent
    try:
        total, used, free = shutil.disk_usage(target)
        free_mb = free / (1024 ** 2)
        comp.details = {
            "path": str(target),
            "free_mb": round(free_mb, 1),
            "used_pct": round((used / total) * 100, 1),
        }
        if free_mb < 10:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = f"Low disk space: {free_mb:.1f} MB free"
        elif free_mb < 100:
            comp.status = HealthStatus.DEGRADED
            comp.message = f"Disk space warning: {free_mb:.1f} MB free"
        else:
            comp.message = f"{free_mb:.0f} MB free"
    except OSError as e:
        comp.status = HealthStatus.DEGRADED
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(ctx: "AppContext") -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_storage(ctx),
        check_remote_backend(ctx),
        check_location(ctx),
        check_notifications(),
        check_disk_space(),
    ]

    for coro in checks:
        comp = await coro
        report.components.append(comp)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
