"""
dispatch.py — Best-effort fan-out of an alert to every emergency contact.

This is called *after* the alert has been committed to the alert store.
Nothing in here can roll that record back: the worst outcome of a fan-out
is a report in which no contact was reached.

═══════════════════════════════════════════════════════════════════════════
FAN-OUT FLOW
═══════════════════════════════════════════════════════════════════════════

    for each contact (independently):
        for each selected channel:
            send → retry with backoff while FAILED
        record delivered / failed channels

    A contact whose channels all fail — or whose dispatcher raises — is
    recorded as unreached and the loop moves on to the next contact.

═══════════════════════════════════════════════════════════════════════════
RETRY STRATEGY
═══════════════════════════════════════════════════════════════════════════

    Channel   Max Retries   Backoff Base   Backoff Type
    ───────   ───────────   ────────────   ────────────
    SMS       2             2.0s           Exponential
    Push      1             1.0s           Linear

    exponential: delay = base × 2^(attempt - 1)
    linear:      delay = base × attempt

All delays are multiplied by DISPATCH_RETRY_SCALE (0 in tests).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from safecircle.app.alerts.channels import push, sms_gateway
from safecircle.app.alerts.models import (
    ContactDeliveryRecord,
    DeliveryAttempt,
    DeliveryChannel,
    DeliveryStatus,
    DispatchReport,
    NotificationIntent,
)
from safecircle.app.core.config import settings
from safecircle.app.state.models import Alert, AppSettings, Contact

logger = logging.getLogger(__name__)

Dispatcher = Callable[[NotificationIntent], Awaitable[DeliveryAttempt]]


@dataclass(frozen=True)
class RetryConfig:
    """Per-channel retry parameters."""
    max_retries: int
    backoff_base_seconds: float
    backoff_type: str  # "exponential" or "linear"


RETRY_CONFIGS: Dict[DeliveryChannel, RetryConfig] = {
    DeliveryChannel.SMS:  RetryConfig(2, 2.0, "exponential"),
    DeliveryChannel.PUSH: RetryConfig(1, 1.0, "linear"),
}

DEFAULT_DISPATCHERS: Dict[DeliveryChannel, Dispatcher] = {
    DeliveryChannel.SMS:  sms_gateway.send,
    DeliveryChannel.PUSH: push.send,
}


def compute_backoff(config: RetryConfig, attempt: int, scale: float = 1.0) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based)."""
    if config.backoff_type == "exponential":
        delay = config.backoff_base_seconds * (2 ** (attempt - 1))
    else:
        delay = config.backoff_base_seconds * attempt
    return delay * scale


def select_channels(app_settings: AppSettings) -> List[DeliveryChannel]:
    """SMS always; push only while push notifications are enabled."""
    channels = [DeliveryChannel.SMS]
    if app_settings.push_notifications:
        channels.append(DeliveryChannel.PUSH)
    return channels


async def _deliver_via_channel(
    dispatcher: Dispatcher,
    channel: DeliveryChannel,
    intent: NotificationIntent,
    retry_scale: float,
) -> DeliveryAttempt:
    config = RETRY_CONFIGS.get(channel, RetryConfig(0, 1.0, "exponential"))
    attempt: Optional[DeliveryAttempt] = None

    for attempt_num in range(1, config.max_retries + 2):
        attempt = await dispatcher(intent)
        attempt.retry_count = attempt_num - 1
        if attempt.status in (DeliveryStatus.DELIVERED, DeliveryStatus.SKIPPED):
            return attempt

        if attempt_num <= config.max_retries:
            delay = compute_backoff(config, attempt_num, retry_scale)
            logger.info(
                "Retry %d/%d for %s via %s in %.1fs",
                attempt_num, config.max_retries, intent.contact.id, channel.value, delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)

    attempt.status = DeliveryStatus.FAILED
    return attempt


async def _deliver_to_contact(
    intent: NotificationIntent,
    channels: Sequence[DeliveryChannel],
    dispatchers: Dict[DeliveryChannel, Dispatcher],
    retry_scale: float,
) -> ContactDeliveryRecord:
    record = ContactDeliveryRecord(contact_id=intent.contact.id, name=intent.contact.name)

    for channel in channels:
        dispatcher = dispatchers.get(channel)
        if dispatcher is None:
            continue
        record.channels_attempted.append(channel)
        attempt = await _deliver_via_channel(dispatcher, channel, intent, retry_scale)
        record.attempts.append(attempt)

        if attempt.status == DeliveryStatus.DELIVERED:
            record.channels_delivered.append(channel)
        elif attempt.status == DeliveryStatus.FAILED:
            record.channels_failed.append(channel)

    return record


async def dispatch_alert(
    alert: Alert,
    contacts: Sequence[Contact],
    *,
    channels: Sequence[DeliveryChannel] = (DeliveryChannel.SMS,),
    dispatchers: Optional[Dict[DeliveryChannel, Dispatcher]] = None,
    retry_scale: Optional[float] = None,
) -> DispatchReport:
    """Notify every contact about ``alert``. Never raises for delivery problems."""
    dispatchers = dispatchers or DEFAULT_DISPATCHERS
    if retry_scale is None:
        retry_scale = settings.DISPATCH_RETRY_SCALE

    report = DispatchReport(alert_id=alert.id, started_at=datetime.now(timezone.utc))
    logger.info(
        "Dispatching alert %s to %d contacts via %s",
        alert.id, len(contacts), [c.value for c in channels],
        extra={"alert_id": alert.id, "recipient_count": len(contacts)},
    )

    for contact in contacts:
        intent = NotificationIntent(
            alert_id=alert.id,
            contact=contact,
            message=alert.message,
            location=alert.location,
        )
        try:
            record = await _deliver_to_contact(intent, channels, dispatchers, retry_scale)
        except Exception as exc:
            logger.exception(
                "Notification to %s failed", contact.id,
                extra={"alert_id": alert.id, "contact_id": contact.id},
            )
            record = ContactDeliveryRecord(
                contact_id=contact.id, name=contact.name, error=str(exc),
            )
        report.records.append(record)

    report.completed_at = datetime.now(timezone.utc)
    logger.info(
        "Alert %s fan-out complete: %d/%d reached, %d attempts",
        alert.id, report.contacts_reached, report.total_contacts, report.total_attempts,
        extra={"alert_id": alert.id},
    )
    return report
