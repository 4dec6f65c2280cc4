"""
push.py — Push notification to an emergency contact's device.

Only attempted while the user's ``pushNotifications`` setting is on. The
contact is addressed by phone number; the gateway resolves it to the
device token of the contact's own app install, if there is one. A contact
without the app yields a SKIPPED attempt from the gateway, not a failure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from safecircle.app.alerts.models import (
    DeliveryAttempt,
    DeliveryChannel,
    DeliveryStatus,
    NotificationIntent,
)
from safecircle.app.core.config import settings

logger = logging.getLogger(__name__)

PUSH_TITLE = "SOS Alert"


async def send(
    intent: NotificationIntent,
    *,
    provider: Optional[str] = None,
    gateway_url: Optional[str] = None,
    timeout_seconds: float = 10.0,
) -> DeliveryAttempt:
    provider = provider or settings.NOTIFY_PROVIDER
    gateway_url = gateway_url or settings.NOTIFY_GATEWAY_URL
    contact = intent.contact

    attempt = DeliveryAttempt(
        channel=DeliveryChannel.PUSH,
        contact_id=contact.id,
        status=DeliveryStatus.SENDING,
    )

    if provider == "simulation":
        logger.info(
            "[PUSH] Alert %s → %s: '%s'",
            intent.alert_id, contact.name, intent.body[:60],
            extra={"alert_id": intent.alert_id, "contact_id": contact.id, "channel": "push"},
        )
        attempt.status = DeliveryStatus.DELIVERED
        attempt.provider_response = {"mode": "simulated", "title": PUSH_TITLE}

    elif provider == "http" and gateway_url:
        try:
            async with httpx.AsyncClient(timeout=timeout_seconds) as client:
                response = await client.post(
                    gateway_url.rstrip("/") + "/push",
                    json={
                        "to_phone": contact.phone,
                        "title": PUSH_TITLE,
                        "body": intent.body,
                        "data": {"alert_id": intent.alert_id, "location": intent.location},
                    },
                )
                response.raise_for_status()
            payload = response.json() if response.content else {}
            if payload.get("registered") is False:
                attempt.status = DeliveryStatus.SKIPPED
                attempt.error_message = "Contact has no registered device"
            else:
                attempt.status = DeliveryStatus.DELIVERED
            attempt.provider_response = {"mode": "http", "status_code": response.status_code}
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("[PUSH] Failed for %s: %s", contact.id, exc)
            attempt.status = DeliveryStatus.FAILED
            attempt.error_message = str(exc) or type(exc).__name__

    else:
        attempt.status = DeliveryStatus.FAILED
        attempt.error_message = f"Push not available for provider '{provider}'"

    attempt.completed_at = datetime.now(timezone.utc)
    return attempt
