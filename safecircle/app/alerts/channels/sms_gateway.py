"""
sms_gateway.py — SMS delivery to an emergency contact.

Delivery mechanism:
    • simulation: logs the message (development default)
    • http:       POST JSON to NOTIFY_GATEWAY_URL (SMS provider bridge)

═══════════════════════════════════════════════════════════════════════════
MESSAGE TEMPLATE
═══════════════════════════════════════════════════════════════════════════

    "[SOS] {message} Location: {lat,long} Ref:{alert ref}"

    Example:
        "[SOS] EMERGENCY: I need help immediately! Location: 6.7106,79.9074
         Ref:60600000"

A GSM 7-bit SMS segment holds 160 characters; longer bodies are truncated
with "..." so the location and reference always fit.
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

SMS_MAX_GSM7 = 160


def format_sms(intent: NotificationIntent) -> str:
    """Format the SMS body within the 160-char GSM limit."""
    prefix = "[SOS] "
    location = f" Location: {intent.location}" if intent.location else ""
    suffix = f"{location} Ref:{intent.alert_id[-8:]}"

    body = intent.message
    available = SMS_MAX_GSM7 - len(prefix) - len(suffix)
    if len(body) > available:
        body = body[: max(available - 3, 0)] + "..."
    return f"{prefix}{body}{suffix}"


async def send(
    intent: NotificationIntent,
    *,
    provider: Optional[str] = None,
    gateway_url: Optional[str] = None,
    timeout_seconds: float = 15.0,
) -> DeliveryAttempt:
    """Send one SMS. Never raises; the outcome is on the returned attempt."""
    provider = provider or settings.NOTIFY_PROVIDER
    gateway_url = gateway_url or settings.NOTIFY_GATEWAY_URL
    contact = intent.contact

    attempt = DeliveryAttempt(
        channel=DeliveryChannel.SMS,
        contact_id=contact.id,
        status=DeliveryStatus.SENDING,
    )

    if not contact.phone:
        attempt.status = DeliveryStatus.SKIPPED
        attempt.error_message = "No phone number on file"
        attempt.completed_at = datetime.now(timezone.utc)
        return attempt

    sms_body = format_sms(intent)

    if provider == "simulation":
        logger.info(
            "[SMS] Alert %s → %s (%s): %d chars",
            intent.alert_id, contact.phone, contact.name, len(sms_body),
            extra={"alert_id": intent.alert_id, "contact_id": contact.id, "channel": "sms"},
        )
        attempt.status = DeliveryStatus.DELIVERED
        attempt.provider_response = {
            "mode": "simulated",
            "message_length": len(sms_body),
            "phone": contact.phone,
        }

    elif provider == "http":
        if not gateway_url:
            attempt.status = DeliveryStatus.FAILED
            attempt.error_message = "NOTIFY_GATEWAY_URL is not configured"
        else:
            try:
                async with httpx.AsyncClient(timeout=timeout_seconds) as client:
                    response = await client.post(
                        gateway_url.rstrip("/") + "/sms",
                        json={"to": contact.phone, "body": sms_body, "ref": intent.alert_id},
                        headers=(
                            {"Authorization": f"Bearer {settings.NOTIFY_API_KEY}"}
                            if settings.NOTIFY_API_KEY else None
                        ),
                    )
                    response.raise_for_status()
                attempt.status = DeliveryStatus.DELIVERED
                attempt.provider_response = {"mode": "http", "status_code": response.status_code}
            except httpx.HTTPError as exc:
                logger.error("[SMS] Failed for %s: %s", contact.id, exc)
                attempt.status = DeliveryStatus.FAILED
                attempt.error_message = str(exc) or type(exc).__name__

    else:
        attempt.status = DeliveryStatus.FAILED
        attempt.error_message = f"Unknown notification provider: {provider}"

    attempt.completed_at = datetime.now(timezone.utc)
    return attempt
