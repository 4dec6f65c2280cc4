"""
models.py — Data structures for emergency notification fan-out.

Defines:
    • DeliveryChannel     — how a contact is reached
    • DeliveryStatus      — per-contact, per-channel delivery state
    • NotificationIntent  — one "tell this contact" instruction
    • DeliveryAttempt     — a single send attempt record
    • ContactDeliveryRecord — everything tried for one contact
    • DispatchReport      — summary of one alert's fan-out

═══════════════════════════════════════════════════════════════════════════
CHANNELS
═══════════════════════════════════════════════════════════════════════════

    Channel   When used
    ───────   ─────────────────────────────────────────────
    SMS       always (every contact has a phone number)
    PUSH      additionally, while pushNotifications is on

Each contact is independent: a failure for one contact, or on one channel,
never blocks the others.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from safecircle.app.state.models import Contact


class DeliveryChannel(str, Enum):
    SMS  = "sms"
    PUSH = "push"


class DeliveryStatus(str, Enum):
    """Delivery state per contact per channel."""
    PENDING   = "pending"     # queued, not yet sent
    SENDING   = "sending"     # send in progress
    DELIVERED = "delivered"   # provider accepted
    FAILED    = "failed"      # all retries exhausted
    SKIPPED   = "skipped"     # channel not applicable


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NotificationIntent:
    """Message + location addressed to one contact."""
    alert_id: str
    contact: Contact
    message: str
    location: Optional[str]

    @property
    def body(self) -> str:
        if self.location:
            return f"{self.message} Location: {self.location}"
        return self.message


@dataclass
class DeliveryAttempt:
    """Record of a single delivery attempt to one contact via one channel."""
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    channel: DeliveryChannel = DeliveryChannel.SMS
    contact_id: str = ""
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempted_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "channel": self.channel.value,
            "contact_id": self.contact_id,
            "status": self.status.value,
            "attempted_at": self.attempted_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "retry_count": self.retry_count,
            "error_message": self.error_message,
        }


@dataclass
class ContactDeliveryRecord:
    """Aggregated delivery status for one contact across channels."""
    contact_id: str
    name: str
    channels_attempted: List[DeliveryChannel] = field(default_factory=list)
    channels_delivered: List[DeliveryChannel] = field(default_factory=list)
    channels_failed: List[DeliveryChannel] = field(default_factory=list)
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_reached(self) -> bool:
        return len(self.channels_delivered) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contact_id": self.contact_id,
            "name": self.name,
            "is_reached": self.is_reached,
            "channels_attempted": [c.value for c in self.channels_attempted],
            "channels_delivered": [c.value for c in self.channels_delivered],
            "channels_failed": [c.value for c in self.channels_failed],
            "attempt_count": len(self.attempts),
            "error": self.error,
        }


@dataclass
class DispatchReport:
    """Result of fanning one alert out to every contact."""
    alert_id: str
    records: List[ContactDeliveryRecord] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_contacts(self) -> int:
        return len(self.records)

    @property
    def contacts_reached(self) -> int:
        return sum(1 for r in self.records if r.is_reached)

    @property
    def contacts_failed(self) -> int:
        return self.total_contacts - self.contacts_reached

    @property
    def total_attempts(self) -> int:
        return sum(len(r.attempts) for r in self.records)

    @property
    def reach_rate(self) -> float:
        if self.total_contacts == 0:
            return 0.0
        return self.contacts_reached / self.total_contacts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "total_contacts": self.total_contacts,
            "contacts_reached": self.contacts_reached,
            "contacts_failed": self.contacts_failed,
            "reach_rate": f"{self.reach_rate:.1%}",
            "total_attempts": self.total_attempts,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "records": [r.to_dict() for r in self.records],
        }
