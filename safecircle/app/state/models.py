"""
models.py — Records held by the local state container.

Defines:
    • AlertType / AlertStatus — alert enums
    • Contact        — an emergency contact
    • Alert          — one entry of the alert history
    • AppSettings    — user toggles
    • User           — the signed-in profile

Records serialise with camelCase keys (``isEmergencyContact``,
``pushNotifications``) because that is the shape already sitting in
users' persisted state files.

═══════════════════════════════════════════════════════════════════════════
ALERT STATUS ORDERING
═══════════════════════════════════════════════════════════════════════════

    sent (0)  →  delivered (1)  →  resolved (2)

Status only moves to a higher rank. ``delivered`` may be skipped.
``resolved`` is terminal.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional

from safecircle.app.core.errors import InvalidInputError


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertType(str, Enum):
    SOS   = "SOS"
    ALERT = "Alert"


class AlertStatus(str, Enum):
    SENT      = "sent"
    DELIVERED = "delivered"
    RESOLVED  = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_move_to(self, target: "AlertStatus") -> bool:
        """True for forward moves and same-status no-ops."""
        return target.rank >= self.rank


_STATUS_RANK = {
    AlertStatus.SENT: 0,
    AlertStatus.DELIVERED: 1,
    AlertStatus.RESOLVED: 2,
}

# Placeholder stored on an alert when no fix was available
LOCATION_UNAVAILABLE = "Location not available"

SOS_MESSAGE = "EMERGENCY: I need help immediately!"


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════

PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(phone: str) -> str:
    """Strip whitespace and validate. Raises InvalidInputError."""
    cleaned = re.sub(r"\s", "", phone or "")
    if not cleaned:
        raise InvalidInputError("Name and phone number are required", field="phone")
    if not PHONE_PATTERN.match(cleaned):
        raise InvalidInputError("Please enter a valid phone number", field="phone")
    return cleaned


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise InvalidInputError("Please enter a valid email address", field="email")
    return email


# ═══════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Contact:
    """An emergency contact. Unique by id."""
    id: str
    name: str
    phone: str
    relationship: str = ""
    is_emergency_contact: bool = True

    @classmethod
    def create(
        cls,
        id: str,
        name: str,
        phone: str,
        relationship: str = "",
        is_emergency_contact: bool = True,
    ) -> "Contact":
        """Validated constructor used by every user-facing add/update."""
        if not (name or "").strip():
            raise InvalidInputError("Name and phone number are required", field="name")
        return cls(
            id=id,
            name=name.strip(),
            phone=normalize_phone(phone),
            relationship=(relationship or "").strip(),
            is_emergency_contact=is_emergency_contact,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "relationship": self.relationship,
            "isEmergencyContact": self.is_emergency_contact,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            phone=data.get("phone", ""),
            relationship=data.get("relationship", ""),
            is_emergency_contact=bool(data.get("isEmergencyContact", True)),
        )


@dataclass
class Alert:
    """One alert in the history."""
    id: str
    type: AlertType
    message: str
    location: Optional[str]
    timestamp: str
    status: AlertStatus = AlertStatus.SENT

    @property
    def has_location(self) -> bool:
        return bool(self.location) and self.location != LOCATION_UNAVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "location": self.location,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(
            id=str(data["id"]),
            type=AlertType(data.get("type", AlertType.ALERT.value)),
            message=data.get("message", ""),
            location=data.get("location"),
            timestamp=data["timestamp"],
            status=AlertStatus(data.get("status", AlertStatus.SENT.value)),
        )


_SETTINGS_KEYS = {
    "pushNotifications": "push_notifications",
    "soundAlerts": "sound_alerts",
    "vibration": "vibration",
    "locationTracking": "location_tracking",
    "autoSOS": "auto_sos",
    "language": "language",
    "theme": "theme",
}

THEMES = ("light", "dark")


@dataclass
class AppSettings:
    """Flat toggles. Each flag is independent."""
    push_notifications: bool = True
    sound_alerts: bool = True
    vibration: bool = True
    location_tracking: bool = True
    auto_sos: bool = False
    language: str = "en"
    theme: str = "light"

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        return {key: values[attr] for key, attr in _SETTINGS_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        known = {f.name for f in fields(cls)}
        kwargs = {
            attr: data[key]
            for key, attr in _SETTINGS_KEYS.items()
            if key in data and attr in known
        }
        return cls(**kwargs)

    def merged(self, patch: Dict[str, Any]) -> "AppSettings":
        """
        Return a copy with ``patch`` (camelCase keys) applied.

        Raises InvalidInputError for unknown keys or wrongly typed values.
        """
        current = self.to_dict()
        for key, value in patch.items():
            if key not in _SETTINGS_KEYS:
                raise InvalidInputError(f"Unknown setting '{key}'", field=key)
            expected = type(current[key])
            if type(value) is not expected:
                raise InvalidInputError(
                    f"Setting '{key}' must be {expected.__name__}", field=key,
                )
            if key == "theme" and value not in THEMES:
                raise InvalidInputError(
                    f"Theme must be one of {list(THEMES)}", field=key,
                )
            current[key] = value
        return AppSettings.from_dict(current)


@dataclass
class User:
    """The signed-in profile."""
    name: str
    email: str
    phone: str = ""
    id: Optional[str] = None
    access_token: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
        )
