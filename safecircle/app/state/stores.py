"""
stores.py — Contact, Alert, Settings and User stores.

Every mutation is a named async operation on one store. For a persisted
store the new value is written to durable storage *first* and only then
swapped into memory, so a PersistenceError leaves the store exactly as it
was (the mutation is not committed). Validation runs before either step.

Stores are mutated only from the event loop thread. Mutations on every
store sharing one storage backend are serialised behind that backend's
commit lock: each new value is computed from the current one *inside* the
lock, so two overlapping requests can never build on the same stale value
and drop each other's write.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from safecircle.app.core.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from safecircle.app.state.models import (
    Alert,
    AlertStatus,
    AppSettings,
    Contact,
    User,
    normalize_phone,
    validate_email,
)
from safecircle.app.state.storage import KeyValueStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Returned by a change function that leaves the slice as it is (no write)
UNCHANGED: Any = object()

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def time_token(now: Optional[datetime] = None) -> str:
    """Milliseconds since the epoch as a string, the id scheme for new records."""
    if now is None:
        return str(time.time_ns() // 1_000_000)
    return str(int(now.timestamp() * 1000))


def unique_token(taken: Set[str], now: Optional[datetime] = None) -> str:
    """Time-derived id, bumped by 1 ms until it is not in ``taken``."""
    candidate = int(time_token(now))
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 to an aware datetime. Accepts a trailing ``Z``; naive means UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class _Slice(Generic[T]):
    """One named piece of state with write-then-swap commits."""

    key: str = ""

    def __init__(self, storage: KeyValueStorage, *, persisted: bool = True):
        self._storage = storage
        self.persisted = persisted
        self._value: T = self._initial()

    def _initial(self) -> T:
        raise NotImplementedError

    def _serialize(self, value: T) -> Any:
        raise NotImplementedError

    def _deserialize(self, raw: Any) -> T:
        raise NotImplementedError

    async def _mutate(self, change: Callable[[T], Tuple[T, R]]) -> R:
        """
        Apply ``change(current) -> (new_value, result)`` under the commit lock.

        ``change`` may raise to reject the mutation, or return UNCHANGED as
        the new value to skip the write.
        """
        async with self._storage.commit_lock:
            value, result = change(self._value)
            if value is UNCHANGED:
                return result
            if self.persisted:
                await self._storage.set(self.key, self._serialize(value))
            self._value = value
            return result

    async def rehydrate(self) -> None:
        if not self.persisted:
            return
        raw = await self._storage.get(self.key)
        if raw is not None:
            self._value = self._deserialize(raw)


# ═══════════════════════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════════════════════

class ContactStore(_Slice[List[Contact]]):
    key = "contacts"

    def _initial(self) -> List[Contact]:
        return []

    def _serialize(self, value: List[Contact]) -> Any:
        return [c.to_dict() for c in value]

    def _deserialize(self, raw: Any) -> List[Contact]:
        contacts = []
        for item in raw:
            try:
                contacts.append(Contact.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning("Dropping malformed contact record: %s", e)
        return contacts

    def all(self) -> List[Contact]:
        return list(self._value)

    def get(self, contact_id: str) -> Optional[Contact]:
        return next((c for c in self._value if c.id == contact_id), None)

    def __len__(self) -> int:
        return len(self._value)

    @property
    def is_empty(self) -> bool:
        return not self._value

    async def add(
        self,
        name: str,
        phone: str,
        relationship: str = "",
        *,
        is_emergency_contact: bool = True,
        contact_id: Optional[str] = None,
    ) -> Contact:
        # Validated up front; the id is allocated under the commit lock
        draft = Contact.create(contact_id or "", name, phone, relationship, is_emergency_contact)

        def change(current: List[Contact]):
            new_id = contact_id or unique_token({c.id for c in current})
            if any(c.id == new_id for c in current):
                raise InvalidInputError(f"Contact '{new_id}' already exists", field="id")
            contact = replace(draft, id=new_id)
            return current + [contact], contact

        contact = await self._mutate(change)
        logger.info("Contact added", extra={"contact_id": contact.id})
        return contact

    async def update(
        self,
        contact_id: str,
        name: str,
        phone: str,
        relationship: str = "",
        *,
        is_emergency_contact: bool = True,
    ) -> Contact:
        contact = Contact.create(contact_id, name, phone, relationship, is_emergency_contact)

        def change(current: List[Contact]):
            if not any(c.id == contact_id for c in current):
                raise NotFoundError("Contact", id=contact_id)
            return [contact if c.id == contact_id else c for c in current], contact

        await self._mutate(change)
        logger.info("Contact updated", extra={"contact_id": contact_id})
        return contact

    async def delete(self, contact_id: str) -> bool:
        """Remove a contact. Returns False if it did not exist."""
        def change(current: List[Contact]):
            if not any(c.id == contact_id for c in current):
                return UNCHANGED, False
            return [c for c in current if c.id != contact_id], True

        deleted = await self._mutate(change)
        if deleted:
            logger.info("Contact deleted", extra={"contact_id": contact_id})
        return deleted


# ═══════════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════════

class AlertStore(_Slice[List[Alert]]):
    key = "alerts"

    def _initial(self) -> List[Alert]:
        return []

    def _serialize(self, value: List[Alert]) -> Any:
        return [a.to_dict() for a in value]

    def _deserialize(self, raw: Any) -> List[Alert]:
        alerts = []
        for item in raw:
            try:
                alerts.append(Alert.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping malformed alert record: %s", e)
        return alerts

    def all(self, *, newest_first: bool = False) -> List[Alert]:
        if newest_first:
            return sorted(
                self._value, key=lambda a: parse_timestamp(a.timestamp), reverse=True,
            )
        return list(self._value)

    def get(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self._value if a.id == alert_id), None)

    def __len__(self) -> int:
        return len(self._value)

    def _log_recorded(self, alert: Alert) -> None:
        logger.info(
            "Alert recorded [%s] %s", alert.type.value, alert.status.value,
            extra={"alert_id": alert.id, "status": alert.status.value},
        )

    async def append(self, alert: Alert) -> Alert:
        def change(current: List[Alert]):
            if any(a.id == alert.id for a in current):
                raise InvalidInputError(f"Alert '{alert.id}' already exists", field="id")
            return current + [alert], alert

        await self._mutate(change)
        self._log_recorded(alert)
        return alert

    async def create(
        self,
        build: Callable[[str], Alert],
        now: Optional[datetime] = None,
    ) -> Alert:
        """Allocate a unique time-derived id and append ``build(id)`` in one commit."""
        def change(current: List[Alert]):
            alert = build(unique_token({a.id for a in current}, now))
            return current + [alert], alert

        alert = await self._mutate(change)
        self._log_recorded(alert)
        return alert

    async def update_status(self, alert_id: str, status: AlertStatus) -> Alert:
        """
        Move an alert forward along sent → delivered → resolved.

        Raises NotFoundError for an unknown id and InvalidTransitionError
        for a backward move (anything out of ``resolved`` included). A
        same-status update is accepted and changes nothing.
        """
        def change(current: List[Alert]):
            alert = next((a for a in current if a.id == alert_id), None)
            if alert is None:
                raise NotFoundError("Alert", id=alert_id)
            if not alert.status.can_move_to(status):
                raise InvalidTransitionError(alert_id, alert.status.value, status.value)
            if alert.status == status:
                return UNCHANGED, alert
            updated = Alert(
                id=alert.id,
                type=alert.type,
                message=alert.message,
                location=alert.location,
                timestamp=alert.timestamp,
                status=status,
            )
            return [updated if a.id == alert_id else a for a in current], updated

        result = await self._mutate(change)
        logger.info(
            "Alert %s → %s", alert_id, result.status.value,
            extra={"alert_id": alert_id, "status": result.status.value},
        )
        return result

    async def delete(self, alert_id: str) -> bool:
        """Remove an alert unconditionally. Deleting a missing id is a no-op."""
        def change(current: List[Alert]):
            if not any(a.id == alert_id for a in current):
                return UNCHANGED, False
            return [a for a in current if a.id != alert_id], True

        deleted = await self._mutate(change)
        if deleted:
            logger.info("Alert deleted", extra={"alert_id": alert_id})
        return deleted


# ═══════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════

class SettingsStore(_Slice[AppSettings]):
    key = "settings"

    def _initial(self) -> AppSettings:
        return AppSettings()

    def _serialize(self, value: AppSettings) -> Any:
        return value.to_dict()

    def _deserialize(self, raw: Any) -> AppSettings:
        return AppSettings.from_dict(raw)

    @property
    def current(self) -> AppSettings:
        return self._value

    async def update(self, patch: Dict[str, Any]) -> AppSettings:
        def change(current: AppSettings):
            updated = current.merged(patch)
            return updated, updated

        updated = await self._mutate(change)
        logger.info("Settings updated: %s", sorted(patch))
        return updated

    async def reset(self) -> AppSettings:
        defaults = AppSettings()
        await self._mutate(lambda current: (defaults, defaults))
        logger.info("Settings reset to defaults")
        return defaults


# ═══════════════════════════════════════════════════════════════════════════
# User
# ═══════════════════════════════════════════════════════════════════════════

class UserStore(_Slice[Optional[User]]):
    key = "user"

    def _initial(self) -> Optional[User]:
        return None

    def _serialize(self, value: Optional[User]) -> Any:
        return value.to_dict() if value is not None else None

    def _deserialize(self, raw: Any) -> Optional[User]:
        return User.from_dict(raw) if raw else None

    @property
    def current(self) -> Optional[User]:
        return self._value

    async def set_user(self, user: User) -> User:
        return await self._mutate(lambda current: (user, user))

    async def clear(self) -> None:
        await self._mutate(lambda current: (None, None))

    async def update_profile(
        self,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        def change(user: Optional[User]):
            if user is None:
                raise NotFoundError("User")
            updated = User(
                id=user.id,
                name=name.strip() if name is not None else user.name,
                email=validate_email(email) if email is not None else user.email,
                phone=normalize_phone(phone) if phone is not None else user.phone,
                access_token=user.access_token,
            )
            if not updated.name:
                raise InvalidInputError("Name is required", field="name")
            return updated, updated

        return await self._mutate(change)
