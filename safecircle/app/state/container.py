"""
container.py — The process-wide state container.

One StateContainer is built at startup and passed by reference to the
lifecycle controller, the tracker and the API layer. It groups the four
stores over one durable storage backend and owns rehydration.

Persist whitelist (what survives a restart):

    Store       Persisted
    ────────    ─────────────────────────────────────
    user        yes
    contacts    yes
    settings    yes
    alerts      only with PERSIST_ALERT_HISTORY=True
"""

from __future__ import annotations

import logging
from typing import List, Optional

from safecircle.app.core.config import settings
from safecircle.app.core.errors import PersistenceError
from safecircle.app.state.storage import KeyValueStorage, MemoryStorage
from safecircle.app.state.stores import AlertStore, ContactStore, SettingsStore, UserStore

logger = logging.getLogger(__name__)


class StateContainer:
    """Holds the stores and rehydrates them once per process."""

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        *,
        persist_alerts: Optional[bool] = None,
    ):
        if persist_alerts is None:
            persist_alerts = settings.PERSIST_ALERT_HISTORY
        self.storage = storage if storage is not None else MemoryStorage()
        self.user = UserStore(self.storage)
        self.contacts = ContactStore(self.storage)
        self.settings = SettingsStore(self.storage)
        self.alerts = AlertStore(self.storage, persisted=persist_alerts)
        self._rehydrated = False

    @property
    def slices(self):
        return (self.user, self.contacts, self.settings, self.alerts)

    @property
    def persisted_keys(self) -> List[str]:
        return [s.key for s in self.slices if s.persisted]

    @property
    def rehydrated(self) -> bool:
        return self._rehydrated

    async def rehydrate(self) -> None:
        """
        Load persisted slices from storage. Runs at most once.

        A slice that cannot be read keeps its defaults and the failure is
        logged; the application still starts.
        """
        if self._rehydrated:
            return
        for store in self.slices:
            try:
                await store.rehydrate()
            except PersistenceError as exc:
                logger.error("Rehydrate '%s' failed: %s", store.key, exc.message)
        self._rehydrated = True
        logger.info(
            "State rehydrated from %s: %d contacts, %d alerts, user=%s",
            self.storage.name, len(self.contacts), len(self.alerts),
            "yes" if self.user.current else "no",
        )

    async def close(self) -> None:
        await self.storage.close()
