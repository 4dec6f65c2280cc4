"""
Durable key-value storage for the local state container.

Provides:
    • KeyValueStorage — async get / set / delete contract
    • MemoryStorage   — process-local dict (tests, ephemeral runs)
    • JSONFileStorage — one JSON document on disk, replaced atomically
    • RedisStorage    — async Redis client with a namespace prefix
    • build_storage() — pick a backend from settings

Values are JSON-serialisable Python objects. Every failure surfaces as
PersistenceError so callers can treat the write as not committed; unlike a
cache, a storage miss on write is never silently ignored.

Usage:
    storage = build_storage()
    await storage.set("contacts", [c.to_dict() for c in contacts])
    raw = await storage.get("contacts")
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from safecircle.app.core.config import settings
from safecircle.app.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """
    Async durable key-value contract.

    ``commit_lock`` is held by the state stores around read-compute-write
    so concurrent mutations never commit from a stale value.
    """

    def __init__(self):
        self.commit_lock = asyncio.Lock()

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        return None

    @property
    def name(self) -> str:
        return type(self).__name__


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage. Values are round-tripped through JSON like the real backends."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, str] = {
            k: json.dumps(v) for k, v in (initial or {}).items()
        }

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, str(e)) from e

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

class JSONFileStorage(KeyValueStorage):
    """
    Whole state in one JSON file.

    Writes go to ``<file>.tmp`` then ``os.replace`` onto the real path, so
    a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self._doc: Optional[Dict[str, Any]] = None
        # Guards the cached document across load-modify-write
        self._doc_lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def _write(self, doc: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(doc, fh, indent=2)
        os.replace(tmp, self.path)

    async def _load(self) -> Dict[str, Any]:
        if self._doc is None:
            try:
                self._doc = await asyncio.to_thread(self._read)
            except (OSError, ValueError) as e:
                raise PersistenceError(str(self.path), str(e)) from e
        return self._doc

    async def get(self, key: str) -> Optional[Any]:
        doc = await self._load()
        return doc.get(key)

    async def _commit(self, key: str, doc: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._write, doc)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(key, str(e)) from e
        self._doc = doc

    async def set(self, key: str, value: Any) -> None:
        async with self._doc_lock:
            doc = dict(await self._load())
            doc[key] = value
            await self._commit(key, doc)

    async def delete(self, key: str) -> None:
        async with self._doc_lock:
            doc = dict(await self._load())
            if doc.pop(key, None) is not None:
                await self._commit(key, doc)


class RedisStorage(KeyValueStorage):
    """Async Redis storage — one JSON string per key under a namespace prefix."""

    def __init__(self, url: str = settings.REDIS_URL, prefix: str = settings.STORAGE_KEY_PREFIX):
        super().__init__()
        self.url = url
        self.prefix = prefix
        self._client: Optional[aioredis.Redis] = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.url, encoding="utf-8", decode_responses=True,
            )
            logger.info("Redis storage connected: %s", self.url.split("@")[-1])
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._get_client().get(self._key(key))
        except RedisError as e:
            raise PersistenceError(key, str(e)) from e
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        try:
            await self._get_client().set(self._key(key), json.dumps(value, default=str))
        except RedisError as e:
            raise PersistenceError(key, str(e)) from e

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(self._key(key))
        except RedisError as e:
            raise PersistenceError(key, str(e)) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis storage closed")


def build_storage(backend: Optional[str] = None) -> KeyValueStorage:
    """Instantiate the configured storage backend."""
    backend = (backend or settings.STORAGE_BACKEND).lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "file":
        return JSONFileStorage(settings.STATE_FILE)
    if backend == "redis":
        return RedisStorage()
    raise ValueError(f"Unknown storage backend: {backend}")
