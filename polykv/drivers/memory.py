"""
In-memory driver — for testing and ephemeral caches.

Simple dict-based storage. Data lost when the store is dropped.
A MemoryStore can be handed to several drivers to make them share one
physical key space (each still isolated by its base).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from polykv.core.config import DriverConfig
from polykv.core.types import Capabilities, KeyMeta, Stored, Tag
from polykv.drivers.base import Driver


@dataclass
class _Entry:
    payload: bytes
    tag: Tag
    mtime: float
    expires_at: float = 0.0  # 0 = no expiration

    def expired(self, now: float) -> bool:
        return bool(self.expires_at) and self.expires_at <= now


class MemoryStore:
    """
    The physical store behind MemoryDriver.

    Keys are physical keys; entries expire lazily on access.
    """

    def __init__(self) -> None:
        self._data: dict[str, _Entry] = {}

    def get(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expired(time.time()):
            # Lazy expiration
            self._data.pop(key, None)
            return None
        return entry

    def put(self, key: str, entry: _Entry) -> None:
        self._data[key] = entry

    def pop(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        """Live physical keys, sorted."""
        now = time.time()
        return sorted(
            k for k, entry in self._data.items()
            if k.startswith(prefix) and not entry.expired(now)
        )

    def cleanup_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = time.time()
        expired = [k for k, entry in self._data.items() if entry.expired(now)]
        for key in expired:
            self._data.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class MemoryDriver(Driver):
    """
    In-memory driver.

    Usage:
        driver = MemoryDriver(DriverConfig(base="test:"))
        await driver.set("key", {"a": 1})
        assert await driver.get("key") == {"a": 1}
    """

    name = "memory"
    capabilities = Capabilities(
        native_binary=True,
        native_listing=True,
        ttl=True,
        persistent=False,
        meta=True,
    )
    transport_errors = ()

    def __init__(
        self,
        config: DriverConfig | None = None,
        store: MemoryStore | None = None,
        **overrides: Any,
    ) -> None:
        super().__init__(config, **overrides)
        self._shared_store = store
        self._store: MemoryStore | None = None

    @property
    def store(self) -> MemoryStore | None:
        return self._store

    async def _connect(self) -> None:
        self._store = self._shared_store if self._shared_store is not None else MemoryStore()

    async def _disconnect(self) -> None:
        store, self._store = self._store, None
        # A store we created dies with us; a shared one belongs to the caller
        if store is not None and store is not self._shared_store:
            store.clear()

    async def _read(self, physical: str) -> Stored | None:
        entry = self._store.get(physical)
        if entry is None:
            return None
        return Stored(entry.payload, entry.tag)

    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        now = time.time()
        self._store.put(physical, _Entry(payload, tag, now, now + ttl if ttl else 0.0))

    async def _delete(self, physical: str) -> None:
        self._store.pop(physical)

    async def _list(self, physical_prefix: str) -> list[str]:
        return self._store.keys(physical_prefix)

    async def _stat(self, physical: str) -> KeyMeta | None:
        entry = self._store.get(physical)
        if entry is None:
            return None
        return KeyMeta(
            key=physical,
            tag=entry.tag,
            size=len(entry.payload),
            mtime=datetime.fromtimestamp(entry.mtime, tz=timezone.utc),
            ttl=max(entry.expires_at - time.time(), 0.0) if entry.expires_at else None,
        )
