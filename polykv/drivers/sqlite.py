"""
SQLite driver.

Uses aiosqlite for async SQLite access.
WAL mode enabled for concurrent read support.
The codec tag lives in its own column, so raw bytes are stored as-is.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from polykv.core.config import DriverConfig
from polykv.core.types import Capabilities, KeyMeta, Stored, Tag
from polykv.drivers.base import Driver, url_path

logger = logging.getLogger(__name__)

# A row is live when it has no expiry or the expiry is in the future
_LIVE = "(expires_at IS NULL OR expires_at > ?)"


class SQLiteDriver(Driver):
    """
    SQLite-based key-value driver.

    Usage:
        driver = SQLiteDriver(DriverConfig(url="sqlite://~/.polykv/data.db"))
        await driver.set("user:name", "Alex")
        value = await driver.get("user:name")  # "Alex"
    """

    name = "sqlite"
    capabilities = Capabilities(
        native_binary=True,
        native_listing=True,
        ttl=True,
        persistent=True,
        meta=True,
    )
    transport_errors = (sqlite3.Error, OSError)

    def __init__(self, config: DriverConfig | None = None, **overrides: Any) -> None:
        super().__init__(config, **overrides)
        path = self.config.options.get("path") or url_path(self.config.url)
        self._db_path = Path(path).expanduser()
        self._db: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def _connect(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(str(self._db_path))
        try:
            # Enable WAL mode for better concurrent access
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    tag TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    expires_at REAL
                )
                """
            )
            await db.commit()
        except BaseException:
            await db.close()
            raise

        self._db = db
        logger.debug(f"SQLite storage initialized at {self._db_path}")

    async def _disconnect(self) -> None:
        db, self._db = self._db, None
        if db is not None:
            await db.close()

    async def _read(self, physical: str) -> Stored | None:
        async with self._db.execute(
            f"SELECT value, tag FROM kv WHERE key = ? AND {_LIVE}",
            (physical, time.time()),
        ) as cursor:
            row = await cursor.fetchone()
        return Stored(bytes(row[0]), Tag(row[1])) if row else None

    async def _exists(self, physical: str) -> bool:
        async with self._db.execute(
            f"SELECT 1 FROM kv WHERE key = ? AND {_LIVE}",
            (physical, time.time()),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        now = time.time()
        expires_at = now + ttl if ttl else None
        await self._db.execute(
            """
            INSERT INTO kv (key, value, tag, created_at, updated_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                tag = excluded.tag,
                updated_at = excluded.updated_at,
                expires_at = excluded.expires_at
            """,
            (physical, payload, tag.value, now, now, expires_at),
        )
        await self._db.commit()

    async def _delete(self, physical: str) -> None:
        await self._db.execute("DELETE FROM kv WHERE key = ?", (physical,))
        await self._db.commit()

    async def _list(self, physical_prefix: str) -> list[str]:
        # substr() instead of LIKE: "%" and "_" in keys must match literally
        async with self._db.execute(
            f"SELECT key FROM kv WHERE substr(key, 1, ?) = ? AND {_LIVE} ORDER BY key",
            (len(physical_prefix), physical_prefix, time.time()),
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def _clear(self, physical_prefix: str) -> None:
        await self._db.execute(
            "DELETE FROM kv WHERE substr(key, 1, ?) = ?",
            (len(physical_prefix), physical_prefix),
        )
        await self._db.commit()

    async def _stat(self, physical: str) -> KeyMeta | None:
        now = time.time()
        async with self._db.execute(
            f"SELECT tag, length(value), updated_at, expires_at FROM kv WHERE key = ? AND {_LIVE}",
            (physical, now),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        tag, size, updated_at, expires_at = row
        return KeyMeta(
            key=physical,
            tag=Tag(tag),
            size=size,
            mtime=datetime.fromtimestamp(updated_at, tz=timezone.utc),
            ttl=max(expires_at - now, 0.0) if expires_at is not None else None,
        )

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns how many were removed."""
        await self._ensure_connected()
        async with self._guard("purge_expired"):
            cursor = await self._db.execute(
                "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (time.time(),),
            )
            await self._db.commit()
        return cursor.rowcount
