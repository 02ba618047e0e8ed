"""
Redis driver — connects to any Redis-protocol server.

Uses redis.asyncio. Each driver instance creates and owns its own
client; nothing is shared at module level.

Values are stored with the codec envelope. Listing uses SCAN with a
MATCH pattern built from the escaped physical prefix, so it never
blocks the server the way KEYS does.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from polykv import codec
from polykv.core.config import DriverConfig
from polykv.core.types import Capabilities, KeyMeta, Stored, Tag
from polykv.drivers.base import Driver
from polykv.keys import glob_escape

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], aioredis.Redis]

SCAN_COUNT = 500
DELETE_BATCH = 500


def _default_client_factory(url: str) -> aioredis.Redis:
    return aioredis.Redis.from_url(url, decode_responses=False)


class RedisDriver(Driver):
    """
    Driver for Redis (and compatible servers).

    Usage:
        driver = RedisDriver(DriverConfig(
            url="redis://localhost:6379/0",
            base="test:",
            lazy_connect=False,
        ))
        await driver.connect()
        await driver.set("s1:a", "test_data")   # SET test:s1:a "test_data"

    client_factory builds the client from the URL; tests pass one that
    returns a fakeredis client bound to a shared in-process server.
    """

    name = "redis"
    capabilities = Capabilities(
        native_binary=False,
        native_listing=True,
        ttl=True,
        persistent=True,
        meta=True,
    )
    transport_errors = (RedisError, OSError)

    def __init__(
        self,
        config: DriverConfig | None = None,
        client_factory: ClientFactory | None = None,
        **overrides: Any,
    ) -> None:
        super().__init__(config, **overrides)
        self._client_factory = client_factory or _default_client_factory
        self._client: aioredis.Redis | None = None

    @property
    def client(self) -> aioredis.Redis | None:
        return self._client

    async def _connect(self) -> None:
        client = self._client_factory(self.config.url)
        try:
            await client.ping()
        except BaseException:
            await client.aclose()
            raise
        self._client = client

    async def _disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _read(self, physical: str) -> Stored | None:
        data = await self._client.get(physical)
        if data is None:
            return None
        payload, tag = codec.unpack(data)
        return Stored(payload, tag)

    async def _exists(self, physical: str) -> bool:
        return bool(await self._client.exists(physical))

    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        await self._client.set(physical, codec.pack(payload, tag), ex=ttl)

    async def _delete(self, physical: str) -> None:
        await self._client.delete(physical)

    async def _list(self, physical_prefix: str) -> list[str]:
        pattern = f"{glob_escape(physical_prefix)}*"
        keys = {
            key.decode("utf-8") if isinstance(key, bytes) else key
            async for key in self._client.scan_iter(match=pattern, count=SCAN_COUNT)
        }
        # SCAN may return a key more than once; sort for a stable snapshot
        return sorted(keys)

    async def _clear(self, physical_prefix: str) -> None:
        keys = await self._list(physical_prefix)
        for start in range(0, len(keys), DELETE_BATCH):
            await self._client.unlink(*keys[start:start + DELETE_BATCH])

    async def _stat(self, physical: str) -> KeyMeta | None:
        stored = await self._read(physical)
        if stored is None:
            return None
        ttl = await self._client.ttl(physical)
        return KeyMeta(
            key=physical,
            tag=stored.tag,
            size=len(stored.payload),
            ttl=float(ttl) if ttl is not None and ttl >= 0 else None,
        )
