"""
Driver interface.

Every backend implements the same async contract:

    has(key) → bool
    get(key, default=None) → value
    set(key, value, ttl=None)
    remove(key)               idempotent
    keys(prefix="") → [logical keys]
    clear(prefix="")          idempotent
    dispose()                 idempotent

This class does the backend-independent work — key validation,
namespacing (base prefix), value encoding, lifecycle and error
wrapping. Subclasses only implement the storage primitives
(_connect, _disconnect, _read, _write, _delete, _list, ...), which
always receive physical keys and encoded payloads.

Lifecycle:
    UNCONNECTED ──connect()──▶ CONNECTED ──dispose()──▶ DISPOSED

With lazy_connect=True the first operation connects. With
lazy_connect=False the caller must connect first (open_driver() or
`async with driver:`), otherwise operations raise NotConnectedError.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Mapping

from polykv import codec
from polykv.core.config import DriverConfig
from polykv.core.errors import (
    ConfigError,
    NotConnectedError,
    NotFoundError,
    PolyKVError,
    TransportError,
    UnsupportedOperationError,
)
from polykv.core.types import Capabilities, DriverState, KeyMeta, Stored, Tag
from polykv.keys import to_logical, to_physical, validate_key, validate_prefix

logger = logging.getLogger(__name__)


class Driver(ABC):
    """
    Abstract base class for storage drivers.

    Usage:
        async with MemoryDriver(DriverConfig(base="app:")) as driver:
            await driver.set("user:name", "Alex")
            await driver.get("user:name")   # "Alex"
            await driver.keys("user:")      # ["user:name"]
    """

    name: str = "base"
    capabilities: Capabilities = Capabilities()

    # Exceptions raised by the backend library that mean "transport failed".
    # They are wrapped in TransportError; anything else propagates unchanged.
    transport_errors: tuple[type[BaseException], ...] = (OSError,)

    def __init__(self, config: DriverConfig | None = None, **overrides: Any) -> None:
        config = config or DriverConfig()
        if overrides:
            config = DriverConfig.model_validate({**config.model_dump(), **overrides})
        self._config = config
        self._state = DriverState.UNCONNECTED
        self._lock = asyncio.Lock()

        if config.ttl is not None and not self.capabilities.ttl:
            raise UnsupportedOperationError(
                f"Driver '{self.name}' does not support TTL",
                driver=self.name,
                operation="ttl",
            )

    # ━━━ Properties ━━━

    @property
    def config(self) -> DriverConfig:
        return self._config

    @property
    def base(self) -> str:
        return self._config.base

    @property
    def state(self) -> DriverState:
        return self._state

    # ━━━ Lifecycle ━━━

    async def connect(self) -> None:
        """Acquire the backend handle. No-op when already connected."""
        async with self._lock:
            if self._state is DriverState.CONNECTED:
                return
            if self._state is DriverState.DISPOSED:
                raise NotConnectedError(f"Driver '{self.name}' has been disposed")

            async with self._guard("connect"):
                await self._connect()
            self._state = DriverState.CONNECTED
            logger.debug(f"{self.name} driver connected (base={self.base!r})")

    async def dispose(self) -> None:
        """
        Release the backend handle.

        Safe to call more than once. The driver is DISPOSED afterwards even
        if releasing the handle fails; that failure is raised as
        TransportError.
        """
        async with self._lock:
            if self._state is DriverState.DISPOSED:
                return
            was_connected = self._state is DriverState.CONNECTED
            self._state = DriverState.DISPOSED
            if not was_connected:
                return
            try:
                async with self._guard("dispose"):
                    await self._disconnect()
            finally:
                logger.debug(f"{self.name} driver disposed (base={self.base!r})")

    async def __aenter__(self) -> Driver:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.dispose()

    # ━━━ Operations ━━━

    async def has(self, key: str) -> bool:
        physical = self._physical(key)
        await self._ensure_connected()
        async with self._guard("has", key):
            return await self._exists(physical)

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value. Returns default when the key is not stored."""
        physical = self._physical(key)
        await self._ensure_connected()
        async with self._guard("get", key):
            stored = await self._read(physical)
        if stored is None:
            return default
        return codec.decode(stored.payload, stored.tag)

    async def require(self, key: str) -> Any:
        """Get a value, raising NotFoundError when the key is not stored."""
        missing = object()
        value = await self.get(key, missing)
        if value is missing:
            raise NotFoundError(f"Key '{key}' not found", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value. Overwrites if it exists."""
        physical = self._physical(key)
        ttl = self._resolve_ttl(ttl)
        payload, tag = codec.encode(value)
        await self._ensure_connected()
        async with self._guard("set", key):
            await self._write(physical, payload, tag, ttl)

    async def remove(self, key: str) -> None:
        """Remove a key. Removing a missing key is not an error."""
        physical = self._physical(key)
        await self._ensure_connected()
        async with self._guard("remove", key):
            await self._delete(physical)

    async def keys(self, prefix: str = "") -> list[str]:
        """List logical keys under this driver's base starting with prefix."""
        validate_prefix(prefix)
        self._require_listing("keys")
        await self._ensure_connected()
        async with self._guard("keys", prefix):
            physical_keys = await self._list(to_physical(self.base, prefix))

        result = []
        for physical in physical_keys:
            logical = to_logical(self.base, physical)
            if logical is not None and logical.startswith(prefix):
                result.append(logical)
        return result

    async def clear(self, prefix: str = "") -> None:
        """Remove every key under this driver's base starting with prefix."""
        validate_prefix(prefix)
        self._require_listing("clear")
        await self._ensure_connected()
        async with self._guard("clear", prefix):
            await self._clear(to_physical(self.base, prefix))

    async def meta(self, key: str) -> KeyMeta:
        """Metadata for a key. Raises NotFoundError when it is not stored."""
        physical = self._physical(key)
        await self._ensure_connected()
        async with self._guard("meta", key):
            meta = await self._stat(physical)
        if meta is None:
            raise NotFoundError(f"Key '{key}' not found", key=key)
        meta.key = key
        return meta

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Get several values at once. Missing keys map to None."""
        keys = list(keys)
        values = await asyncio.gather(*(self.get(key) for key in keys))
        return dict(zip(keys, values))

    async def set_many(self, items: Mapping[str, Any], ttl: int | None = None) -> None:
        await asyncio.gather(*(self.set(key, value, ttl) for key, value in items.items()))

    # ━━━ Storage primitives ━━━

    @abstractmethod
    async def _connect(self) -> None:
        """Open the backend handle."""
        ...

    @abstractmethod
    async def _disconnect(self) -> None:
        """Close the backend handle. Must drop the handle even if closing fails."""
        ...

    @abstractmethod
    async def _read(self, physical: str) -> Stored | None:
        ...

    @abstractmethod
    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        ...

    @abstractmethod
    async def _delete(self, physical: str) -> None:
        ...

    @abstractmethod
    async def _list(self, physical_prefix: str) -> Iterable[str]:
        """Physical keys starting with physical_prefix."""
        ...

    async def _exists(self, physical: str) -> bool:
        return await self._read(physical) is not None

    async def _clear(self, physical_prefix: str) -> None:
        for physical in list(await self._list(physical_prefix)):
            await self._delete(physical)

    async def _stat(self, physical: str) -> KeyMeta | None:
        stored = await self._read(physical)
        if stored is None:
            return None
        return KeyMeta(key=physical, tag=stored.tag, size=len(stored.payload))

    # ━━━ Internal Helpers ━━━

    def _physical(self, key: str) -> str:
        return to_physical(self.base, validate_key(key))

    def _resolve_ttl(self, ttl: int | None) -> int | None:
        ttl = ttl if ttl is not None else self._config.ttl
        if ttl is None:
            return None
        if not self.capabilities.ttl:
            raise UnsupportedOperationError(
                f"Driver '{self.name}' does not support TTL",
                driver=self.name,
                operation="ttl",
            )
        if ttl <= 0:
            raise ConfigError(
                f"ttl must be a positive number of seconds, got {ttl}",
                details={"ttl": ttl},
            )
        return ttl

    def _require_listing(self, operation: str) -> None:
        if not self.capabilities.native_listing:
            raise UnsupportedOperationError(
                f"Driver '{self.name}' cannot list keys",
                driver=self.name,
                operation=operation,
            )

    async def _ensure_connected(self) -> None:
        if self._state is DriverState.CONNECTED:
            return
        if self._state is DriverState.DISPOSED:
            raise NotConnectedError(f"Driver '{self.name}' has been disposed")
        if not self._config.lazy_connect:
            raise NotConnectedError(
                f"Driver '{self.name}' is not connected; call connect() first"
            )
        await self.connect()

    @asynccontextmanager
    async def _guard(self, operation: str, key: str = "") -> AsyncIterator[None]:
        """Wrap backend failures in TransportError; polykv errors pass through."""
        try:
            yield
        except PolyKVError:
            raise
        except self.transport_errors as e:
            target = f" '{key}'" if key else ""
            raise TransportError(
                f"{self.name}: {operation}{target} failed: {e}",
                driver=self.name,
                details={"operation": operation, "key": key},
            ) from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__} base={self.base!r} state={self._state.value}>"


def url_path(url: str) -> str:
    """
    Filesystem path from a file-like URL.

        file:///var/data   → /var/data
        sqlite://kv.db     → kv.db
        file://~/data      → ~/data
    """
    _, _, rest = url.partition("://")
    return rest
