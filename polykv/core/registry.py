"""
Driver Registry — maps URL schemes to driver classes.

Drivers register under one or more schemes. A driver can be registered
as a class or as a "module:ClassName" string that is imported on first
use, so optional backends cost nothing until a URL asks for them.

    memory://               MemoryDriver
    file:///var/kv          FilesystemDriver
    sqlite:///var/kv.db     SQLiteDriver
    redis://host:6379/0     RedisDriver
    http(s)://host/store    HTTPDriver
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any, Union

from polykv.core.config import DriverConfig
from polykv.core.errors import DriverNotFoundError

if TYPE_CHECKING:
    from polykv.drivers.base import Driver

logger = logging.getLogger(__name__)

DriverSpec = Union[type, str]


class DriverRegistry:
    """
    Scheme → driver class lookup.

    Usage:
        registry = DriverRegistry()
        registry.register("memory", MemoryDriver)
        registry.register("redis", "polykv.drivers.redis:RedisDriver")

        cls = registry.get("redis")        # imports on first use
        registry.names()                   # ["memory", "redis"]
    """

    def __init__(self) -> None:
        self._drivers: dict[str, DriverSpec] = {}

    def register(self, scheme: str, driver: DriverSpec) -> None:
        """
        Register a driver class for a URL scheme.

        If the scheme is already registered, it's replaced.
        """
        self._drivers[scheme.lower()] = driver
        logger.debug(f"Registered driver for {scheme}://")

    def get(self, scheme: str) -> type[Driver]:
        """
        Resolve the driver class for a scheme.

        Raises:
            DriverNotFoundError: If no driver is registered for the scheme
        """
        scheme = scheme.lower()
        if scheme not in self._drivers:
            available = ", ".join(self.names()) or "none"
            raise DriverNotFoundError(
                f"No driver registered for scheme '{scheme}'. Available: {available}"
            )

        driver = self._drivers[scheme]
        if isinstance(driver, str):
            driver = _import_driver(driver)
            self._drivers[scheme] = driver
        return driver

    def has(self, scheme: str) -> bool:
        return scheme.lower() in self._drivers

    def names(self) -> list[str]:
        """Registered schemes, in registration order."""
        return list(self._drivers)

    def remove(self, scheme: str) -> None:
        self._drivers.pop(scheme.lower(), None)

    def clear(self) -> None:
        """Remove all drivers. Used in testing."""
        self._drivers.clear()


def _import_driver(path: str) -> type:
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise DriverNotFoundError(f"Cannot load driver '{path}': {e}") from e


def default_registry() -> DriverRegistry:
    """A registry with every built-in driver."""
    registry = DriverRegistry()
    registry.register("memory", "polykv.drivers.memory:MemoryDriver")
    registry.register("file", "polykv.drivers.fs:FilesystemDriver")
    registry.register("sqlite", "polykv.drivers.sqlite:SQLiteDriver")
    registry.register("redis", "polykv.drivers.redis:RedisDriver")
    registry.register("rediss", "polykv.drivers.redis:RedisDriver")
    registry.register("http", "polykv.drivers.http:HTTPDriver")
    registry.register("https", "polykv.drivers.http:HTTPDriver")
    return registry


drivers = default_registry()


def create_driver(
    config: DriverConfig | None = None,
    registry: DriverRegistry | None = None,
    **kwargs: Any,
) -> Driver:
    """
    Build an unconnected driver for config.url.

    Extra keyword arguments go to the driver constructor
    (store=..., client_factory=..., transport=...).
    """
    config = config or DriverConfig()
    if not config.scheme:
        raise DriverNotFoundError(f"URL '{config.url}' has no scheme")
    cls = (registry or drivers).get(config.scheme)
    return cls(config, **kwargs)


async def open_driver(
    config: DriverConfig | None = None,
    registry: DriverRegistry | None = None,
    **kwargs: Any,
) -> Driver:
    """
    Build a driver and, unless lazy_connect is set, connect it now.

    Usage:
        driver = await open_driver(DriverConfig(url="redis://localhost:6379/0",
                                                lazy_connect=False))
    """
    driver = create_driver(config, registry, **kwargs)
    if not driver.config.lazy_connect:
        await driver.connect()
    return driver
