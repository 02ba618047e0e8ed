"""
polykv — one async key-value interface over many storage backends.

Public API:
    from polykv import DriverConfig, open_driver

    driver = await open_driver(DriverConfig(url="redis://localhost:6379/0", base="app:"))
    await driver.set("user:name", "Alex")
"""

__version__ = "0.1.0"

# Core
from polykv.core.config import DriverConfig, PolyKVConfig
from polykv.core.errors import (
    CodecError,
    ConfigError,
    DriverNotFoundError,
    InvalidKeyError,
    NotConnectedError,
    NotFoundError,
    PolyKVError,
    TransportError,
    UnsupportedOperationError,
)
from polykv.core.registry import DriverRegistry, create_driver, drivers, open_driver
from polykv.core.types import Capabilities, DriverState, KeyMeta, Tag

# Drivers
from polykv.drivers.base import Driver
from polykv.drivers.memory import MemoryDriver, MemoryStore

__all__ = [
    # Core
    "DriverConfig",
    "PolyKVConfig",
    "DriverRegistry",
    "create_driver",
    "open_driver",
    "drivers",
    "Capabilities",
    "DriverState",
    "KeyMeta",
    "Tag",
    # Errors
    "PolyKVError",
    "CodecError",
    "ConfigError",
    "DriverNotFoundError",
    "InvalidKeyError",
    "NotConnectedError",
    "NotFoundError",
    "TransportError",
    "UnsupportedOperationError",
    # Drivers
    "Driver",
    "MemoryDriver",
    "MemoryStore",
]
