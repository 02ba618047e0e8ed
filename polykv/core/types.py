"""
polykv shared types.

All types are dataclasses or enums. Frozen where immutability makes sense.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Tag(str, Enum):
    """How a stored payload is encoded."""

    JSON = "json"
    RAW = "raw"


class DriverState(str, Enum):
    """Lifecycle state of a driver instance."""

    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class Capabilities:
    """
    Static description of what a backend supports natively.

    native_binary: the store keeps the codec tag next to the payload,
        so raw bytes are stored as-is (no envelope).
    native_listing: the store can enumerate keys by prefix.
    ttl: per-key expiry is supported.
    persistent: data outlives the driver instance.
    meta: the store can report modification time / size.
    """

    native_binary: bool = False
    native_listing: bool = True
    ttl: bool = False
    persistent: bool = True
    meta: bool = False


@dataclass(frozen=True)
class Stored:
    """A payload as read back from a backend."""

    payload: bytes
    tag: Tag


@dataclass
class KeyMeta:
    """Metadata for one stored key. Fields are None when the backend can't tell."""

    key: str
    tag: Tag | None = None
    size: int | None = None
    mtime: datetime | None = None
    ttl: float | None = None
