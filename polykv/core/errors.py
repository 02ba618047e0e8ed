"""
polykv exception hierarchy.

Every error in the system inherits from PolyKVError.
Each failure kind has its own class so callers can branch on it.

Usage:
    try:
        await driver.require("user:name")
    except NotFoundError:
        # Key is not stored
    except TransportError as e:
        # Backend failed (network, disk, database)
    except PolyKVError as e:
        # Any polykv error
"""


class PolyKVError(Exception):
    """Base exception for all polykv errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Core Errors ━━━


class ConfigError(PolyKVError):
    """Configuration is invalid, missing, or malformed."""

    pass


class DriverNotFoundError(PolyKVError):
    """No driver is registered for the requested URL scheme."""

    pass


class InvalidKeyError(PolyKVError, ValueError):
    """Key is empty, has empty segments, or is not valid for the backend."""

    def __init__(self, message: str, key: str = "", details: dict | None = None):
        self.key = key
        super().__init__(message, details)


class CodecError(PolyKVError):
    """Value cannot be encoded, or stored bytes do not match their tag."""

    pass


# ━━━ Driver Errors ━━━


class NotFoundError(PolyKVError, KeyError):
    """Key does not exist."""

    def __init__(self, message: str, key: str = "", details: dict | None = None):
        self.key = key
        super().__init__(message, details)

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.message


class NotConnectedError(PolyKVError):
    """Operation issued before connect() or after dispose()."""

    pass


class UnsupportedOperationError(PolyKVError):
    """The driver does not implement this capability."""

    def __init__(
        self,
        message: str,
        driver: str = "",
        operation: str = "",
        details: dict | None = None,
    ):
        self.driver = driver
        self.operation = operation
        super().__init__(message, details)


class TransportError(PolyKVError):
    """Backend failure — network errors, disk I/O, database errors, etc."""

    def __init__(
        self,
        message: str,
        driver: str = "",
        details: dict | None = None,
    ):
        self.driver = driver
        super().__init__(message, details)
