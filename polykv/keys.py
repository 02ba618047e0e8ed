"""
Key Namespacer — maps logical keys to physical keys and back.

Logical keys are what the application sees: "user:settings:theme".
Physical keys are what the backend stores: base + logical key.

    to_physical("test:", "s1:a")      → "test:s1:a"
    to_logical("test:", "test:s1:a")  → "s1:a"
    to_logical("test:", "other:s1:a") → None  (foreign namespace)

Everything here is pure and stateless.
"""

from __future__ import annotations

from polykv.core.errors import InvalidKeyError

SEPARATOR = ":"

_GLOB_SPECIAL = set("*?[]\\")


def to_physical(base: str, key: str) -> str:
    """Prefix a logical key with the base."""
    return f"{base}{key}"


def to_logical(base: str, physical: str) -> str | None:
    """Strip the base from a physical key, or None if it belongs elsewhere."""
    if not physical.startswith(base):
        return None
    return physical[len(base):]


def join_key(*segments: str) -> str:
    """Join segments into a key: join_key("data", "raw.bin") → "data:raw.bin"."""
    key = SEPARATOR.join(segments)
    validate_key(key)
    return key


def split_key(key: str) -> list[str]:
    return key.split(SEPARATOR)


def validate_key(key: str) -> str:
    """
    Check that a logical key is usable.

    Raises:
        InvalidKeyError: if the key is not a string, is empty, or has
            empty segments ("a::b", ":a", "a:")
    """
    if not isinstance(key, str):
        raise InvalidKeyError(f"Key must be a string, got {type(key).__name__}", key=str(key))
    if not key:
        raise InvalidKeyError("Key must not be empty", key=key)
    if "" in split_key(key):
        raise InvalidKeyError(f"Key '{key}' has an empty segment", key=key)
    return key


def validate_prefix(prefix: str) -> str:
    """A listing prefix may be empty, or any partial key."""
    if not isinstance(prefix, str):
        raise InvalidKeyError(
            f"Prefix must be a string, got {type(prefix).__name__}", key=str(prefix)
        )
    if SEPARATOR * 2 in prefix or prefix.startswith(SEPARATOR):
        raise InvalidKeyError(f"Prefix '{prefix}' has an empty segment", key=prefix)
    return prefix


def glob_escape(text: str) -> str:
    """Escape glob metacharacters so text matches literally in a MATCH pattern."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)
