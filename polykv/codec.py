"""
Value Codec — converts application values to storable bytes and back.

Two encodings:
    Tag.RAW  — bytes-like input, passed through unchanged
    Tag.JSON — everything else, as compact JSON text (UTF-8)

Types survive the round trip: True comes back as True, "true" as "true".

Stores that keep only opaque bytes per key use the envelope:
    pack(payload, Tag.JSON) → the JSON text itself
    pack(payload, Tag.RAW)  → b"base64:" + base64(payload)
No JSON document starts with "base64:", so unpack() is unambiguous.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from pydantic import BaseModel

from polykv.core.errors import CodecError
from polykv.core.types import Tag

RAW_PREFIX = b"base64:"

_SUFFIX_TAGS = {
    ".json": Tag.JSON,
    ".bin": Tag.RAW,
}


def is_raw(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def encode(value: Any) -> tuple[bytes, Tag]:
    """
    Encode a value for storage.

    Raises:
        CodecError: if the value is not JSON-serializable (sets, NaN, ...)
    """
    if is_raw(value):
        return bytes(value), Tag.RAW

    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    try:
        text = json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as e:
        raise CodecError(
            f"Cannot encode value of type {type(value).__name__}: {e}"
        ) from e
    return text.encode("utf-8"), Tag.JSON


def decode(payload: bytes, tag: Tag | str) -> Any:
    """
    Decode a stored payload according to its tag.

    Raises:
        CodecError: on an unknown tag, or when a JSON payload is malformed
    """
    try:
        tag = Tag(tag)
    except ValueError as e:
        raise CodecError(f"Unknown codec tag: {tag!r}") from e

    if tag is Tag.RAW:
        return bytes(payload)

    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CodecError(f"Stored value is not valid JSON: {e}") from e


# ━━━ Envelope ━━━


def pack(payload: bytes, tag: Tag) -> bytes:
    """Frame a payload so its tag can be recovered from the bytes alone."""
    if tag is Tag.RAW:
        return RAW_PREFIX + base64.b64encode(payload)
    return payload


def unpack(data: bytes) -> tuple[bytes, Tag]:
    """Inverse of pack()."""
    if data.startswith(RAW_PREFIX):
        try:
            return base64.b64decode(data[len(RAW_PREFIX):], validate=True), Tag.RAW
        except binascii.Error as e:
            raise CodecError(f"Stored raw value is not valid base64: {e}") from e
    return data, Tag.JSON


def tag_for_key(key: str) -> Tag | None:
    """Infer the tag from a filename-like key ("data:raw.bin" → Tag.RAW)."""
    for suffix, tag in _SUFFIX_TAGS.items():
        if key.endswith(suffix):
            return tag
    return None
