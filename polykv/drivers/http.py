"""
HTTP driver — talks to a key-value store exposed over HTTP.

Wire protocol (key segments become URL path segments):

    GET    {url}/test/data/raw.bin   → 200 + body, or 404
    HEAD   {url}/test/data/raw.bin   → 200 / 404
    PUT    {url}/test/data/raw.bin   body = payload
    DELETE {url}/test/data/raw.bin   → 2xx, or 404 (already gone)
    GET    {url}/test/data/          → 200 + JSON array of physical keys
                                       under that directory ("test:data:raw.bin")
    DELETE {url}/test/data/          → 2xx, or 404; removes everything under
                                       that directory

The codec tag travels as Content-Type: application/json for JSON values,
application/octet-stream for raw bytes.

Servers that cannot list are configured with options={"listing": False};
keys() and clear() then raise UnsupportedOperationError.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any
from urllib.parse import quote

import httpx

from polykv.core.config import DriverConfig
from polykv.core.errors import CodecError, InvalidKeyError, TransportError
from polykv.core.types import Capabilities, Stored, Tag
from polykv.drivers.base import Driver
from polykv.keys import SEPARATOR

logger = logging.getLogger(__name__)

JSON_TYPE = "application/json"
RAW_TYPE = "application/octet-stream"

_CONTENT_TYPES = {
    Tag.JSON: JSON_TYPE,
    Tag.RAW: RAW_TYPE,
}

_DOT_SEGMENTS = {".", ".."}


def _tag_for_content_type(content_type: str) -> Tag:
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == JSON_TYPE or media_type.endswith("+json"):
        return Tag.JSON
    return Tag.RAW


class HTTPDriver(Driver):
    """
    Driver for HTTP key-value endpoints.

    Usage:
        driver = HTTPDriver(DriverConfig(
            url="https://kv.example.com/store",
            base="app:",
            options={"headers": {"Authorization": "Bearer ..."}},
        ))
        await driver.set("config:theme", "dark")
        # PUT https://kv.example.com/store/app/config/theme

    transport is handed to httpx.AsyncClient; tests pass an
    httpx.MockTransport.
    """

    name = "http"
    capabilities = Capabilities(
        native_binary=True,
        native_listing=True,
        ttl=False,
        persistent=True,
        meta=False,
    )
    transport_errors = (httpx.HTTPError,)

    def __init__(
        self,
        config: DriverConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **overrides: Any,
    ) -> None:
        super().__init__(config, **overrides)
        if not self.config.options.get("listing", True):
            self.capabilities = dataclasses.replace(type(self).capabilities, native_listing=False)
        self._base_url = self.config.url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _connect(self) -> None:
        options = self.config.options
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=options.get("headers") or {},
            timeout=httpx.Timeout(
                connect=10.0,
                read=float(options.get("timeout", 30.0)),
                write=10.0,
                pool=10.0,
            ),
            transport=self._transport,
        )

    async def _disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _read(self, physical: str) -> Stored | None:
        response = await self._client.get(self._path(physical))
        if response.status_code == 404:
            return None
        self._check(response, "get", physical)
        tag = _tag_for_content_type(response.headers.get("content-type", RAW_TYPE))
        return Stored(response.content, tag)

    async def _exists(self, physical: str) -> bool:
        response = await self._client.head(self._path(physical))
        if response.status_code == 404:
            return False
        self._check(response, "has", physical)
        return True

    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        response = await self._client.put(
            self._path(physical),
            content=payload,
            headers={"Content-Type": _CONTENT_TYPES[tag]},
        )
        self._check(response, "set", physical)

    async def _delete(self, physical: str) -> None:
        response = await self._client.delete(self._path(physical))
        if response.status_code == 404:
            return
        self._check(response, "remove", physical)

    async def _list(self, physical_prefix: str) -> list[str]:
        segments = physical_prefix.split(SEPARATOR)[:-1]
        directory = self._path(SEPARATOR.join(segments)) if segments else ""
        response = await self._client.get(
            f"{directory}/",
            headers={"Accept": JSON_TYPE},
        )
        if response.status_code == 404:
            return []
        self._check(response, "keys", physical_prefix)

        try:
            keys = response.json()
        except ValueError as e:
            raise CodecError(f"Key listing is not valid JSON: {e}") from e
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise CodecError("Key listing must be a JSON array of strings")
        return sorted(k for k in keys if k.startswith(physical_prefix))

    async def _clear(self, physical_prefix: str) -> None:
        # Only whole directories can be deleted in one request; a partial
        # segment ("test:s" for s1, s2) goes key by key
        if physical_prefix and not physical_prefix.endswith(SEPARATOR):
            for physical in await self._list(physical_prefix):
                await self._delete(physical)
            return

        directory = self._path(physical_prefix.rstrip(SEPARATOR)) if physical_prefix else ""
        response = await self._client.delete(f"{directory}/")
        if response.status_code == 404:
            return
        self._check(response, "clear", physical_prefix)

    # ━━━ Internal Helpers ━━━

    @staticmethod
    def _path(physical: str) -> str:
        segments = physical.split(SEPARATOR)
        # URL resolution would collapse these and escape the base
        if any(segment in _DOT_SEGMENTS for segment in segments):
            raise InvalidKeyError(
                f"Key '{physical}' cannot be mapped to a URL path", key=physical
            )
        return "/" + "/".join(quote(segment, safe="") for segment in segments)

    def _check(self, response: httpx.Response, operation: str, key: str) -> None:
        if response.is_success:
            return
        raise TransportError(
            f"http: {operation} '{key}' failed with HTTP {response.status_code}",
            driver=self.name,
            details={
                "operation": operation,
                "key": key,
                "status_code": response.status_code,
            },
        )
