"""Tests for the HTTP driver, against an in-process httpx.MockTransport server."""

from urllib.parse import unquote

import httpx
import pytest
from polykv.core.config import DriverConfig
from polykv.core.errors import (
    CodecError,
    InvalidKeyError,
    TransportError,
    UnsupportedOperationError,
)
from polykv.drivers.http import HTTPDriver
from polykv.testing import DriverConformance

URL = "http://kv.test/store"


class FakeKVServer:
    """Minimal server speaking the HTTP driver's wire protocol."""

    def __init__(self, listing: bool = True) -> None:
        self.data: dict[str, tuple[bytes, str]] = {}
        self.listing = listing
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with)

        path = request.url.path.removeprefix("/store").strip("/")
        key = ":".join(unquote(segment) for segment in path.split("/")) if path else ""

        if request.url.path.endswith("/") and request.method == "GET":
            if not self.listing:
                return httpx.Response(405)
            prefix = f"{key}:" if key else ""
            return httpx.Response(200, json=[k for k in self.data if k.startswith(prefix)])

        if request.url.path.endswith("/") and request.method == "DELETE":
            prefix = f"{key}:" if key else ""
            for stored in [k for k in self.data if k.startswith(prefix)]:
                del self.data[stored]
            return httpx.Response(204)

        if request.method == "GET":
            if key not in self.data:
                return httpx.Response(404)
            body, content_type = self.data[key]
            return httpx.Response(200, content=body, headers={"Content-Type": content_type})
        if request.method == "HEAD":
            return httpx.Response(200 if key in self.data else 404)
        if request.method == "PUT":
            self.data[key] = (request.content, request.headers["content-type"])
            return httpx.Response(204)
        if request.method == "DELETE":
            if self.data.pop(key, None) is None:
                return httpx.Response(404)
            return httpx.Response(204)
        return httpx.Response(405)


class TestHTTPDriver(DriverConformance):
    @pytest.fixture(autouse=True)
    def _server(self):
        self.server = FakeKVServer()

    async def create_driver(self, base):
        return HTTPDriver(DriverConfig(base=base, url=URL), transport=self.server.transport)

    async def physical_keys(self):
        return list(self.server.data)


# ━━━ HTTP-specific behavior ━━━


@pytest.fixture
def server():
    return FakeKVServer()


@pytest.mark.asyncio
async def test_http_requests_and_content_types(server):
    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await driver.set("data:true.json", True)
    await driver.set("data:raw.bin", b"\x00\x01")

    put_json, put_raw = server.requests
    assert put_json.method == "PUT"
    assert str(put_json.url) == "http://kv.test/store/test/data/true.json"
    assert put_json.headers["content-type"] == "application/json"
    assert put_json.content == b"true"
    assert put_raw.headers["content-type"] == "application/octet-stream"
    assert put_raw.content == b"\x00\x01"
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_segments_are_url_quoted(server):
    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await driver.set("files:a b?.json", 1)
    assert server.requests[-1].url.raw_path == b"/store/test/files/a%20b%3F.json"
    assert await driver.get("files:a b?.json") == 1
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_headers_from_options(server):
    driver = HTTPDriver(
        DriverConfig(url=URL, options={"headers": {"Authorization": "Bearer secret"}}),
        transport=server.transport,
    )
    await driver.has("key")
    assert server.requests[-1].headers["authorization"] == "Bearer secret"
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_server_error_is_transport_error(server):
    driver = HTTPDriver(DriverConfig(url=URL), transport=server.transport)
    server.fail_with = 500

    with pytest.raises(TransportError) as exc_info:
        await driver.get("key")
    assert exc_info.value.details["status_code"] == 500
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_network_error_is_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    driver = HTTPDriver(DriverConfig(url=URL), transport=httpx.MockTransport(refuse))
    with pytest.raises(TransportError):
        await driver.set("key", "value")
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_without_listing_fails_loudly(server):
    driver = HTTPDriver(
        DriverConfig(url=URL, options={"listing": False}),
        transport=server.transport,
    )
    assert driver.capabilities.native_listing is False
    assert HTTPDriver.capabilities.native_listing is True

    await driver.set("key", "value")
    with pytest.raises(UnsupportedOperationError):
        await driver.keys()
    with pytest.raises(UnsupportedOperationError):
        await driver.clear()
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_bad_listing_is_codec_error():
    def handler(request):
        return httpx.Response(200, json={"not": "a list"})

    driver = HTTPDriver(DriverConfig(url=URL), transport=httpx.MockTransport(handler))
    with pytest.raises(CodecError):
        await driver.keys()
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_unknown_content_type_is_raw():
    def handler(request):
        return httpx.Response(200, content=b"plain", headers={"Content-Type": "text/plain"})

    driver = HTTPDriver(DriverConfig(url=URL), transport=httpx.MockTransport(handler))
    assert await driver.get("key") == b"plain"
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_listing_request(server):
    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await driver.set("s1:a", 1)
    await driver.keys("s1:")

    listing = server.requests[-1]
    assert listing.method == "GET"
    assert listing.url.path == "/store/test/s1/"
    assert listing.headers["accept"] == "application/json"
    await driver.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["..:other:secret", "s1:.:a", "data:..", "."])
async def test_http_dot_segments_rejected(server, key):
    theirs = HTTPDriver(DriverConfig(base="other:", url=URL), transport=server.transport)
    mine = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await theirs.set("secret", "theirs")
    sent = len(server.requests)

    with pytest.raises(InvalidKeyError):
        await mine.set(key, "clobbered")
    with pytest.raises(InvalidKeyError):
        await mine.get(key)

    assert len(server.requests) == sent
    assert await theirs.get("secret") == "theirs"
    assert list(server.data) == ["other:secret"]
    await mine.dispose()
    await theirs.dispose()


@pytest.mark.asyncio
async def test_http_clear_deletes_directory(server):
    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await driver.set_many({"data:a": 1, "data:b": 2, "s1:a": 3})
    sent = len(server.requests)

    await driver.clear("data:")

    clear_request, = server.requests[sent:]
    assert clear_request.method == "DELETE"
    assert clear_request.url.path == "/store/test/data/"
    assert await driver.keys() == ["s1:a"]

    await driver.clear()
    assert server.requests[-1].url.path == "/store/test/"
    assert server.data == {}
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_clear_partial_segment_goes_key_by_key(server):
    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=server.transport)
    await driver.set_many({"s1:a": 1, "s2:a": 2, "t1:a": 3})
    sent = len(server.requests)

    await driver.clear("s")

    methods = [request.method for request in server.requests[sent:]]
    assert methods == ["GET", "DELETE", "DELETE"]
    assert await driver.keys() == ["t1:a"]
    await driver.dispose()


@pytest.mark.asyncio
async def test_http_clear_missing_directory_is_noop():
    def handler(request):
        return httpx.Response(404)

    driver = HTTPDriver(DriverConfig(base="test:", url=URL), transport=httpx.MockTransport(handler))
    await driver.clear()
    await driver.dispose()
