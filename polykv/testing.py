"""
Driver conformance suite.

Every driver must behave identically through the Driver interface. To
validate a backend, subclass DriverConformance in a test module and
tell it how to build drivers and how to look at the physical store:

    class TestMemoryDriver(DriverConformance):
        @pytest.fixture(autouse=True)
        def _store(self):
            self.store = MemoryStore()

        async def create_driver(self, base):
            return MemoryDriver(DriverConfig(base=base), store=self.store)

        async def physical_keys(self):
            return self.store.keys()

Drivers from one test must share a physical store (the isolation
scenarios open a second driver with another base), and every test must
start from an empty store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import pytest
import pytest_asyncio

from polykv.core.errors import InvalidKeyError, NotConnectedError, NotFoundError
from polykv.core.types import DriverState
from polykv.drivers.base import Driver

BASE = "test:"
OTHER_BASE = "other:"

VALUE_SHAPES = [
    pytest.param(True, id="true"),
    pytest.param(False, id="false"),
    pytest.param(0, id="zero"),
    pytest.param(42, id="int"),
    pytest.param(-3.25, id="float"),
    pytest.param("test_data", id="string"),
    pytest.param("", id="empty-string"),
    pytest.param("true", id="string-true"),
    pytest.param("ünïcødé ✓", id="unicode"),
    pytest.param(None, id="null"),
    pytest.param([1, "two", None, {"three": 3}], id="array"),
    pytest.param({"a": 1, "nested": {"b": [True, False]}}, id="object"),
    pytest.param(b"\x00\x01binary\xff", id="bytes"),
    pytest.param(b"", id="empty-bytes"),
]

SERIALIZED_1 = {"serializedObj": "ok", "list": [1, 2, 3]}
SERIALIZED_2 = {"nested": {"deep": {"value": None, "flag": True}}}
RAW_BLOB = bytes(range(256))

# Logical keys written by the layout scenario and the physical keys they
# must produce under BASE
LAYOUT = {
    "s1:a": "test_data",
    "s2:a": "test_data",
    "s3:a": "test_data",
    "data:test.json": {"test": "value"},
    "data:true.json": True,
    "data:serialized1.json": SERIALIZED_1,
    "data:serialized2.json": SERIALIZED_2,
    "data:raw.bin": RAW_BLOB,
}
EXPECTED_PHYSICAL_KEYS = [f"{BASE}{key}" for key in LAYOUT]


class DriverConformance(ABC):
    """Behavioral scenarios every Driver implementation must pass."""

    @abstractmethod
    async def create_driver(self, base: str) -> Driver:
        """Build a driver with the given base on this test's physical store."""
        ...

    @abstractmethod
    async def physical_keys(self) -> list[str]:
        """Every key in the physical store, read without going through a driver."""
        ...

    @pytest_asyncio.fixture
    async def driver(self) -> AsyncIterator[Driver]:
        driver = await self.create_driver(BASE)
        await driver.connect()
        yield driver
        await driver.dispose()

    @pytest_asyncio.fixture
    async def other(self) -> AsyncIterator[Driver]:
        driver = await self.create_driver(OTHER_BASE)
        await driver.connect()
        yield driver
        await driver.dispose()

    # ━━━ Basic operations ━━━

    @pytest.mark.asyncio
    async def test_starts_empty(self, driver: Driver):
        assert await driver.keys() == []
        assert await driver.has("s1:a") is False

    @pytest.mark.asyncio
    async def test_set_and_get(self, driver: Driver):
        await driver.set("s1:a", "test_data")
        assert await driver.has("s1:a") is True
        assert await driver.get("s1:a") == "test_data"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", VALUE_SHAPES)
    async def test_round_trip(self, driver: Driver, value: Any):
        await driver.set("data:value", value)
        result = await driver.require("data:value")
        assert result == value
        assert type(result) is type(value)

    @pytest.mark.asyncio
    async def test_boolean_is_not_a_string(self, driver: Driver):
        await driver.set("data:true.json", True)
        await driver.set("data:true.txt", "true")
        assert await driver.get("data:true.json") is True
        assert await driver.get("data:true.txt") == "true"

    @pytest.mark.asyncio
    async def test_bytearray_comes_back_as_bytes(self, driver: Driver):
        await driver.set("data:raw.bin", bytearray(b"abc"))
        assert await driver.get("data:raw.bin") == b"abc"

    @pytest.mark.asyncio
    async def test_overwrite(self, driver: Driver):
        await driver.set("s1:a", "old")
        await driver.set("s1:a", {"new": True})
        assert await driver.get("s1:a") == {"new": True}
        assert await driver.keys() == ["s1:a"]

    @pytest.mark.asyncio
    async def test_get_missing(self, driver: Driver):
        assert await driver.get("missing:key") is None
        assert await driver.get("missing:key", "fallback") == "fallback"
        with pytest.raises(NotFoundError):
            await driver.require("missing:key")

    @pytest.mark.asyncio
    async def test_stored_null_is_not_missing(self, driver: Driver):
        await driver.set("data:null", None)
        assert await driver.has("data:null") is True
        assert await driver.require("data:null") is None

    @pytest.mark.asyncio
    async def test_remove(self, driver: Driver):
        await driver.set("s1:a", "test_data")
        await driver.remove("s1:a")
        assert await driver.has("s1:a") is False
        assert await driver.get("s1:a") is None

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, driver: Driver):
        await driver.set("s1:a", "test_data")
        await driver.remove("s1:a")
        await driver.remove("s1:a")
        await driver.remove("never:written")
        assert await driver.has("s1:a") is False

    @pytest.mark.asyncio
    async def test_invalid_keys_rejected(self, driver: Driver):
        for key in ["", "a::b", ":a", "a:"]:
            with pytest.raises(InvalidKeyError):
                await driver.set(key, "value")

    @pytest.mark.asyncio
    async def test_get_many(self, driver: Driver):
        await driver.set_many({"s1:a": 1, "s2:a": [2]})
        result = await driver.get_many(["s1:a", "s2:a", "s3:a"])
        assert result == {"s1:a": 1, "s2:a": [2], "s3:a": None}

    @pytest.mark.asyncio
    async def test_meta(self, driver: Driver):
        await driver.set("data:raw.bin", b"12345")
        meta = await driver.meta("data:raw.bin")
        assert meta.key == "data:raw.bin"
        with pytest.raises(NotFoundError):
            await driver.meta("missing:key")

    # ━━━ Listing and clearing ━━━

    @pytest.mark.asyncio
    async def test_keys_with_prefix(self, driver: Driver):
        await driver.set_many(LAYOUT)
        assert sorted(await driver.keys("s")) == ["s1:a", "s2:a", "s3:a"]
        assert sorted(await driver.keys("data:")) == sorted(
            k for k in LAYOUT if k.startswith("data:")
        )
        assert await driver.keys("nothing") == []

    @pytest.mark.asyncio
    async def test_keys_lists_everything_without_base(self, driver: Driver):
        await driver.set_many(LAYOUT)
        keys = await driver.keys()
        assert sorted(keys) == sorted(LAYOUT)
        assert not any(key.startswith(BASE) for key in keys)

    @pytest.mark.asyncio
    async def test_stored_key_layout(self, driver: Driver):
        await driver.set_many(LAYOUT)
        assert sorted(await self.physical_keys()) == sorted(EXPECTED_PHYSICAL_KEYS)

    @pytest.mark.asyncio
    async def test_layout_values_round_trip(self, driver: Driver):
        await driver.set_many(LAYOUT)
        for key, value in LAYOUT.items():
            assert await driver.get(key) == value
        assert await driver.get("data:true.json") is True
        assert await driver.get("data:raw.bin") == RAW_BLOB

    @pytest.mark.asyncio
    async def test_clear(self, driver: Driver):
        await driver.set_many(LAYOUT)
        await driver.clear()
        assert await driver.keys() == []
        assert await self.physical_keys() == []

    @pytest.mark.asyncio
    async def test_clear_prefix(self, driver: Driver):
        await driver.set_many(LAYOUT)
        await driver.clear("data:")
        assert sorted(await driver.keys()) == ["s1:a", "s2:a", "s3:a"]

    @pytest.mark.asyncio
    async def test_clear_empty_is_noop(self, driver: Driver):
        await driver.clear()
        await driver.clear("nothing:")
        assert await driver.keys() == []

    # ━━━ Isolation ━━━

    @pytest.mark.asyncio
    async def test_bases_do_not_see_each_other(self, driver: Driver, other: Driver):
        await driver.set("s1:a", "mine")
        await other.set("s1:a", "theirs")
        await other.set("only:other", 1)

        assert await driver.get("s1:a") == "mine"
        assert await other.get("s1:a") == "theirs"
        assert await driver.keys() == ["s1:a"]
        assert sorted(await other.keys()) == ["only:other", "s1:a"]
        assert await driver.has("only:other") is False

    @pytest.mark.asyncio
    async def test_clear_keeps_other_base(self, driver: Driver, other: Driver):
        await driver.set("s1:a", "mine")
        await other.set("s1:a", "theirs")

        await driver.clear()

        assert await driver.keys() == []
        assert await other.get("s1:a") == "theirs"
        assert sorted(await self.physical_keys()) == [f"{OTHER_BASE}s1:a"]

    # ━━━ Lifecycle ━━━

    @pytest.mark.asyncio
    async def test_dispose_twice(self, driver: Driver):
        await driver.dispose()
        await driver.dispose()
        assert driver.state is DriverState.DISPOSED

    @pytest.mark.asyncio
    async def test_use_after_dispose(self, driver: Driver):
        await driver.dispose()
        with pytest.raises(NotConnectedError):
            await driver.get("s1:a")
        with pytest.raises(NotConnectedError):
            await driver.keys()

    @pytest.mark.asyncio
    async def test_dispose_leaves_other_instances_working(self, driver: Driver, other: Driver):
        await other.set("s1:a", "theirs")
        await driver.dispose()
        assert await other.get("s1:a") == "theirs"

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with await self.create_driver(BASE) as scoped:
            await scoped.set("s1:a", "test_data")
            assert scoped.state is DriverState.CONNECTED
        assert scoped.state is DriverState.DISPOSED
