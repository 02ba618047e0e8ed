"""Tests for the SQLite driver."""

import time
from pathlib import Path

import aiosqlite
import pytest
from polykv.core.config import DriverConfig
from polykv.core.types import Tag
from polykv.drivers.sqlite import SQLiteDriver
from polykv.testing import DriverConformance


class TestSQLiteDriver(DriverConformance):
    @pytest.fixture(autouse=True)
    def _database(self, tmp_path: Path):
        self.db_path = tmp_path / "test.db"

    async def create_driver(self, base):
        return SQLiteDriver(DriverConfig(base=base, url=f"sqlite://{self.db_path}"))

    async def physical_keys(self):
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT key FROM kv") as cursor:
                return [row[0] for row in await cursor.fetchall()]


# ━━━ SQLite-specific behavior ━━━


@pytest.mark.asyncio
async def test_sqlite_creates_directory(tmp_path: Path):
    """SQLite driver creates parent directories."""
    db_path = tmp_path / "deep" / "nested" / "dir" / "test.db"
    driver = SQLiteDriver(DriverConfig(url=f"sqlite://{db_path}"))
    await driver.set("test", "value")
    assert await driver.get("test") == "value"
    assert db_path.exists()
    await driver.dispose()


@pytest.mark.asyncio
async def test_sqlite_persistence(tmp_path: Path):
    """Data persists across connections."""
    db_path = tmp_path / "persist.db"

    # Write
    driver1 = SQLiteDriver(DriverConfig(base="test:", url=f"sqlite://{db_path}"))
    await driver1.set("key", {"persisted": True})
    await driver1.set("blob", b"\x00\xff")
    await driver1.dispose()

    # Read with new connection
    driver2 = SQLiteDriver(DriverConfig(base="test:", url=f"sqlite://{db_path}"))
    assert await driver2.get("key") == {"persisted": True}
    assert await driver2.get("blob") == b"\x00\xff"
    await driver2.dispose()


@pytest.mark.asyncio
async def test_sqlite_path_option_overrides_url(tmp_path: Path):
    db_path = tmp_path / "option.db"
    driver = SQLiteDriver(DriverConfig(url="sqlite://ignored.db", options={"path": str(db_path)}))
    assert driver.db_path == db_path
    await driver.dispose()


@pytest.mark.asyncio
async def test_sqlite_stores_raw_bytes_and_tag(tmp_path: Path):
    db_path = tmp_path / "raw.db"
    driver = SQLiteDriver(DriverConfig(base="test:", url=f"sqlite://{db_path}"))
    await driver.set("data:raw.bin", b"\x00\x01\x02")
    await driver.dispose()

    async with aiosqlite.connect(db_path) as db:
        async with db.execute("SELECT value, tag FROM kv WHERE key = ?", ("test:data:raw.bin",)) as cursor:
            value, tag = await cursor.fetchone()
    assert value == b"\x00\x01\x02"
    assert tag == Tag.RAW.value


@pytest.mark.asyncio
async def test_sqlite_like_wildcards_match_literally(tmp_path: Path):
    driver = SQLiteDriver(DriverConfig(base="test:", url=f"sqlite://{tmp_path / 'like.db'}"))
    await driver.set("100%:a", 1)
    await driver.set("100x:a", 2)
    await driver.set("a_b", 3)
    await driver.set("axb", 4)

    assert await driver.keys("100%") == ["100%:a"]
    assert await driver.keys("a_") == ["a_b"]

    await driver.clear("100%")
    assert sorted(await driver.keys()) == ["100x:a", "a_b", "axb"]
    await driver.dispose()


@pytest.mark.asyncio
async def test_sqlite_ttl(tmp_path: Path, monkeypatch):
    driver = SQLiteDriver(DriverConfig(base="test:", url=f"sqlite://{tmp_path / 'ttl.db'}"))
    await driver.set("session:1", "short", ttl=10)
    await driver.set("session:2", "forever")

    meta = await driver.meta("session:1")
    assert 0 < meta.ttl <= 10
    assert meta.tag is Tag.JSON

    now = time.time()
    monkeypatch.setattr(time, "time", lambda: now + 11)

    assert await driver.has("session:1") is False
    assert await driver.get("session:1") is None
    assert await driver.keys("session:") == ["session:2"]
    assert await driver.purge_expired() == 1
    await driver.dispose()


@pytest.mark.asyncio
async def test_sqlite_overwrite_clears_ttl(tmp_path: Path):
    driver = SQLiteDriver(DriverConfig(url=f"sqlite://{tmp_path / 'ttl.db'}"))
    await driver.set("key", "short", ttl=10)
    await driver.set("key", "forever")
    meta = await driver.meta("key")
    assert meta.ttl is None
    await driver.dispose()
