"""
Filesystem driver — one file per key.

Key segments become path components under the root directory:

    root=/var/kv, physical key "test:data:raw.bin" → /var/kv/test/data/raw.bin

Files hold the codec envelope (JSON text, or "base64:..." for raw bytes).
Writes go to a temporary sibling and are renamed into place, so readers
never see a half-written file.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from polykv import codec
from polykv.core.config import DriverConfig
from polykv.core.errors import ConfigError, InvalidKeyError
from polykv.core.types import Capabilities, KeyMeta, Stored, Tag
from polykv.drivers.base import Driver, url_path
from polykv.keys import SEPARATOR

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".polykv-tmp"

_FORBIDDEN_SEGMENTS = {".", ".."}
_FORBIDDEN_CHARS = ("/", "\\", "\x00")


class FilesystemDriver(Driver):
    """
    Filesystem key-value driver.

    Usage:
        driver = FilesystemDriver(DriverConfig(url="file:///tmp/kv", base="app:"))
        await driver.set("users:alex.json", {"age": 30})
        # → /tmp/kv/app/users/alex.json
    """

    name = "fs"
    capabilities = Capabilities(
        native_binary=False,
        native_listing=True,
        ttl=False,
        persistent=True,
        meta=True,
    )
    transport_errors = (OSError,)

    def __init__(self, config: DriverConfig | None = None, **overrides: Any) -> None:
        super().__init__(config, **overrides)
        root = self.config.options.get("root") or url_path(self.config.url)
        if not root:
            raise ConfigError("Filesystem driver needs a root directory")
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def _connect(self) -> None:
        await aiofiles.os.makedirs(self._root, exist_ok=True)

    async def _disconnect(self) -> None:
        # Nothing is held open between operations
        pass

    async def _read(self, physical: str) -> Stored | None:
        path = self._path(physical)
        try:
            async with aiofiles.open(path, mode="rb") as f:
                data = await f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        payload, tag = codec.unpack(data)
        return Stored(payload, tag)

    async def _exists(self, physical: str) -> bool:
        return await aiofiles.os.path.isfile(self._path(physical))

    async def _write(self, physical: str, payload: bytes, tag: Tag, ttl: int | None) -> None:
        path = self._path(physical)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)

        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex[:8]}{TMP_SUFFIX}")
        try:
            async with aiofiles.open(tmp_path, mode="wb") as f:
                await f.write(codec.pack(payload, tag))
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            try:
                await aiofiles.os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise

    async def _delete(self, physical: str) -> None:
        path = self._path(physical)
        # A directory here means "a" was asked for while only "a:b" is stored
        if not await aiofiles.os.path.isfile(path):
            return
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return
        await self._prune(path.parent)

    async def _list(self, physical_prefix: str) -> list[str]:
        # Start from the deepest directory the prefix pins down
        segments = physical_prefix.split(SEPARATOR)[:-1]
        start = self._path(SEPARATOR.join(segments), leaf=False) if segments else self._root
        if not await aiofiles.os.path.isdir(start):
            return []

        found: list[str] = []
        await self._walk(start, found)
        return sorted(k for k in found if k.startswith(physical_prefix))

    async def _clear(self, physical_prefix: str) -> None:
        for physical in await self._list(physical_prefix):
            await self._delete(physical)

    async def _stat(self, physical: str) -> KeyMeta | None:
        stored = await self._read(physical)
        if stored is None:
            return None
        stat = await aiofiles.os.stat(self._path(physical))
        return KeyMeta(
            key=physical,
            tag=stored.tag,
            size=len(stored.payload),
            mtime=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    # ━━━ Internal Helpers ━━━

    def _path(self, physical: str, leaf: bool = True) -> Path:
        segments = physical.split(SEPARATOR)
        for segment in segments:
            if not segment or segment in _FORBIDDEN_SEGMENTS or any(c in segment for c in _FORBIDDEN_CHARS):
                raise InvalidKeyError(
                    f"Key '{physical}' cannot be mapped to a file path", key=physical
                )
        # Leaf names with the temp suffix would be hidden from listing
        if leaf and segments[-1].endswith(TMP_SUFFIX):
            raise InvalidKeyError(
                f"Key '{physical}' must not end with '{TMP_SUFFIX}'", key=physical
            )
        return self._root.joinpath(*segments)

    def _key_for(self, path: Path) -> str:
        return SEPARATOR.join(path.relative_to(self._root).parts)

    async def _walk(self, directory: Path, found: list[str]) -> None:
        with await aiofiles.os.scandir(directory) as entries:
            children = list(entries)
        for entry in children:
            path = directory / entry.name
            if entry.is_dir(follow_symlinks=False):
                await self._walk(path, found)
            elif entry.is_file() and not entry.name.endswith(TMP_SUFFIX):
                found.append(self._key_for(path))

    async def _prune(self, directory: Path) -> None:
        """Remove now-empty directories up to (not including) the root."""
        while directory != self._root and self._root in directory.parents:
            try:
                await aiofiles.os.rmdir(directory)
            except OSError:
                # Not empty, or already gone
                return
            directory = directory.parent
