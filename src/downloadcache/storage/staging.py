"""Staging area for in-flight downloads.

Bytes land in ``<cache_dir>/pending/<uuid7>`` first and only become a cache
entry through ``commit``, a single ``os.replace`` onto the entry path. Readers
therefore never see a partially written entry. Files under ``pending`` are
never valid cache entries.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os
from uuid6 import uuid7

from ..errors import StoreError
from ..models import StagingEntry
from ..streams import ByteStream
from .store import CacheStore

LOGGER = logging.getLogger(__name__)
DEFAULT_PENDING_DIRNAME = "pending"


class StagingArea:
    def __init__(self, store: CacheStore, dirname: str = DEFAULT_PENDING_DIRNAME, fsync: bool = True) -> None:
        self.store = store
        self.root: Path = store.root / dirname
        self.fsync = fsync

    async def ensure_ready(self) -> None:
        """Create the staging directory (and the cache root). Safe to call concurrently."""
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Unable to create staging directory: {exc}", self.root) from exc

    def create_entry(self) -> StagingEntry:
        name = uuid7().hex
        return StagingEntry(name=name, path=self.root / name)

    async def write(self, entry: StagingEntry, stream: ByteStream) -> int:
        """Drain ``stream`` into the staging file, returning the byte count.

        The stream is closed on every path so a failed write detaches it from
        whatever is feeding it.
        """
        written = 0
        try:
            async with aiofiles.open(entry.path, "wb") as fh:
                async for chunk in stream:
                    await fh.write(chunk)
                    written += len(chunk)
                await fh.flush()
                if self.fsync:
                    await asyncio.to_thread(os.fsync, fh.fileno())
        finally:
            await stream.aclose()
        return written

    async def commit(self, entry: StagingEntry, key: str) -> Path:
        target = self.store.destination(key)
        try:
            await aiofiles.os.replace(entry.path, target)
        except OSError as exc:
            raise StoreError(f"Unable to commit staging entry {entry.name}: {exc}", target) from exc
        return target

    async def discard(self, entry: StagingEntry) -> None:
        try:
            await aiofiles.os.remove(entry.path)
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.warning("Unable to discard staging entry %s: %s", entry.path, exc)
