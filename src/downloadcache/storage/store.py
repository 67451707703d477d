from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from ..errors import EntryNotFound, StoreError
from ..streams import ByteStream

DEFAULT_CHUNK_SIZE = 64 * 1024


class CacheStore:
    """Flat directory of complete cache entries, one file per key."""

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.root = Path(root)
        self.chunk_size = chunk_size

    def path_for(self, key: str) -> Path:
        return self.root / key

    def destination(self, key: str) -> Path:
        """Where a committed staging entry is renamed to."""
        return self.path_for(key)

    async def open_read(self, key: str) -> ByteStream:
        path = self.path_for(key)
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError as exc:
            raise EntryNotFound(key) from exc
        except OSError as exc:
            raise StoreError(f"Unable to open cache entry: {exc}", path) from exc
        try:
            # Size the descriptor we hold, not the path, so a concurrent replace cannot skew it.
            size = os.fstat(handle.fileno()).st_size
        except OSError as exc:
            await handle.close()
            raise StoreError(f"Unable to stat cache entry: {exc}", path) from exc
        return ByteStream(self._read_chunks(handle), size, from_cache=True, on_close=handle.close)

    async def _read_chunks(self, handle) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await handle.read(self.chunk_size)
                if not chunk:
                    return
                yield chunk
        finally:
            await handle.close()

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreError(f"Unable to delete cache entry: {exc}", path) from exc
        return True
