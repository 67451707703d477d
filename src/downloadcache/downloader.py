"""Cache-population protocol: serve from disk, or fetch from origin and stage a copy."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .config import CacheSettings
from .errors import EntryNotFound
from .fetchers.base import DEFAULT_CHUNK_SIZE, SourceFetcher, create_fetcher
from .keys import DEFAULT_HASH_ALGORITHM, derive_key
from .models import DownloadSummary, StagingEntry
from .sink import write_stream_to_file
from .storage.staging import DEFAULT_PENDING_DIRNAME, StagingArea
from .storage.store import CacheStore
from .streams import ByteStream, StreamTee

LOGGER = logging.getLogger(__name__)


class DownloadCache:
    """Content-keyed download cache.

    ``fetch`` returns a ``ByteStream``. On a hit it reads the stored entry; on a
    miss the origin stream is teed so the caller can consume it while a
    background task writes the same bytes to a staging file and commits it.
    Concurrent misses for one identifier each stage their own copy and the
    last commit wins; there is no per-key locking.
    """

    def __init__(
        self,
        cache_dir: Path,
        fetcher: Optional[SourceFetcher] = None,
        *,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
        pending_dirname: str = DEFAULT_PENDING_DIRNAME,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_buffered_chunks: int = 0,
        fsync: bool = True,
    ) -> None:
        self.store = CacheStore(Path(cache_dir).expanduser(), chunk_size=chunk_size)
        self.staging = StagingArea(self.store, pending_dirname, fsync=fsync)
        self.fetcher: SourceFetcher = fetcher if fetcher is not None else create_fetcher("aiohttp", chunk_size=chunk_size)
        self.hash_algorithm = hash_algorithm
        self.max_buffered_chunks = max_buffered_chunks
        self._populating: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: CacheSettings, fetcher: Optional[SourceFetcher] = None) -> DownloadCache:
        if fetcher is None:
            fetcher = create_fetcher(
                settings.fetcher,
                user_agent=settings.user_agent,
                timeout=settings.timeout,
                chunk_size=settings.chunk_size,
            )
        return cls(
            settings.cache_dir,
            fetcher,
            hash_algorithm=settings.hash_algorithm,
            pending_dirname=settings.pending_dirname,
            chunk_size=settings.chunk_size,
            max_buffered_chunks=settings.max_buffered_chunks,
            fsync=settings.fsync,
        )

    @property
    def root(self) -> Path:
        return self.store.root

    def key_for(self, identifier: str) -> str:
        return derive_key(identifier, self.hash_algorithm)

    async def fetch(self, identifier: str) -> ByteStream:
        await self.staging.ensure_ready()
        key = self.key_for(identifier)
        try:
            cached = await self.store.open_read(key)
        except EntryNotFound:
            LOGGER.debug("Cache miss for %s (%s)", identifier, key)
        else:
            LOGGER.debug("Cache hit for %s (%s, %s bytes)", identifier, key, cached.content_length)
            return cached

        source = await self.fetcher.fetch(identifier)
        entry = self.staging.create_entry()
        caller, writer = StreamTee(source, copies=2, max_buffered_chunks=self.max_buffered_chunks).branches
        task = asyncio.create_task(self._populate(identifier, key, entry, writer))
        self._populating.add(task)
        task.add_done_callback(self._populating.discard)
        return caller

    async def _populate(self, identifier: str, key: str, entry: StagingEntry, stream: ByteStream) -> None:
        try:
            size = await self.staging.write(entry, stream)
            await self.staging.commit(entry, key)
        except asyncio.CancelledError:
            await self.staging.discard(entry)
            raise
        except Exception as exc:
            LOGGER.warning(
                "Cache population failed for %s (key=%s, staging=%s): %s",
                identifier,
                key,
                entry.name,
                exc,
            )
            await self.staging.discard(entry)
        else:
            LOGGER.info("Cached %s as %s (%d bytes)", identifier, key, size)
        finally:
            await stream.aclose()

    async def clear(self, identifier: str) -> bool:
        key = self.key_for(identifier)
        removed = await self.store.delete(key)
        LOGGER.debug("Cleared %s (%s): %s", identifier, key, "removed" if removed else "absent")
        return removed

    async def fetch_to_file(self, identifier: str, destination: Path) -> DownloadSummary:
        stream = await self.fetch(identifier)
        written = await write_stream_to_file(stream, destination)
        return DownloadSummary(
            identifier=identifier,
            key=self.key_for(identifier),
            path=Path(destination),
            bytes_written=written,
            content_length=stream.content_length,
            from_cache=stream.from_cache,
        )

    async def join(self) -> None:
        """Wait for every in-flight cache population to commit or discard."""
        while self._populating:
            await asyncio.gather(*list(self._populating), return_exceptions=True)

    async def aclose(self) -> None:
        try:
            await self.join()
        finally:
            await self.fetcher.aclose()

    async def __aenter__(self) -> DownloadCache:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
