"""Async byte streams and the tee that forks one stream into independent branches."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from .errors import StreamCancelledError

LOGGER = logging.getLogger(__name__)


class ByteStream:
    """Async iterator of byte chunks with an optional declared total length."""

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        content_length: Optional[int] = None,
        *,
        from_cache: bool = False,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self.content_length = content_length
        self.from_cache = from_cache
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> ByteStream:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        return await self._chunks.__anext__()

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()

    async def __aenter__(self) -> ByteStream:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class _Failure:
    __slots__ = ("exc",)

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


_EOF = object()


def _drop_buffered(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return


class StreamTee:
    """Fork ``source`` into ``copies`` branches fed by a single pump task.

    Branch 0 is the primary branch. Closing it before end-of-stream cancels the
    whole tee: the source is closed and every other live branch raises
    ``StreamCancelledError``. Closing any other branch only detaches it.
    ``max_buffered_chunks=0`` leaves per-branch buffers unbounded; a positive
    value makes the pump wait for the slowest live branch.
    """

    def __init__(self, source: ByteStream, copies: int = 2, max_buffered_chunks: int = 0) -> None:
        if copies < 1:
            raise ValueError("copies must be at least 1")
        self._source = source
        self._queues: list[asyncio.Queue] = [asyncio.Queue(maxsize=max_buffered_chunks) for _ in range(copies)]
        self._detached = [False] * copies
        self._finished = False
        self.branches: tuple[ByteStream, ...] = tuple(
            ByteStream(
                self._drain(index),
                source.content_length,
                from_cache=source.from_cache,
                on_close=functools.partial(self._release, index),
            )
            for index in range(copies)
        )
        self._closer: asyncio.Task | None = None
        self._pump_task = asyncio.get_running_loop().create_task(self._pump())
        self._pump_task.add_done_callback(self._on_pump_done)

    async def _pump(self) -> None:
        try:
            async for chunk in self._source:
                delivered = False
                for index, queue in enumerate(self._queues):
                    if not self._detached[index]:
                        await queue.put(chunk)
                        delivered = True
                if not delivered:
                    return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._finish(_Failure(exc))
        else:
            await self._finish(_EOF)
        finally:
            await self._close_source()

    async def _finish(self, marker: object) -> None:
        self._finished = True
        for index, queue in enumerate(self._queues):
            if not self._detached[index]:
                await queue.put(marker)

    def _on_pump_done(self, task: asyncio.Task) -> None:
        # A pump cancelled before its first step never reaches its finally block,
        # and closing an unstarted generator skips its finally too. The source's
        # on_close hook is what releases the underlying response or file then.
        if not self._source.closed:
            self._closer = asyncio.get_running_loop().create_task(self._close_source())

    async def _close_source(self) -> None:
        try:
            await self._source.aclose()
        except Exception:
            LOGGER.warning("Error closing tee source", exc_info=True)

    async def _drain(self, index: int) -> AsyncIterator[bytes]:
        queue = self._queues[index]
        while True:
            item = await queue.get()
            if item is _EOF:
                return
            if isinstance(item, _Failure):
                raise item.exc
            yield item

    async def _release(self, index: int) -> None:
        if self._detached[index]:
            return
        self._detached[index] = True
        _drop_buffered(self._queues[index])
        if self._finished:
            return
        if index == 0 or all(self._detached):
            self._abort(StreamCancelledError("Stream closed before end of data"))

    def _abort(self, exc: BaseException) -> None:
        self._finished = True
        self._pump_task.cancel()
        for index, queue in enumerate(self._queues):
            if not self._detached[index]:
                _drop_buffered(queue)
                queue.put_nowait(_Failure(exc))
