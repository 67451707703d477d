from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable, Union

from downloadcache.errors import FetchError
from downloadcache.streams import ByteStream

Response = Union[bytes, Exception, Callable[[], ByteStream]]


async def chunked(payload: bytes, size: int = 4, fail: Exception | None = None) -> AsyncIterator[bytes]:
    for start in range(0, len(payload), size):
        yield payload[start : start + size]
        await asyncio.sleep(0)
    if fail is not None:
        raise fail


class StubFetcher:
    """In-memory origin: identifier -> bytes, an exception to raise, or a stream factory."""

    def __init__(self, responses: dict[str, Response], declare_length: bool = True) -> None:
        self.responses = responses
        self.declare_length = declare_length
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, identifier: str) -> ByteStream:
        self.calls.append(identifier)
        response = self.responses[identifier]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        length = len(response) if self.declare_length else None
        return ByteStream(chunked(response), length)

    async def aclose(self) -> None:
        self.closed = True


def truncated_stream(identifier: str, payload: bytes, declared: int) -> Callable[[], ByteStream]:
    def factory() -> ByteStream:
        failure = FetchError(identifier, reason="connection reset")
        return ByteStream(chunked(payload, fail=failure), declared)

    return factory


def cache_entries(root: Path) -> list[str]:
    return sorted(p.name for p in root.iterdir() if p.is_file())


def pending_entries(root: Path) -> list[str]:
    pending = root / "pending"
    return sorted(p.name for p in pending.iterdir()) if pending.exists() else []
