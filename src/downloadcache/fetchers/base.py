from __future__ import annotations

from typing import Optional, Protocol

from ..streams import ByteStream
from ..util.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT

DEFAULT_CHUNK_SIZE = 64 * 1024
SUCCESS_STATUS = 200


class SourceFetcher(Protocol):
    async def fetch(self, identifier: str) -> ByteStream:  # pragma: no cover - structural contract
        ...

    async def aclose(self) -> None:  # pragma: no cover - structural contract
        ...


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def declared_length(headers) -> Optional[int]:
    """Content length as the caller will see it.

    Clients decode compressed bodies transparently, so a declared length only
    describes the delivered bytes when no content coding was applied.
    """
    encoding = headers.get("Content-Encoding")
    if encoding and encoding.strip().lower() != "identity":
        return None
    return parse_content_length(headers.get("Content-Length"))


def create_fetcher(
    name: str,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: float = DEFAULT_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> SourceFetcher:
    """Build one of the bundled HTTP fetch strategies by name."""
    if name == "aiohttp":
        from .direct import AiohttpFetcher

        return AiohttpFetcher(user_agent=user_agent, timeout=timeout, chunk_size=chunk_size)
    if name == "httpx":
        from .httpx_client import HttpxFetcher

        return HttpxFetcher(user_agent=user_agent, timeout=timeout, chunk_size=chunk_size)
    if name == "requests":
        from .requests_client import RequestsFetcher

        return RequestsFetcher(user_agent=user_agent, timeout=timeout, chunk_size=chunk_size)
    raise ValueError(f"Unknown fetcher {name!r}; expected one of aiohttp, httpx, requests")
