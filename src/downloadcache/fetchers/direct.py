from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

import aiohttp

from ..errors import FetchError
from ..streams import ByteStream
from ..util.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, create_aiohttp_session
from .base import DEFAULT_CHUNK_SIZE, SUCCESS_STATUS, declared_length, describe_error

LOGGER = logging.getLogger(__name__)
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def _closer(response: aiohttp.ClientResponse) -> Callable[[], Awaitable[None]]:
    # Also runs when the body generator never started. A no-op after release().
    async def close() -> None:
        response.close()

    return close


class AiohttpFetcher:
    """Direct HTTP(S) GET over an aiohttp client session.

    The session is created lazily on first use so the fetcher itself can be
    built outside a running event loop.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.user_agent = user_agent
        self.timeout = timeout
        self.chunk_size = chunk_size

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or (self._owns_session and self._session.closed):
            self._session = create_aiohttp_session(self.user_agent, self.timeout)
        return self._session

    async def fetch(self, identifier: str) -> ByteStream:
        session = self._get_session()
        try:
            response = await session.get(identifier)
        except TRANSPORT_ERRORS as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        if response.status != SUCCESS_STATUS:
            response.release()
            raise FetchError(identifier, status=response.status)
        length = declared_length(response.headers)
        LOGGER.debug("GET %s -> %s (length=%s)", identifier, response.status, length)
        return ByteStream(self._iter_body(identifier, response), length, on_close=_closer(response))

    async def _iter_body(self, identifier: str, response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
        completed = False
        try:
            async for chunk in response.content.iter_chunked(self.chunk_size):
                yield chunk
            completed = True
        except TRANSPORT_ERRORS as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        finally:
            if completed:
                response.release()
            else:
                response.close()

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
