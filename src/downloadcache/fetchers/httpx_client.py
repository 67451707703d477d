from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from ..errors import FetchError
from ..streams import ByteStream
from ..util.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, create_httpx_client
from .base import DEFAULT_CHUNK_SIZE, SUCCESS_STATUS, declared_length, describe_error

LOGGER = logging.getLogger(__name__)
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class HttpxFetcher:
    """GET through an ``httpx.AsyncClient`` using a streamed response."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.user_agent = user_agent
        self.timeout = timeout
        self.chunk_size = chunk_size

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or (self._owns_client and self._client.is_closed):
            self._client = create_httpx_client(self.user_agent, self.timeout)
        return self._client

    async def fetch(self, identifier: str) -> ByteStream:
        client = self._get_client()
        try:
            request = client.build_request("GET", identifier)
            response = await client.send(request, stream=True)
        except TRANSPORT_ERRORS as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        if response.status_code != SUCCESS_STATUS:
            await response.aclose()
            raise FetchError(identifier, status=response.status_code)
        length = declared_length(response.headers)
        LOGGER.debug("GET %s -> %s (length=%s)", identifier, response.status_code, length)
        return ByteStream(self._iter_body(identifier, response), length, on_close=response.aclose)

    async def _iter_body(self, identifier: str, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes(self.chunk_size):
                yield chunk
        except httpx.HTTPError as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
