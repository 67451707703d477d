from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Optional

import requests

from ..errors import FetchError
from ..streams import ByteStream
from ..util.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, create_session
from .base import DEFAULT_CHUNK_SIZE, SUCCESS_STATUS, declared_length, describe_error

LOGGER = logging.getLogger(__name__)


class _BodyReader:
    """Reads a streamed ``requests`` body on one dedicated thread.

    The final close is queued on the same thread, so it waits for a read that
    is still in flight instead of closing the socket underneath it.
    """

    def __init__(self, response: requests.Response, chunk_size: int) -> None:
        self._response = response
        self._chunks = response.iter_content(chunk_size=chunk_size)
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="download-cache-body")
        self._closed = False

    async def read(self) -> Optional[bytes]:
        return await asyncio.get_running_loop().run_in_executor(self._worker, next, self._chunks, None)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.get_running_loop().run_in_executor(self._worker, self._response.close)
        finally:
            self._worker.shutdown(wait=False)


class RequestsFetcher:
    """GET through a ``requests.Session``.

    Useful when redirects, auth or proxy configuration are already set up on
    a session. Blocking calls run off the event loop so it keeps serving
    other streams.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._owns_session = session is None
        self.session = session or create_session(user_agent, timeout=timeout)
        self.timeout = timeout
        self.chunk_size = chunk_size

    async def fetch(self, identifier: str) -> ByteStream:
        try:
            response = await asyncio.to_thread(self.session.get, identifier, stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        if response.status_code != SUCCESS_STATUS:
            response.close()
            raise FetchError(identifier, status=response.status_code)
        length = declared_length(response.headers)
        LOGGER.debug("GET %s -> %s (length=%s)", identifier, response.status_code, length)
        reader = _BodyReader(response, self.chunk_size)
        return ByteStream(self._iter_body(identifier, reader), length, on_close=reader.close)

    async def _iter_body(self, identifier: str, reader: _BodyReader) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await reader.read()
                if chunk is None:
                    return
                if chunk:
                    yield chunk
        except requests.RequestException as exc:
            raise FetchError(identifier, reason=describe_error(exc)) from exc
        finally:
            await reader.close()

    async def aclose(self) -> None:
        if self._owns_session:
            self.session.close()
