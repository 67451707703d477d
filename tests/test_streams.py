import asyncio

import pytest

from conftest import chunked
from downloadcache.errors import FetchError, StreamCancelledError
from downloadcache.streams import ByteStream, StreamTee

PAYLOAD = b"hello world!"


@pytest.mark.asyncio
async def test_byte_stream_read_and_close():
    stream = ByteStream(chunked(PAYLOAD), len(PAYLOAD))
    async with stream:
        assert await stream.read() == PAYLOAD
    assert stream.closed
    assert await stream.read() == b""


@pytest.mark.asyncio
async def test_tee_delivers_same_bytes_to_both_branches():
    first, second = StreamTee(ByteStream(chunked(PAYLOAD), 12)).branches
    assert first.content_length == second.content_length == 12
    left, right = await asyncio.gather(first.read(), second.read())
    assert left == right == PAYLOAD


@pytest.mark.asyncio
async def test_tee_branches_advance_independently():
    first, second = StreamTee(ByteStream(chunked(PAYLOAD), None)).branches
    assert await first.read() == PAYLOAD
    assert await second.read() == PAYLOAD


@pytest.mark.asyncio
async def test_tee_forwards_upstream_error_to_every_branch():
    failure = FetchError("a", reason="reset")
    first, second = StreamTee(ByteStream(chunked(PAYLOAD, fail=failure), 20)).branches
    with pytest.raises(FetchError):
        await first.read()
    with pytest.raises(FetchError):
        await second.read()


@pytest.mark.asyncio
async def test_closing_secondary_branch_leaves_primary_intact():
    source = ByteStream(chunked(PAYLOAD), 12)
    first, second = StreamTee(source).branches
    await second.aclose()
    assert await first.read() == PAYLOAD
    await asyncio.sleep(0.01)
    assert source.closed


@pytest.mark.asyncio
async def test_closing_primary_branch_cancels_the_others():
    gate = asyncio.Event()

    async def gated():
        yield b"first"
        await gate.wait()
        yield b"never"

    source = ByteStream(gated(), None)
    first, second = StreamTee(source).branches
    assert await first.__anext__() == b"first"
    await first.aclose()
    with pytest.raises(StreamCancelledError):
        await second.read()
    await asyncio.sleep(0.01)
    assert source.closed


@pytest.mark.asyncio
async def test_bounded_buffer_delivers_everything():
    payload = bytes(range(200))
    first, second = StreamTee(ByteStream(chunked(payload, size=7), None), max_buffered_chunks=1).branches
    left, right = await asyncio.gather(first.read(), second.read())
    assert left == right == payload


@pytest.mark.asyncio
async def test_bounded_buffer_unblocks_when_lagging_branch_detaches():
    payload = bytes(range(40))
    first, second = StreamTee(ByteStream(chunked(payload, size=4), None), max_buffered_chunks=1).branches
    head = await first.__anext__()
    await second.aclose()
    rest = await asyncio.wait_for(first.read(), timeout=1)
    assert head + rest == payload


def test_tee_requires_a_branch():
    with pytest.raises(ValueError):
        StreamTee(ByteStream(chunked(PAYLOAD)), copies=0)


@pytest.mark.asyncio
async def test_closing_primary_before_any_read_releases_source():
    released = asyncio.Event()

    async def release():
        released.set()

    source = ByteStream(chunked(PAYLOAD), None, on_close=release)
    first, second = StreamTee(source).branches
    await first.aclose()
    with pytest.raises(StreamCancelledError):
        await second.read()
    await asyncio.wait_for(released.wait(), timeout=1)
    assert source.closed
