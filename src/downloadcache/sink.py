from __future__ import annotations

import asyncio
import os
from pathlib import Path

import aiofiles
import aiofiles.os

from .streams import ByteStream


async def write_stream_to_file(stream: ByteStream, destination: Path) -> int:
    """Drain ``stream`` into ``destination`` and fsync it; returns the byte count.

    A stream error propagates and leaves whatever was written in place.
    """
    destination = Path(destination)
    written = 0
    try:
        await aiofiles.os.makedirs(destination.parent, exist_ok=True)
        async with aiofiles.open(destination, "wb") as fh:
            async for chunk in stream:
                await fh.write(chunk)
                written += len(chunk)
            await fh.flush()
            await asyncio.to_thread(os.fsync, fh.fileno())
    finally:
        await stream.aclose()
    return written
