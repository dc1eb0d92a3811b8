"""Helpers for moving file contents around as async byte streams."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

CHUNK_SIZE = 64 * 1024


async def read_file_chunks(path: str | Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield the contents of a file in chunks without loading it whole."""
    f = await asyncio.to_thread(open, path, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(f.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        await asyncio.to_thread(f.close)


async def stream_to_bytes(stream: AsyncIterator[bytes]) -> bytes:
    """Collect a stream into memory. Only meant for small documents."""
    parts = []
    async for chunk in stream:
        parts.append(chunk)
    return b"".join(parts)
