"""Byte-stream sources for one debug session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles

from .config import DEFAULT_RTT_PORT

logger = logging.getLogger(__name__)


async def iter_file_chunks(path: str | Path, *, chunk_size: int = 1024) -> AsyncIterator[bytes]:
    """Yield a recorded capture file in chunks."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Capture file not found: {p}")
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    async with aiofiles.open(p, mode="rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def iter_tcp_chunks(
    host: str = "127.0.0.1",
    port: int = DEFAULT_RTT_PORT,
    *,
    stop: asyncio.Event | None = None,
    chunk_size: int = 1024,
    read_timeout: float = 2.0,
) -> AsyncIterator[bytes]:
    """Yield bytes from the debug server's RTT TCP channel.

    Read timeouts are not errors: the target may simply be idle. The stream
    ends on EOF or once ``stop`` is set.
    """
    reader, writer = await asyncio.open_connection(host, port)
    logger.debug("Connected to RTT channel at %s:%s", host, port)
    try:
        while stop is None or not stop.is_set():
            try:
                chunk = await asyncio.wait_for(reader.read(chunk_size), timeout=read_timeout)
            except TimeoutError:
                continue
            if not chunk:
                break
            yield chunk
    finally:
        writer.close()
        with contextlib.suppress(ConnectionError):
            await writer.wait_closed()
