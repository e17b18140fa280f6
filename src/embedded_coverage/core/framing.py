"""Split a raw debug-transport byte stream into frame candidates.

Frames are COBS-encoded and terminated by a single ``0x00`` delimiter, the
framing defmt uses over RTT. COBS guarantees the delimiter never occurs inside
an encoded frame, so the next ``0x00`` is always a plausible frame boundary.

Resynchronization rule:

- a frame whose COBS code bytes point past the frame end is dropped,
- a buffer that grows beyond ``max_frame_len`` without a delimiter is dropped
  together with everything up to and including the next delimiter,
- bytes left over when the stream ends are dropped as truncated.

Each dropped range is reported exactly once as a :class:`FrameLoss` so that
consumers can record a gap. Consecutive delimiters are idle padding.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator

from .models import FrameCandidate, FrameLoss

DELIMITER = 0x00

LOSS_BAD_ENCODING = "bad-encoding"
LOSS_OVERSIZED = "oversized"
LOSS_TRUNCATED = "truncated"


class _CobsError(ValueError):
    pass


def cobs_decode(data: bytes) -> bytes:
    """Decode one COBS block sequence (without its trailing delimiter)."""
    out = bytearray()
    i = 0
    n = len(data)
    while i < n:
        code = data[i]
        if code == DELIMITER:
            raise _CobsError("delimiter inside frame")
        end = i + code
        if end > n:
            raise _CobsError(f"code byte {code} at {i} overruns frame of {n} bytes")
        out += data[i + 1 : end]
        i = end
        if code != 0xFF and i < n:
            out.append(DELIMITER)
    return bytes(out)


def cobs_encode(data: bytes) -> bytes:
    """Encode ``data`` with COBS and append the frame delimiter."""
    out = bytearray()
    block = bytearray()
    for b in data:
        if b == DELIMITER:
            out.append(len(block) + 1)
            out += block
            block.clear()
            continue
        block.append(b)
        if len(block) == 0xFE:
            out.append(0xFF)
            out += block
            block.clear()
    out.append(len(block) + 1)
    out += block
    out.append(DELIMITER)
    return bytes(out)


class FrameReader:
    """Incremental frame splitter. Never re-emits a consumed frame."""

    def __init__(self, *, max_frame_len: int = 4096) -> None:
        if max_frame_len < 1:
            raise ValueError("max_frame_len must be >= 1")
        self.max_frame_len = max_frame_len
        self._buf = bytearray()
        self._offset = 0  # stream offset of _buf[0]
        self._discard_start: int | None = None
        self._discarded = 0

    def feed(self, data: bytes) -> list[FrameCandidate | FrameLoss]:
        """Consume ``data`` and return the frames it completed."""
        out: list[FrameCandidate | FrameLoss] = []
        self._buf += data

        while True:
            idx = self._buf.find(DELIMITER)
            if idx < 0:
                self._check_overflow()
                break

            start = self._offset
            chunk = bytes(self._buf[:idx])
            del self._buf[: idx + 1]
            self._offset += idx + 1

            if self._discard_start is not None:
                self._discarded += idx + 1
                out.append(FrameLoss(self._discard_start, self._discarded, LOSS_OVERSIZED))
                self._discard_start = None
                self._discarded = 0
                continue

            if not chunk:
                continue

            if len(chunk) > self.max_frame_len:
                out.append(FrameLoss(start, idx + 1, LOSS_OVERSIZED))
                continue

            try:
                payload = cobs_decode(chunk)
            except _CobsError:
                out.append(FrameLoss(start, idx + 1, LOSS_BAD_ENCODING))
                continue

            out.append(FrameCandidate(offset=start, payload=payload))

        return out

    def finish(self) -> list[FrameCandidate | FrameLoss]:
        """Flush state at end of stream."""
        out: list[FrameCandidate | FrameLoss] = []
        if self._discard_start is not None:
            self._discarded += len(self._buf)
            out.append(FrameLoss(self._discard_start, self._discarded, LOSS_OVERSIZED))
        elif self._buf:
            out.append(FrameLoss(self._offset, len(self._buf), LOSS_TRUNCATED))

        self._offset += len(self._buf)
        self._buf.clear()
        self._discard_start = None
        self._discarded = 0
        return out

    def _check_overflow(self) -> None:
        if self._discard_start is not None:
            self._discarded += len(self._buf)
        elif len(self._buf) > self.max_frame_len:
            self._discard_start = self._offset
            self._discarded = len(self._buf)
        else:
            return
        self._offset += len(self._buf)
        self._buf.clear()


async def _read_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await anext(chunks)
    except StopAsyncIteration:
        return None


async def _next_chunk(chunks: AsyncIterator[bytes], stop: asyncio.Event | None) -> bytes | None:
    """Next chunk, or None once the source ends or ``stop`` is set."""
    if stop is None:
        return await _read_chunk(chunks)
    if stop.is_set():
        return None

    read = asyncio.create_task(_read_chunk(chunks))
    stopped = asyncio.create_task(stop.wait())
    try:
        await asyncio.wait({read, stopped}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # A finished read keeps its result; cancel() is a no-op then.
        read.cancel()
        stopped.cancel()
        await asyncio.gather(read, stopped, return_exceptions=True)

    if read.cancelled():
        return None
    return read.result()


async def iter_frames(
    source: AsyncIterable[bytes],
    *,
    stop: asyncio.Event | None = None,
    max_frame_len: int = 4096,
) -> AsyncIterator[FrameCandidate | FrameLoss]:
    """Yield frame candidates and loss markers lazily from ``source``.

    Ends when the source is exhausted or ``stop`` is set. A pending read is
    cancelled when ``stop`` fires, so an idle source cannot hold the run
    open. Restartable only by calling again with a fresh source.
    """
    reader = FrameReader(max_frame_len=max_frame_len)
    chunks = aiter(source)
    try:
        while True:
            chunk = await _next_chunk(chunks, stop)
            if chunk is None:
                break
            for item in reader.feed(chunk):
                yield item
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    for item in reader.finish():
        yield item
