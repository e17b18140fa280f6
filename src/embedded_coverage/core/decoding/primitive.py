"""Wire-level frame primitives.

The pipeline only depends on the :class:`FramePrimitive` protocol. The
reference primitive implements the compact encoding emitted by the target
test harness (all integers little-endian)::

    u8   encoding version
    u8   level (bits 0-2) | has-timestamp flag (bit 7)
    u32  symbol index
    u64  target timestamp in microseconds   (only when flagged)
    u8   argument count
    ...  per argument: u16 length + UTF-8 bytes
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from ..errors import MalformedFrameError, VersionMismatchError

ENCODING_VERSION = 1

_HEADER = struct.Struct("<BBI")
_TIMESTAMP = struct.Struct("<Q")
_ARG_LEN = struct.Struct("<H")
_TIMESTAMP_FLAG = 0x80
_LEVEL_MASK = 0x07
_MAX_LEVEL = 4  # TRACE..ERROR


@dataclass(frozen=True, slots=True)
class RawFrame:
    """Frame contents before symbol lookup."""

    version: int
    index: int
    level: int
    timestamp_us: int | None
    args: tuple[str, ...]


class FramePrimitive(Protocol):
    """Decode primitive: payload bytes in, raw frame out."""

    def decode(self, payload: bytes) -> RawFrame:
        """Raise MalformedFrameError or VersionMismatchError on failure.

        VersionMismatchError is reserved for structurally valid frames.
        """
        ...


@dataclass(frozen=True, slots=True)
class ReferenceFramePrimitive:
    """Decoder for the harness encoding described in the module docstring."""

    version: int = ENCODING_VERSION

    def decode(self, payload: bytes) -> RawFrame:
        if not payload:
            raise MalformedFrameError("empty frame")
        if len(payload) < _HEADER.size + 1:
            raise MalformedFrameError(f"frame too short ({len(payload)} bytes)")

        version, flags, index = _HEADER.unpack_from(payload, 0)
        level = flags & _LEVEL_MASK
        if level > _MAX_LEVEL:
            raise MalformedFrameError(f"invalid level {level}")
        pos = _HEADER.size

        timestamp_us: int | None = None
        if flags & _TIMESTAMP_FLAG:
            if len(payload) < pos + _TIMESTAMP.size:
                raise MalformedFrameError("truncated timestamp")
            (timestamp_us,) = _TIMESTAMP.unpack_from(payload, pos)
            pos += _TIMESTAMP.size

        if pos >= len(payload):
            raise MalformedFrameError("missing argument count")
        argc = payload[pos]
        pos += 1

        args: list[str] = []
        for _ in range(argc):
            if len(payload) < pos + _ARG_LEN.size:
                raise MalformedFrameError("truncated argument length")
            (size,) = _ARG_LEN.unpack_from(payload, pos)
            pos += _ARG_LEN.size
            if len(payload) < pos + size:
                raise MalformedFrameError("truncated argument")
            try:
                args.append(payload[pos : pos + size].decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise MalformedFrameError("argument is not valid UTF-8") from exc
            pos += size

        if pos != len(payload):
            raise MalformedFrameError(f"{len(payload) - pos} trailing bytes")

        # Only a frame that parses completely can vouch for its version byte.
        if version != self.version:
            raise VersionMismatchError(found=version, expected=self.version)

        return RawFrame(
            version=version,
            index=index,
            level=level,
            timestamp_us=timestamp_us,
            args=tuple(args),
        )

    def encode(
        self,
        index: int,
        level: int,
        args: Sequence[str] = (),
        *,
        timestamp_us: int | None = None,
    ) -> bytes:
        """Build a payload (before COBS framing)."""
        flags = level & _LEVEL_MASK
        if timestamp_us is not None:
            flags |= _TIMESTAMP_FLAG
        out = bytearray(_HEADER.pack(self.version, flags, index))
        if timestamp_us is not None:
            out += _TIMESTAMP.pack(timestamp_us)
        out.append(len(args))
        for arg in args:
            raw = arg.encode("utf-8")
            out += _ARG_LEN.pack(len(raw))
            out += raw
        return bytes(out)
