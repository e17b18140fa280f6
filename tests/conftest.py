from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from embedded_coverage.core.decoding import ReferenceFramePrimitive
from embedded_coverage.core.framing import cobs_encode
from embedded_coverage.core.symbols import SymbolTable, parse_symbol_table

BINARY = "target/thumbv7em-none-eabihf/debug/sensor_tests"

# index -> (format, module)
SYMBOLS: dict[int, tuple[str, str]] = {
    0x01: ("test.start={=str}", "sensor_tests::tests::reads"),
    0x02: ("test.end={=str} result={=str}", "sensor_tests::tests::reads"),
    0x03: ("req.cover={=str}", "sensor_tests::tests::reads"),
    0x04: ("trace.root={=str}", "sensor_tests::tests"),
    0x05: ("sensor reading {=u16}", "sensor_tests::driver"),
    0x06: ("test.ignore={=str}", "sensor_tests::tests"),
    0x07: ("test.end={=str}", "sensor_tests::tests::reads"),
    0x08: ("{=str}", "sensor_tests::tests::__defmt_test_entry"),
}

# (index, args) or (index, args, timestamp_us)
Frame = tuple[Any, ...]


def _symbols_json() -> str:
    symbols = {
        f"{index:#x}": {
            "format": fmt,
            "file": "tests/sensor.rs",
            "line": 10 + index,
            "module": module,
        }
        for index, (fmt, module) in SYMBOLS.items()
    }
    return json.dumps({"version": 1, "binary": BINARY, "symbols": symbols})


def _encode_frames(frames: Sequence[Frame], *, level: int = 2, version: int = 1) -> bytes:
    primitive = ReferenceFramePrimitive(version=version)
    out = bytearray()
    for frame in frames:
        index, args = frame[0], frame[1]
        timestamp_us = frame[2] if len(frame) > 2 else None
        out += cobs_encode(primitive.encode(index, level, args, timestamp_us=timestamp_us))
    return bytes(out)


async def _chunked(data: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i : i + size]


@pytest.fixture
def encode_frames() -> Callable[..., bytes]:
    """COBS-framed capture for a list of (index, args[, timestamp_us]) tuples."""
    return _encode_frames


@pytest.fixture
def byte_source() -> Callable[..., AsyncIterator[bytes]]:
    """Async chunk source over a byte string (small chunks split frames)."""
    return _chunked


@pytest.fixture
def symbol_table() -> SymbolTable:
    return parse_symbol_table(_symbols_json())


@pytest.fixture
def write_capture() -> Callable[[Path, Sequence[Frame]], Path]:
    def _write(path: Path, frames: Sequence[Frame]) -> Path:
        path.write_bytes(_encode_frames(frames))
        return path

    return _write


@pytest.fixture
def write_symbols() -> Callable[[Path], Path]:
    def _write(path: Path) -> Path:
        path.write_text(_symbols_json(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def passing_run() -> list[Frame]:
    """One passing test that covers two requirements, with target timestamps."""
    return [
        (0x05, ["17"], 500),
        (0x01, ["reads_sensor"], 1_000),
        (0x03, ["REQ-1"], 1_200),
        (0x05, ["42"], 1_300),
        (0x03, ["REQ-2"], 1_400),
        (0x02, ["reads_sensor", "passed"], 3_500),
    ]
