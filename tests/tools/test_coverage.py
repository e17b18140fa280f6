from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from embedded_coverage.core.errors import DuplicateRunError, UnsupportedFormatError
from embedded_coverage.core.schema import load_aggregate
from embedded_coverage.tools.coverage import (
    capture_coverage_impl,
    capture_rtt_coverage_impl,
    collect_coverage_impl,
    merge_coverage_impl,
)


@pytest.mark.asyncio
async def test_capture_coverage_impl_summarizes_and_writes(
    tmp_path: Path, write_capture, write_symbols, passing_run
) -> None:
    meta = tmp_path / "meta.json"
    meta.write_text('{"board": "nrf52840"}', encoding="utf-8")

    out = await capture_coverage_impl(
        capture_path=str(write_capture(tmp_path / "capture.bin", passing_run)),
        symbols_path=str(write_symbols(tmp_path / "symbols.json")),
        run_id="run-a",
        external_path=str(meta),
        external_format="json",
        output_dir=str(tmp_path / "runs"),
    )

    assert out["run_id"] == "run-a"
    assert out["summary"] == {"passed": 1, "failed": 0, "ignored": 0}
    assert out["path"] == str(tmp_path / "runs" / "run-a.coverage.json")
    assert out["document"]["outcomes"][0]["status"] == "passed"
    assert out["document"]["external_meta"]["content"] == {"board": "nrf52840"}
    json.dumps(out)


@pytest.mark.asyncio
async def test_capture_coverage_impl_requires_external_pair(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="together"):
        await capture_coverage_impl(
            capture_path=str(tmp_path / "c.bin"),
            symbols_path=str(tmp_path / "s.json"),
            external_path=str(tmp_path / "cov.xml"),
        )


@pytest.mark.asyncio
async def test_capture_coverage_impl_rejects_unknown_format(tmp_path: Path) -> None:
    with pytest.raises(UnsupportedFormatError):
        await capture_coverage_impl(
            capture_path=str(tmp_path / "c.bin"),
            symbols_path=str(tmp_path / "s.json"),
            external_path=str(tmp_path / "cov.gcda"),
            external_format="gcov",
        )


@pytest.mark.asyncio
async def test_merge_and_collect_impls(
    tmp_path: Path, write_capture, write_symbols, passing_run
) -> None:
    capture = str(write_capture(tmp_path / "capture.bin", passing_run))
    symbols = str(write_symbols(tmp_path / "symbols.json"))
    runs = tmp_path / "runs"
    paths = []
    for run_id in ("board-a", "board-b"):
        out = await capture_coverage_impl(
            capture_path=capture, symbols_path=symbols, run_id=run_id, output_dir=str(runs)
        )
        paths.append(out["path"])

    merged_path = tmp_path / "merged.json"
    merged = await merge_coverage_impl(document_paths=paths, output_path=str(merged_path))
    assert merged["runs"] == ["board-a", "board-b"]
    assert load_aggregate(merged_path.read_text(encoding="utf-8")).runs[1].run_id == "board-b"

    collected = await collect_coverage_impl(
        index_path=str(runs / "coverages.txt"), output_path=str(tmp_path / "coverage.json")
    )
    assert collected == {
        "collected": True,
        "runs": ["board-a", "board-b"],
        "path": str(tmp_path / "coverage.json"),
    }

    again = await collect_coverage_impl(
        index_path=str(runs / "coverages.txt"), output_path=str(tmp_path / "coverage.json")
    )
    assert again["collected"] is False


@pytest.mark.asyncio
async def test_merge_coverage_impl_rejects_duplicates(
    tmp_path: Path, write_capture, write_symbols, passing_run
) -> None:
    out = await capture_coverage_impl(
        capture_path=str(write_capture(tmp_path / "capture.bin", passing_run)),
        symbols_path=str(write_symbols(tmp_path / "symbols.json")),
        run_id="run-a",
        output_dir=str(tmp_path),
    )
    output = tmp_path / "merged.json"

    with pytest.raises(DuplicateRunError):
        await merge_coverage_impl(
            document_paths=[out["path"], out["path"]], output_path=str(output)
        )
    assert not output.exists()


@pytest.mark.asyncio
async def test_merge_coverage_impl_requires_documents() -> None:
    with pytest.raises(ValueError):
        await merge_coverage_impl(document_paths=[])


@pytest.mark.asyncio
async def test_capture_rtt_coverage_impl_reads_live_channel(
    tmp_path: Path, write_symbols, encode_frames, passing_run
) -> None:
    data = encode_frames(passing_run)

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.write(data)
        await writer.drain()
        await reader.read()
        writer.close()
        await writer.wait_closed()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        out = await capture_rtt_coverage_impl(
            symbols_path=str(write_symbols(tmp_path / "symbols.json")),
            timeout_s=0.3,
            port=port,
            run_id="rtt",
        )

    assert out["run_id"] == "rtt"
    assert out["summary"] == {"passed": 1, "failed": 0, "ignored": 0}
    assert out["expected_tests"] is None
    assert out["path"] is None
    json.dumps(out)


@pytest.mark.asyncio
async def test_capture_rtt_coverage_impl_rejects_bad_timeout(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="timeout_s"):
        await capture_rtt_coverage_impl(symbols_path=str(tmp_path / "s.json"), timeout_s=0)
