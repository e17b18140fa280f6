from __future__ import annotations

from pathlib import Path

import pytest

from embedded_coverage.core.collect import (
    INDEX_FILENAME,
    collect,
    document_filename,
    read_document,
    write_run_document,
)
from embedded_coverage.core.errors import DuplicateRunError
from embedded_coverage.core.models import TestStatus
from embedded_coverage.core.schema import CoverageDocument, OutcomeEntry, load_aggregate


def _doc(run_id: str, test: str = "t1") -> CoverageDocument:
    return CoverageDocument(
        run_id=run_id,
        outcomes=[OutcomeEntry(test_name=test, status=TestStatus.PASSED)],
    )


def test_document_filename_is_filesystem_safe() -> None:
    assert document_filename("board/a:1") == "board_a_1.coverage.json"


@pytest.mark.asyncio
async def test_write_run_document_registers_in_index(tmp_path: Path) -> None:
    path = await write_run_document(_doc("run-a"), tmp_path / "out")

    assert path == tmp_path / "out" / "run-a.coverage.json"
    assert await read_document(path) == _doc("run-a")
    index = (tmp_path / "out" / INDEX_FILENAME).read_text(encoding="utf-8")
    assert index.splitlines() == [str(path.resolve())]


@pytest.mark.asyncio
async def test_collect_merges_and_resets_index(tmp_path: Path) -> None:
    index = tmp_path / INDEX_FILENAME
    await write_run_document(_doc("run-a"), tmp_path, index_path=index)
    await write_run_document(_doc("run-b"), tmp_path, index_path=index)
    output = tmp_path / "report" / "coverage.json"

    aggregate = await collect(index, output)

    assert aggregate is not None
    assert [r.run_id for r in aggregate.runs] == ["run-a", "run-b"]
    assert load_aggregate(output.read_text(encoding="utf-8")) == aggregate
    assert not index.exists()
    assert await collect(index, output) is None


@pytest.mark.asyncio
async def test_collect_skips_missing_documents(tmp_path: Path) -> None:
    index = tmp_path / INDEX_FILENAME
    await write_run_document(_doc("run-a"), tmp_path, index_path=index)
    with index.open("a", encoding="utf-8") as f:
        f.write(f"{tmp_path / 'gone.coverage.json'}\n\n")

    aggregate = await collect(index, tmp_path / "coverage.json")

    assert aggregate is not None
    assert [r.run_id for r in aggregate.runs] == ["run-a"]


@pytest.mark.asyncio
async def test_collect_nothing_listed(tmp_path: Path) -> None:
    index = tmp_path / INDEX_FILENAME
    index.write_text("\n", encoding="utf-8")
    assert await collect(index, tmp_path / "coverage.json") is None


@pytest.mark.asyncio
async def test_collect_rejects_directory_output(tmp_path: Path) -> None:
    index = tmp_path / INDEX_FILENAME
    await write_run_document(_doc("run-a"), tmp_path, index_path=index)

    with pytest.raises(ValueError, match="directory"):
        await collect(index, tmp_path)
    assert index.exists()


@pytest.mark.asyncio
async def test_collect_merge_error_keeps_index(tmp_path: Path) -> None:
    index = tmp_path / INDEX_FILENAME
    await write_run_document(_doc("run-a"), tmp_path / "one", index_path=index)
    await write_run_document(_doc("run-a"), tmp_path / "two", index_path=index)
    output = tmp_path / "coverage.json"

    with pytest.raises(DuplicateRunError):
        await collect(index, output)
    assert index.exists()
    assert not output.exists()
