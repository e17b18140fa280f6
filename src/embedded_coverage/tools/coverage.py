"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiofiles

from embedded_coverage.core.collect import collect, read_document, write_run_document
from embedded_coverage.core.importers import resolve_format
from embedded_coverage.core.merge import merge_documents
from embedded_coverage.core.pipeline import ExternalArtifact, capture_file, capture_tcp
from embedded_coverage.core.schema import CoverageDocument, dump_document

MAX_DOCUMENTS = 1000


def _summary(outcomes: Sequence[Any]) -> dict[str, int]:
    """Count outcomes per status."""
    counts = {"passed": 0, "failed": 0, "ignored": 0}
    for o in outcomes:
        counts[o.status.value] += 1
    return counts


async def _load_external(
    external_path: str | None, external_format: str | None
) -> ExternalArtifact | None:
    if (external_path is None) != (external_format is None):
        raise ValueError("external_path and external_format must be given together.")
    if external_path is None or external_format is None:
        return None
    fmt = resolve_format(external_format)
    async with aiofiles.open(external_path, mode="rb") as f:
        artifact = await f.read()
    return ExternalArtifact(artifact=artifact, format_tag=fmt, origin=external_path)


async def _capture_result(doc: CoverageDocument, output_dir: str | None) -> dict[str, Any]:
    written = None
    if output_dir is not None:
        written = await write_run_document(doc, output_dir)

    return {
        "run_id": doc.run_id,
        "summary": _summary(doc.outcomes),
        "expected_tests": doc.expected_tests,
        "path": str(written) if written is not None else None,
        "document": doc.model_dump(mode="json"),
    }


async def capture_coverage_impl(
    *,
    capture_path: str,
    symbols_path: str,
    run_id: str | None = None,
    binary: str | None = None,
    external_path: str | None = None,
    external_format: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `capture_coverage` MCP tool.

    Notes
    -----
    - external_path and external_format must be given together.
    - An unsupported external_format is rejected up front; an external file
      that fails to parse is skipped and the run is recorded without it.
    """
    external = await _load_external(external_path, external_format)
    doc = await capture_file(
        capture_path,
        symbols_path,
        run_id=run_id,
        binary=binary,
        external=external,
    )
    return await _capture_result(doc, output_dir)


async def capture_rtt_coverage_impl(
    *,
    symbols_path: str,
    timeout_s: float,
    host: str | None = None,
    port: int | None = None,
    run_id: str | None = None,
    binary: str | None = None,
    external_path: str | None = None,
    external_format: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `capture_rtt_coverage` MCP tool.

    Reads the live RTT channel until the debug server closes it or
    `timeout_s` elapses; tests still running at that point are incomplete.
    """
    if timeout_s <= 0:
        raise ValueError("timeout_s must be > 0")

    external = await _load_external(external_path, external_format)
    doc = await capture_tcp(
        symbols_path,
        host=host,
        port=port,
        run_id=run_id,
        binary=binary,
        external=external,
        timeout_s=timeout_s,
    )
    return await _capture_result(doc, output_dir)


async def merge_coverage_impl(
    *,
    document_paths: Sequence[str],
    output_path: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `merge_coverage` MCP tool."""
    if not document_paths:
        raise ValueError("document_paths must not be empty")
    if len(document_paths) > MAX_DOCUMENTS:
        raise ValueError(f"At most {MAX_DOCUMENTS} documents can be merged at once.")

    docs = [await read_document(p) for p in document_paths]
    aggregate = merge_documents(docs)

    if output_path is not None:
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(out, mode="w", encoding="utf-8") as f:
            await f.write(dump_document(aggregate))

    return {
        "runs": [run.run_id for run in aggregate.runs],
        "path": output_path,
        "aggregate": aggregate.model_dump(mode="json"),
    }


async def collect_coverage_impl(*, index_path: str, output_path: str) -> dict[str, Any]:
    """Implementation for the `collect_coverage` MCP tool."""
    aggregate = await collect(index_path, output_path)
    if aggregate is None:
        return {"collected": False, "runs": [], "path": None}
    return {
        "collected": True,
        "runs": [run.run_id for run in aggregate.runs],
        "path": output_path,
    }
