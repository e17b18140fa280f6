"""Persist per-run documents and collect them into one aggregate.

Every written run document is appended to an index file (one path per line).
``collect`` merges everything listed there and removes the index afterwards,
so the next collect only picks up runs recorded since.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from .merge import merge_documents
from .schema import AggregateDocument, CoverageDocument, dump_document, load_document

logger = logging.getLogger(__name__)

INDEX_FILENAME = "coverages.txt"
DEFAULT_OUTPUT = "coverage.json"


def document_filename(run_id: str) -> str:
    safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in run_id)
    return f"{safe}.coverage.json"


async def write_run_document(
    doc: CoverageDocument,
    output_dir: str | Path,
    *,
    index_path: str | Path | None = None,
) -> Path:
    """Write one run's document and register it in the index."""
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / document_filename(doc.run_id)
    index = Path(index_path) if index_path is not None else out_dir / INDEX_FILENAME

    async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
        await f.write(dump_document(doc))
    async with aiofiles.open(index, mode="a", encoding="utf-8") as f:
        await f.write(f"{path.resolve()}\n")

    logger.info("Wrote coverage for run %s to %s", doc.run_id, path)
    return path


async def read_document(path: str | Path) -> CoverageDocument:
    async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
        return load_document(await f.read())


async def collect(
    index_path: str | Path,
    output: str | Path = DEFAULT_OUTPUT,
) -> AggregateDocument | None:
    """Merge all documents listed in the index into ``output``.

    Missing documents are logged and skipped. Returns None when there is
    nothing to collect. Merge errors propagate and leave index and output
    untouched.
    """
    index = Path(index_path)
    if not index.is_file():
        logger.info("No coverage to collect.")
        return None

    async with aiofiles.open(index, mode="r", encoding="utf-8") as f:
        listing = await f.read()

    docs: list[CoverageDocument] = []
    for line in listing.splitlines():
        if not line.strip():
            continue
        doc_path = Path(line.strip())
        if not doc_path.is_file():
            logger.error("Missing coverage file '%s'.", doc_path)
            continue
        docs.append(await read_document(doc_path))

    if not docs:
        logger.info("No coverages found.")
        return None

    aggregate = merge_documents(docs)

    out = Path(output)
    if out.is_dir():
        raise ValueError(f"Output path must point to a JSON file, got directory: {out}")
    out.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(out, mode="w", encoding="utf-8") as f:
        await f.write(dump_document(aggregate))

    await aiofiles.os.remove(index)
    logger.info("Collected %s runs into %s", len(aggregate.runs), out)
    return aggregate
