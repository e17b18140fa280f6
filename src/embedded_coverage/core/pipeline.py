"""Run orchestration: byte stream -> frames -> records -> coverage document.

Each run owns its source, symbol table, decoder and extractor; nothing is
shared between concurrently running pipelines. Only finished, immutable
documents leave a run.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from .config import PipelineConfig, resolve_max_parallel_runs, resolve_pipeline_config
from .decoding import FrameDecoder, FramePrimitive
from .errors import ExternalImportError, MalformedFrameError, VersionMismatchError
from .extractor import CoverageExtractor
from .framing import iter_frames
from .importers import ExternalFormat, import_external
from .models import ExternalMeta, FrameLoss
from .schema import CoverageDocument, assemble
from .sources import iter_file_chunks, iter_tcp_chunks
from .symbols import SymbolTable, load_symbol_table

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"run-{datetime.now(UTC):%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True, slots=True)
class ExternalArtifact:
    """External coverage file to attach to a run."""

    artifact: bytes
    format_tag: str | ExternalFormat
    origin: str | None = None


def _import_external(external: ExternalArtifact) -> ExternalMeta | None:
    try:
        return import_external(external.artifact, external.format_tag, origin=external.origin)
    except ExternalImportError as exc:
        logger.warning("Skipping external coverage (%s): %s", external.format_tag, exc)
        return None


async def run_capture(
    source: AsyncIterable[bytes],
    table: SymbolTable,
    *,
    run_id: str | None = None,
    binary: str | None = None,
    primitive: FramePrimitive | None = None,
    external: ExternalArtifact | None = None,
    stop: asyncio.Event | None = None,
    timeout_s: float | None = None,
    config: PipelineConfig | None = None,
) -> CoverageDocument:
    """Run one capture through the pipeline.

    Setting ``stop`` (or hitting ``timeout_s``) ends the run early; whatever
    was accumulated is still assembled into a valid document. A
    VersionMismatchError on the first decodable frame aborts the run and
    propagates.
    """
    cfg = config or resolve_pipeline_config()
    run_id = run_id or new_run_id()

    extractor = CoverageExtractor(run_id, binary=binary or table.binary)
    decoder = FrameDecoder(primitive, stats=extractor.stats)
    started_at: datetime | None = None

    timer: asyncio.TimerHandle | None = None
    if timeout_s is not None:
        stop = stop or asyncio.Event()
        timer = asyncio.get_running_loop().call_later(timeout_s, stop.set)

    logger.info("Run %s: decoding capture", run_id)
    try:
        async for item in iter_frames(source, stop=stop, max_frame_len=cfg.max_frame_len):
            if isinstance(item, FrameLoss):
                gap = extractor.record_gap(item)
                logger.warning(
                    "Run %s: lost %s bytes at offset %s (%s)",
                    run_id,
                    gap.discarded,
                    item.offset,
                    gap.reason,
                )
                continue

            try:
                record = decoder.decode(item, table)
            except MalformedFrameError as exc:
                logger.warning(
                    "Run %s: skipping malformed frame at offset %s: %s", run_id, item.offset, exc
                )
                continue

            if started_at is None:
                started_at = datetime.now(UTC)
            extractor.feed(record)
    except VersionMismatchError:
        logger.error("Run %s aborted: incompatible frame encoding", run_id)
        raise
    finally:
        if timer is not None:
            timer.cancel()

    model = extractor.finish()
    model.started_at = started_at
    if external is not None:
        model.external_meta = _import_external(external)

    stats = model.stats
    logger.info(
        "Run %s: %s records, %s tests, %s evidence, %s malformed, %s unknown, %s gaps",
        run_id,
        stats.records,
        len(model.outcomes),
        len(model.evidence),
        stats.malformed,
        stats.unknown_symbols,
        stats.frame_losses,
    )
    return assemble(model)


async def capture_file(
    capture_path: str | Path,
    symbols_path: str | Path,
    *,
    run_id: str | None = None,
    binary: str | None = None,
    external: ExternalArtifact | None = None,
    config: PipelineConfig | None = None,
) -> CoverageDocument:
    """Decode a recorded capture file against a symbol table export."""
    cfg = config or resolve_pipeline_config()
    table = load_symbol_table(symbols_path)
    return await run_capture(
        iter_file_chunks(capture_path, chunk_size=cfg.read_chunk_size),
        table,
        run_id=run_id,
        binary=binary,
        external=external,
        config=cfg,
    )


async def capture_tcp(
    symbols_path: str | Path,
    *,
    host: str | None = None,
    port: int | None = None,
    run_id: str | None = None,
    binary: str | None = None,
    external: ExternalArtifact | None = None,
    stop: asyncio.Event | None = None,
    timeout_s: float | None = None,
    config: PipelineConfig | None = None,
) -> CoverageDocument:
    """Decode the debug server's RTT channel until EOF, ``stop`` or ``timeout_s``.

    Host and port default to the configured RTT forward.
    """
    cfg = config or resolve_pipeline_config()
    table = load_symbol_table(symbols_path)
    host = host or cfg.rtt_host
    port = port or cfg.rtt_port
    logger.info("Reading RTT from %s:%s", host, port)
    return await run_capture(
        iter_tcp_chunks(
            host,
            port,
            chunk_size=cfg.read_chunk_size,
            read_timeout=cfg.read_timeout_s,
        ),
        table,
        run_id=run_id,
        binary=binary,
        external=external,
        stop=stop,
        timeout_s=timeout_s,
        config=cfg,
    )


@dataclass(slots=True)
class RunJob:
    source: AsyncIterable[bytes]
    table: SymbolTable
    run_id: str = field(default_factory=new_run_id)
    binary: str | None = None
    external: ExternalArtifact | None = None
    stop: asyncio.Event | None = None
    timeout_s: float | None = None


@dataclass(slots=True)
class MatrixResult:
    documents: list[CoverageDocument] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)


async def run_matrix(
    jobs: Sequence[RunJob],
    *,
    max_parallel: int | None = None,
    config: PipelineConfig | None = None,
) -> MatrixResult:
    """Run independent captures on a bounded pool of workers.

    A failing run is reported in ``failures`` and does not affect the others.
    Documents are returned in job order. Run ids must be unique across jobs.
    """
    seen: set[str] = set()
    for job in jobs:
        if job.run_id in seen:
            raise ValueError(f"Duplicate run_id in matrix: {job.run_id}")
        seen.add(job.run_id)

    cfg = config or resolve_pipeline_config()
    requested = max_parallel if max_parallel is not None else cfg.max_parallel_runs
    worker_count = min(resolve_max_parallel_runs(requested), max(1, len(jobs)))

    work_queue: asyncio.Queue[tuple[int, RunJob] | None] = asyncio.Queue()
    for item in enumerate(jobs):
        work_queue.put_nowait(item)
    for _ in range(worker_count):
        work_queue.put_nowait(None)

    results: dict[int, CoverageDocument | Exception] = {}

    async def worker() -> None:
        while True:
            item = await work_queue.get()
            if item is None:
                break
            index, job = item
            try:
                results[index] = await run_capture(
                    job.source,
                    job.table,
                    run_id=job.run_id,
                    binary=job.binary,
                    external=job.external,
                    stop=job.stop,
                    timeout_s=job.timeout_s,
                    config=cfg,
                )
            except Exception as exc:
                logger.error("Run %s failed: %s", job.run_id, exc)
                results[index] = exc

    worker_tasks = [asyncio.create_task(worker()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*worker_tasks)
    finally:
        for task in worker_tasks:
            task.cancel()
        await asyncio.gather(*worker_tasks, return_exceptions=True)

    out = MatrixResult()
    for index, job in enumerate(jobs):
        res = results[index]
        if isinstance(res, Exception):
            out.failures[job.run_id] = res
        else:
            out.documents.append(res)
    return out
