"""Combine coverage documents from independent runs into one aggregate.

Runs are never collapsed across run ids: the same test may legitimately run on
several targets. Output order follows input order (runs by first appearance),
so merging the same inputs in a different order yields the same content in a
different order. This keeps reports reproducible without a content-based sort.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .errors import DuplicateRunError, SchemaVersionMismatchError
from .schema import (
    SCHEMA_VERSION,
    AggregateDocument,
    CoverageDocument,
    EvidenceEntry,
    GapEntry,
    OutcomeEntry,
    RunEntry,
    RunExternalMeta,
    StatsEntry,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _RunAccumulator:
    run_id: str
    binary: str | None = None
    started_at: datetime | None = None
    expected_tests: int | None = None
    outcomes: dict[str, OutcomeEntry] = field(default_factory=dict)
    evidence: dict[int, EvidenceEntry] = field(default_factory=dict)
    gaps: list[GapEntry] = field(default_factory=list)
    stats: list[StatsEntry] = field(default_factory=list)
    documents: list[CoverageDocument] = field(default_factory=list)

    def add(self, index: int, doc: CoverageDocument) -> None:
        if any(doc == seen for seen in self.documents):
            raise DuplicateRunError(index, doc.run_id, "same document passed twice")
        self.documents.append(doc)
        for outcome in doc.outcomes:
            if outcome.test_name in self.outcomes:
                raise DuplicateRunError(index, doc.run_id, f"test '{outcome.test_name}' seen twice")
            self.outcomes[outcome.test_name] = outcome
        for ev in doc.evidence:
            if ev.sequence_number in self.evidence:
                raise DuplicateRunError(
                    index, doc.run_id, f"evidence #{ev.sequence_number} seen twice"
                )
            self.evidence[ev.sequence_number] = ev
        self.gaps.extend(doc.gaps)
        self.stats.append(doc.stats)
        if self.binary is None:
            self.binary = doc.binary
        if self.started_at is None:
            self.started_at = doc.started_at
        if self.expected_tests is None:
            self.expected_tests = doc.expected_tests

    def build(self) -> RunEntry:
        return RunEntry(
            run_id=self.run_id,
            binary=self.binary,
            started_at=self.started_at,
            expected_tests=self.expected_tests,
            outcomes=[self.outcomes[name] for name in sorted(self.outcomes)],
            evidence=[self.evidence[seq] for seq in sorted(self.evidence)],
            gaps=list(self.gaps),
            stats=_sum_stats(self.stats),
        )


def _sum_stats(stats: Sequence[StatsEntry]) -> StatsEntry:
    if len(stats) == 1:
        return stats[0]
    return StatsEntry(
        frames=sum(s.frames for s in stats),
        records=sum(s.records for s in stats),
        malformed=sum(s.malformed for s in stats),
        unknown_symbols=sum(s.unknown_symbols for s in stats),
        frame_losses=sum(s.frame_losses for s in stats),
    )


def check_schema_versions(docs: Sequence[CoverageDocument]) -> int:
    """Return the shared schema version or raise naming the first outlier."""
    if not docs:
        return SCHEMA_VERSION
    expected = docs[0].schema_version
    for index, doc in enumerate(docs):
        if doc.schema_version != expected:
            raise SchemaVersionMismatchError(index, doc.run_id, doc.schema_version, expected)
    return expected


def merge_documents(docs: Sequence[CoverageDocument]) -> AggregateDocument:
    """Merge documents into an aggregate. All-or-nothing; inputs are not modified.

    Raises SchemaVersionMismatchError or DuplicateRunError.
    """
    version = check_schema_versions(docs)

    runs: dict[str, _RunAccumulator] = {}  # insertion order = first appearance
    external: list[RunExternalMeta] = []
    for index, doc in enumerate(docs):
        acc = runs.get(doc.run_id)
        if acc is None:
            acc = runs[doc.run_id] = _RunAccumulator(doc.run_id)
        acc.add(index, doc)
        if doc.external_meta is not None:
            external.append(RunExternalMeta(run_id=doc.run_id, meta=doc.external_meta))

    logger.debug("Merged %s documents into %s runs", len(docs), len(runs))
    return AggregateDocument(
        schema_version=version,
        runs=[acc.build() for acc in runs.values()],
        external_meta=external,
    )


def as_aggregate(doc: CoverageDocument) -> AggregateDocument:
    """View a single document as a one-run aggregate."""
    return AggregateDocument(
        schema_version=doc.schema_version,
        runs=[
            RunEntry(
                run_id=doc.run_id,
                binary=doc.binary,
                started_at=doc.started_at,
                expected_tests=doc.expected_tests,
                outcomes=list(doc.outcomes),
                evidence=list(doc.evidence),
                gaps=list(doc.gaps),
                stats=doc.stats,
            )
        ],
        external_meta=(
            [RunExternalMeta(run_id=doc.run_id, meta=doc.external_meta)]
            if doc.external_meta is not None
            else []
        ),
    )
