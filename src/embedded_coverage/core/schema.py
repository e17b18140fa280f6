"""Canonical, versioned coverage documents.

Bump SCHEMA_VERSION on any incompatible field change; the merger refuses to
combine documents with different versions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import (
    DecodeStats,
    ExternalMeta,
    Gap,
    Location,
    RequirementEvidence,
    RunCoverageModel,
    TestOutcome,
    TestStatus,
)

SCHEMA_VERSION = 1


class _Entry(BaseModel):
    model_config = ConfigDict(frozen=True)


class LocationEntry(_Entry):
    file: str
    line: int
    module: str | None = None


class OutcomeEntry(_Entry):
    test_name: str
    status: TestStatus
    reason: str | None = None
    duration_s: float | None = Field(default=None, description="Target-time duration in seconds.")
    location: LocationEntry | None = None


class EvidenceEntry(_Entry):
    requirement_id: str
    test_name: str
    sequence_number: int = Field(ge=0)
    location: LocationEntry | None = None


class GapEntry(_Entry):
    after_sequence: int | None = None
    discarded: int = Field(ge=0)
    reason: str
    test_name: str | None = None


class StatsEntry(_Entry):
    frames: int = 0
    records: int = 0
    malformed: int = 0
    unknown_symbols: int = 0
    frame_losses: int = 0


class ExternalMetaEntry(_Entry):
    format: str
    origin: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)


class CoverageDocument(_Entry):
    """Coverage of exactly one run."""

    schema_version: int = SCHEMA_VERSION
    run_id: str
    binary: str | None = None
    started_at: datetime | None = None
    expected_tests: int | None = Field(default=None, ge=0)
    outcomes: list[OutcomeEntry] = Field(default_factory=list)
    evidence: list[EvidenceEntry] = Field(default_factory=list)
    gaps: list[GapEntry] = Field(default_factory=list)
    stats: StatsEntry = Field(default_factory=StatsEntry)
    external_meta: ExternalMetaEntry | None = None


class RunEntry(_Entry):
    run_id: str
    binary: str | None = None
    started_at: datetime | None = None
    expected_tests: int | None = Field(default=None, ge=0)
    outcomes: list[OutcomeEntry] = Field(default_factory=list)
    evidence: list[EvidenceEntry] = Field(default_factory=list)
    gaps: list[GapEntry] = Field(default_factory=list)
    stats: StatsEntry = Field(default_factory=StatsEntry)


class RunExternalMeta(_Entry):
    run_id: str
    meta: ExternalMetaEntry


class AggregateDocument(_Entry):
    """Union of several coverage documents, one entry per run."""

    schema_version: int = SCHEMA_VERSION
    runs: list[RunEntry] = Field(default_factory=list)
    external_meta: list[RunExternalMeta] = Field(default_factory=list)


def _location(loc: Location | None) -> LocationEntry | None:
    if loc is None:
        return None
    return LocationEntry(file=loc.file, line=loc.line, module=loc.module)


def _outcome(outcome: TestOutcome) -> OutcomeEntry:
    duration = outcome.duration
    return OutcomeEntry(
        test_name=outcome.test_name,
        status=outcome.result.status,
        reason=outcome.result.reason,
        duration_s=round(duration.total_seconds(), 6) if duration is not None else None,
        location=_location(outcome.location),
    )


def _evidence(ev: RequirementEvidence) -> EvidenceEntry:
    return EvidenceEntry(
        requirement_id=ev.requirement_id,
        test_name=ev.test_name,
        sequence_number=ev.sequence_number,
        location=_location(ev.location),
    )


def _gap(gap: Gap) -> GapEntry:
    return GapEntry(
        after_sequence=gap.after_sequence,
        discarded=gap.discarded,
        reason=gap.reason,
        test_name=gap.test_name,
    )


def _stats(stats: DecodeStats) -> StatsEntry:
    return StatsEntry(
        frames=stats.frames,
        records=stats.records,
        malformed=stats.malformed,
        unknown_symbols=stats.unknown_symbols,
        frame_losses=stats.frame_losses,
    )


def _external(meta: ExternalMeta | None) -> ExternalMetaEntry | None:
    if meta is None:
        return None
    return ExternalMetaEntry(format=meta.format, origin=meta.origin, content=meta.content)


def assemble(model: RunCoverageModel) -> CoverageDocument:
    """Serialize a run model. Outcomes sorted by name, evidence by sequence."""
    outcomes = sorted(model.outcomes.values(), key=lambda o: o.test_name)
    evidence = sorted(model.evidence, key=lambda e: e.sequence_number)
    return CoverageDocument(
        schema_version=SCHEMA_VERSION,
        run_id=model.run_id,
        binary=model.binary,
        started_at=model.started_at,
        expected_tests=model.expected_tests,
        outcomes=[_outcome(o) for o in outcomes],
        evidence=[_evidence(e) for e in evidence],
        gaps=[_gap(g) for g in model.gaps],
        stats=_stats(model.stats),
        external_meta=_external(model.external_meta),
    )


def dump_document(doc: CoverageDocument | AggregateDocument) -> str:
    """Render a document as stable, diff-friendly JSON."""
    return doc.model_dump_json(indent=2) + "\n"


def load_document(text: str | bytes) -> CoverageDocument:
    try:
        return CoverageDocument.model_validate_json(text)
    except ValidationError as exc:
        raise ValueError(f"Invalid coverage document: {exc}") from exc


def load_aggregate(text: str | bytes) -> AggregateDocument:
    try:
        return AggregateDocument.model_validate_json(text)
    except ValidationError as exc:
        raise ValueError(f"Invalid aggregate document: {exc}") from exc
