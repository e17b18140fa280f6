"""Core data models for the capture-decode-correlate pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

UNTRACKED_TEST = "<untracked>"
INCOMPLETE_REASON = "incomplete"


class LogLevel(str, Enum):
    """Severity levels of the target's logging framework."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class Location:
    """Source location a log statement was compiled from."""

    file: str
    line: int
    module: str | None = None  # e.g. "my_crate::tests::sensor"


@dataclass(frozen=True, slots=True)
class FrameCandidate:
    """One de-stuffed frame body and the stream offset it started at."""

    offset: int
    payload: bytes


@dataclass(frozen=True, slots=True)
class FrameLoss:
    """Synthetic marker for bytes discarded while resynchronizing."""

    offset: int
    discarded: int
    reason: str


@dataclass(frozen=True, slots=True)
class LogRecord:
    """Decoded log statement. `sequence_number` is the only ordering key."""

    sequence_number: int
    timestamp: timedelta | None  # target uptime, advisory only
    level: LogLevel
    location: Location | None
    fields: tuple[tuple[str, str], ...] = ()

    def field(self, key: str) -> str | None:
        """Return the first value stored under `key`, if any."""
        for k, v in self.fields:
            if k == key:
                return v
        return None

    def has_field(self, key: str) -> bool:
        return any(k == key for k, _ in self.fields)

    @property
    def message(self) -> str:
        return self.field("message") or ""


class TestStatus(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class TestResult:
    """Outcome status plus an optional failure reason."""

    __test__ = False

    status: TestStatus
    reason: str | None = None

    @classmethod
    def passed(cls) -> TestResult:
        return cls(TestStatus.PASSED)

    @classmethod
    def failed(cls, reason: str) -> TestResult:
        return cls(TestStatus.FAILED, reason)

    @classmethod
    def ignored(cls) -> TestResult:
        return cls(TestStatus.IGNORED)


@dataclass(frozen=True, slots=True)
class TestOutcome:
    __test__ = False

    test_name: str
    result: TestResult
    duration: timedelta | None = None
    location: Location | None = None  # statement that opened or reported the test


@dataclass(frozen=True, slots=True)
class RequirementEvidence:
    """Link between a requirement id and the test that exercised it."""

    requirement_id: str
    test_name: str
    sequence_number: int
    location: Location | None = None


@dataclass(frozen=True, slots=True)
class Gap:
    """Stream region lost to corruption, recorded instead of silently dropped."""

    after_sequence: int | None  # last sequence number decoded before the gap
    discarded: int
    reason: str
    test_name: str | None = None  # test in progress when the gap occurred


@dataclass(slots=True)
class DecodeStats:
    """Per-run counters for items skipped or degraded during decoding."""

    frames: int = 0
    records: int = 0
    malformed: int = 0
    unknown_symbols: int = 0
    frame_losses: int = 0


@dataclass(frozen=True, slots=True)
class ExternalMeta:
    """Opaque external coverage payload, tagged with its format and origin."""

    format: str
    origin: str | None
    content: dict[str, Any]


@dataclass(slots=True)
class RunCoverageModel:
    """Coverage state accumulated for exactly one run."""

    run_id: str
    outcomes: dict[str, TestOutcome] = field(default_factory=dict)
    evidence: list[RequirementEvidence] = field(default_factory=list)
    gaps: list[Gap] = field(default_factory=list)
    stats: DecodeStats = field(default_factory=DecodeStats)
    external_meta: ExternalMeta | None = None
    started_at: datetime | None = None
    binary: str | None = None
    expected_tests: int | None = None  # announced by the test runner, if any
