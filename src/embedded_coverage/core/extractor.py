"""Correlate decoded log records into test outcomes and requirement evidence."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .models import (
    INCOMPLETE_REASON,
    UNTRACKED_TEST,
    DecodeStats,
    FrameLoss,
    Gap,
    LogRecord,
    RequirementEvidence,
    RunCoverageModel,
    TestOutcome,
    TestResult,
    TestStatus,
)

logger = logging.getLogger(__name__)

KEY_TEST_START = "test.start"
KEY_TEST_END = "test.end"
KEY_TEST_IGNORE = "test.ignore"
KEY_REQ_COVER = "req.cover"
KEY_TRACE_ROOT = "trace.root"

TRACE_ROOT_SEPARATOR = "::"

# Messages printed by the defmt-test runner.
_DEFMT_TEST_RE = re.compile(
    r"^\(\d+/(?P<total>\d+)\)\s(?P<state>running|ignoring)\s`(?P<name>.+)`\.\.\."
)
_DEFMT_TEST_DONE = "all tests passed!"

_RESULT_ALIASES: dict[str, TestStatus] = {
    "passed": TestStatus.PASSED,
    "pass": TestStatus.PASSED,
    "ok": TestStatus.PASSED,
    "failed": TestStatus.FAILED,
    "fail": TestStatus.FAILED,
    "error": TestStatus.FAILED,
    "ignored": TestStatus.IGNORED,
    "skipped": TestStatus.IGNORED,
    "skip": TestStatus.IGNORED,
}


@dataclass(frozen=True, slots=True)
class TestStarted:
    __test__ = False

    test_name: str
    # defmt-test aborts on the first failure, so a new test means the previous one passed.
    closes_previous: bool = False
    expected_total: int | None = None  # N in the runner's "(i/N)" prefix


@dataclass(frozen=True, slots=True)
class TestFinished:
    __test__ = False

    test_name: str | None  # None: the test currently in progress
    result: TestResult


@dataclass(frozen=True, slots=True)
class TestIgnored:
    __test__ = False

    test_name: str
    expected_total: int | None = None


@dataclass(frozen=True, slots=True)
class RequirementCovered:
    requirement_id: str


@dataclass(frozen=True, slots=True)
class TraceRootChanged:
    root: str | None  # None: back to the local build


@dataclass(frozen=True, slots=True)
class PassThrough:
    """Ordinary log output; not evidence."""


RecordKind = (
    TestStarted | TestFinished | TestIgnored | RequirementCovered | TraceRootChanged | PassThrough
)


def parse_result(value: str | None, reason: str | None = None) -> TestResult:
    """Map a reported result string onto a TestResult.

    A missing result means the test reached its end marker, i.e. passed.
    """
    if value is None or not value.strip():
        return TestResult.passed()

    status = _RESULT_ALIASES.get(value.strip().lower())
    if status is None:
        return TestResult.failed(f"unknown result '{value}'")
    if status is TestStatus.FAILED:
        return TestResult.failed(reason or "failed")
    if status is TestStatus.IGNORED:
        return TestResult.ignored()
    return TestResult.passed()


def _defmt_test_name(record: LogRecord, fn_name: str) -> str:
    """Qualify a defmt-test function name with the module that logged it."""
    if record.location is None or not record.location.module:
        return fn_name
    module = record.location.module
    if TRACE_ROOT_SEPARATOR not in module:
        return f"{module}{TRACE_ROOT_SEPARATOR}{fn_name}"
    # The last path segment is the logging function itself.
    prefix = module.rsplit(TRACE_ROOT_SEPARATOR, 1)[0]
    return f"{prefix}{TRACE_ROOT_SEPARATOR}{fn_name}"


def classify(record: LogRecord) -> RecordKind:
    """Decide which coverage shape a record has, if any."""
    if record.has_field(KEY_TEST_START):
        name = record.field("test_name") or record.field(KEY_TEST_START)
        if name:
            return TestStarted(name)
        return PassThrough()

    if record.has_field(KEY_TEST_END):
        name = record.field("test_name") or record.field(KEY_TEST_END)
        if name:
            return TestFinished(name, parse_result(record.field("result"), record.field("reason")))
        return PassThrough()

    if record.has_field(KEY_TEST_IGNORE):
        name = record.field("test_name") or record.field(KEY_TEST_IGNORE)
        if name:
            return TestIgnored(name)
        return PassThrough()

    if record.has_field(KEY_REQ_COVER):
        req = record.field("requirement_id") or record.field(KEY_REQ_COVER)
        if req:
            return RequirementCovered(req)
        return PassThrough()

    if record.has_field(KEY_TRACE_ROOT):
        root = (record.field(KEY_TRACE_ROOT) or "").strip()
        return TraceRootChanged(root or None)

    message = record.message
    m = _DEFMT_TEST_RE.match(message)
    if m:
        name = _defmt_test_name(record, m.group("name"))
        total = int(m.group("total"))
        if m.group("state") == "running":
            return TestStarted(name, closes_previous=True, expected_total=total)
        return TestIgnored(name, expected_total=total)
    if message == _DEFMT_TEST_DONE:
        return TestFinished(None, TestResult.passed())

    return PassThrough()


class CoverageExtractor:
    """Accumulates one run's coverage from its ordered record sequence."""

    def __init__(self, run_id: str, *, binary: str | None = None) -> None:
        self._model = RunCoverageModel(run_id=run_id, binary=binary)
        self._running: dict[str, LogRecord] = {}  # insertion order = start order
        self._trace_root: str | None = None
        self._last_sequence: int | None = None
        self._finished = False

    @property
    def stats(self) -> DecodeStats:
        return self._model.stats

    @property
    def current_test(self) -> str | None:
        """Most recently started test that is still in progress."""
        if not self._running:
            return None
        return next(reversed(self._running))

    def feed(self, record: LogRecord) -> RecordKind:
        if self._finished:
            raise RuntimeError("extractor already finished")
        if self._last_sequence is not None and record.sequence_number <= self._last_sequence:
            raise ValueError(
                f"sequence number {record.sequence_number} not after {self._last_sequence}"
            )
        self._last_sequence = record.sequence_number

        kind = classify(record)
        if isinstance(kind, TestStarted | TestIgnored) and kind.expected_total is not None:
            self._model.expected_tests = kind.expected_total
        if isinstance(kind, TestStarted):
            self._start(kind, record)
        elif isinstance(kind, TestFinished):
            name = kind.test_name or self.current_test
            if name is not None:
                self._finish_test(name, kind.result, record)
        elif isinstance(kind, TestIgnored):
            self._running.pop(kind.test_name, None)
            self._model.outcomes[kind.test_name] = TestOutcome(
                kind.test_name, TestResult.ignored(), location=record.location
            )
        elif isinstance(kind, RequirementCovered):
            self._model.evidence.append(
                RequirementEvidence(
                    requirement_id=self._qualify(kind.requirement_id),
                    test_name=self.current_test or UNTRACKED_TEST,
                    sequence_number=record.sequence_number,
                    location=record.location,
                )
            )
        elif isinstance(kind, TraceRootChanged):
            self._trace_root = kind.root
        return kind

    def record_gap(self, loss: FrameLoss) -> Gap:
        gap = Gap(
            after_sequence=self._last_sequence,
            discarded=loss.discarded,
            reason=loss.reason,
            test_name=self.current_test,
        )
        self._model.gaps.append(gap)
        self._model.stats.frame_losses += 1
        return gap

    def finish(self) -> RunCoverageModel:
        """Close the run. Tests still in progress become Failed("incomplete")."""
        if not self._finished:
            for name, start in self._running.items():
                logger.warning("Test '%s' did not finish before the stream ended", name)
                self._model.outcomes[name] = TestOutcome(
                    name, TestResult.failed(INCOMPLETE_REASON), location=start.location
                )
            self._running.clear()
            self._finished = True
        return self._model

    def _start(self, kind: TestStarted, record: LogRecord) -> None:
        if kind.closes_previous and self.current_test is not None:
            self._finish_test(self.current_test, TestResult.passed(), record)
        if self._running.pop(kind.test_name, None) is not None:
            logger.debug("Test '%s' restarted; keeping the latest attempt", kind.test_name)
        self._running[kind.test_name] = record

    def _finish_test(self, name: str, result: TestResult, record: LogRecord) -> None:
        start = self._running.pop(name, None)
        duration = None
        if start is not None and start.timestamp is not None and record.timestamp is not None:
            duration = record.timestamp - start.timestamp
        opened = start if start is not None else record
        self._model.outcomes[name] = TestOutcome(name, result, duration, opened.location)

    def _qualify(self, requirement_id: str) -> str:
        root = self._trace_root
        if root is None or requirement_id.startswith(root + TRACE_ROOT_SEPARATOR):
            return requirement_id
        return f"{root}{TRACE_ROOT_SEPARATOR}{requirement_id}"


def extract_coverage(
    records: Iterable[LogRecord],
    run_id: str,
    *,
    binary: str | None = None,
) -> RunCoverageModel:
    """Build a RunCoverageModel from an ordered record sequence."""
    extractor = CoverageExtractor(run_id, binary=binary)
    for record in records:
        extractor.feed(record)
    return extractor.finish()
