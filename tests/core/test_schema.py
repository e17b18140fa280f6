from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from embedded_coverage.core.models import (
    DecodeStats,
    ExternalMeta,
    Location,
    RequirementEvidence,
    RunCoverageModel,
    TestOutcome,
    TestResult,
    TestStatus,
)
from embedded_coverage.core.schema import (
    SCHEMA_VERSION,
    assemble,
    dump_document,
    load_aggregate,
    load_document,
)


def _model() -> RunCoverageModel:
    model = RunCoverageModel(run_id="run-a", binary="fw.elf")
    model.started_at = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    model.outcomes["zeta"] = TestOutcome("zeta", TestResult.failed("boom"))
    model.outcomes["alpha"] = TestOutcome(
        "alpha", TestResult.passed(), timedelta(microseconds=1_234_567)
    )
    model.evidence.append(RequirementEvidence("REQ-2", "zeta", 9))
    model.evidence.append(
        RequirementEvidence("REQ-1", "alpha", 3, Location("tests/a.rs", 4, "a::b"))
    )
    model.stats = DecodeStats(frames=12, records=11, malformed=1)
    model.external_meta = ExternalMeta(format="json", origin="meta.json", content={"k": 1})
    return model


def test_assemble_orders_outcomes_and_evidence() -> None:
    doc = assemble(_model())

    assert doc.schema_version == SCHEMA_VERSION
    assert [o.test_name for o in doc.outcomes] == ["alpha", "zeta"]
    assert [e.sequence_number for e in doc.evidence] == [3, 9]
    assert doc.outcomes[0].duration_s == 1.234567
    assert doc.outcomes[1].status is TestStatus.FAILED
    assert doc.outcomes[1].reason == "boom"
    assert doc.evidence[0].location is not None
    assert doc.evidence[0].location.module == "a::b"
    assert doc.stats.malformed == 1
    assert doc.external_meta is not None
    assert doc.external_meta.content == {"k": 1}


def test_dump_is_stable_across_reload() -> None:
    text = dump_document(assemble(_model()))
    again = dump_document(load_document(text))

    assert again == text
    assert text.endswith("\n")
    assert '"status": "passed"' in text


def test_load_document_rejects_invalid() -> None:
    with pytest.raises(ValueError, match="Invalid coverage document"):
        load_document('{"schema_version": 1}')


def test_load_aggregate_rejects_invalid() -> None:
    with pytest.raises(ValueError, match="Invalid aggregate document"):
        load_aggregate('{"runs": [{"outcomes": []}]}')


def test_assemble_carries_expected_tests_and_outcome_location() -> None:
    model = _model()
    model.expected_tests = 3
    model.outcomes["beta"] = TestOutcome(
        "beta", TestResult.ignored(), location=Location("tests/b.rs", 7, "b::c")
    )

    doc = assemble(model)

    assert doc.expected_tests == 3
    beta = next(o for o in doc.outcomes if o.test_name == "beta")
    assert beta.location is not None
    assert (beta.location.file, beta.location.line) == ("tests/b.rs", 7)
    assert doc.outcomes[0].location is None
    assert load_document(dump_document(doc)) == doc
