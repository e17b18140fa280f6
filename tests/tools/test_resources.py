from __future__ import annotations

from pathlib import Path

import pytest

from embedded_coverage.resources.registry import _resolve_resource_path


def test_resolve_resource_path_within_base_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("EMBEDDED_COVERAGE_BASE_DIR", str(tmp_path))
    doc = tmp_path / "runs" / "run-a.coverage.json"
    doc.parent.mkdir()
    doc.write_text("{}", encoding="utf-8")

    assert _resolve_resource_path("runs/run-a.coverage.json") == doc.resolve()


def test_resolve_resource_path_rejects_escape(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    base = tmp_path / "base"
    base.mkdir()
    (tmp_path / "secret.json").write_text("{}", encoding="utf-8")
    monkeypatch.setenv("EMBEDDED_COVERAGE_BASE_DIR", str(base))

    with pytest.raises(ValueError, match="escapes"):
        _resolve_resource_path("../secret.json")


def test_resolve_resource_path_rejects_other_suffixes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("EMBEDDED_COVERAGE_BASE_DIR", str(tmp_path))
    (tmp_path / "capture.bin").write_bytes(b"\x00")

    with pytest.raises(ValueError, match="not allowed"):
        _resolve_resource_path("capture.bin")
