"""LCOV tracefiles (``.info``)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import ExternalImportError


@dataclass(frozen=True, slots=True)
class LcovParser:
    """Summarize line coverage per source file (SF/DA/LF/LH records)."""

    encoding: str = "utf-8"

    def parse(self, artifact: bytes) -> dict[str, Any]:
        text = artifact.decode(self.encoding, errors="replace")
        files: list[dict[str, Any]] = []
        current: dict[str, Any] | None = None

        for line_no, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            if line.startswith("SF:"):
                if current is not None:
                    raise ExternalImportError(f"line {line_no}: SF before end_of_record")
                current = {
                    "source_file": line[3:],
                    "lines_found": 0,
                    "lines_hit": 0,
                    "_explicit": {},
                }
                continue
            if line == "end_of_record":
                if current is None:
                    raise ExternalImportError(f"line {line_no}: end_of_record without SF")
                files.append(_close(current))
                current = None
                continue
            if current is None:
                # Test names (TN:) and other headers may precede the first SF.
                continue

            tag, _, value = line.partition(":")
            if tag == "DA":
                parts = value.split(",")
                if len(parts) < 2:
                    raise ExternalImportError(f"line {line_no}: malformed DA record")
                try:
                    hits = int(parts[1])
                except ValueError as exc:
                    raise ExternalImportError(f"line {line_no}: malformed DA hit count") from exc
                current["lines_found"] += 1
                if hits > 0:
                    current["lines_hit"] += 1
            elif tag in ("LF", "LH"):
                try:
                    current["_explicit"][tag] = int(value)
                except ValueError as exc:
                    raise ExternalImportError(f"line {line_no}: malformed {tag} record") from exc

        if current is not None:
            raise ExternalImportError(f"record for '{current['source_file']}' is not terminated")

        return {
            "lines_found": sum(f["lines_found"] for f in files),
            "lines_hit": sum(f["lines_hit"] for f in files),
            "files": files,
        }


def _close(entry: dict[str, Any]) -> dict[str, Any]:
    explicit = entry.pop("_explicit")
    if "LF" in explicit:
        entry["lines_found"] = explicit["LF"]
    if "LH" in explicit:
        entry["lines_hit"] = explicit["LH"]
    return entry
