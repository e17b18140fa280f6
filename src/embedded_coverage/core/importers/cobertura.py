"""Cobertura XML coverage reports."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any

from ..errors import ExternalImportError


def _float_attr(elem: ET.Element, name: str) -> float | None:
    value = elem.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ExternalImportError(f"attribute {name}='{value}' is not a number") from exc


def _int_attr(elem: ET.Element, name: str) -> int | None:
    value = elem.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ExternalImportError(f"attribute {name}='{value}' is not an integer") from exc


@dataclass(frozen=True, slots=True)
class CoberturaParser:
    """Summarize a Cobertura report per source file."""

    def parse(self, artifact: bytes) -> dict[str, Any]:
        try:
            root = ET.fromstring(artifact)
        except ET.ParseError as exc:
            raise ExternalImportError(f"invalid Cobertura XML: {exc}") from exc
        if root.tag != "coverage":
            raise ExternalImportError(f"expected <coverage> root element, found <{root.tag}>")

        files: dict[str, dict[str, Any]] = {}
        for cls in root.iter("class"):
            filename = cls.get("filename") or cls.get("name")
            if not filename:
                continue
            entry = files.setdefault(
                filename, {"filename": filename, "lines_total": 0, "lines_hit": 0}
            )
            for line in cls.iter("line"):
                hits = _int_attr(line, "hits") or 0
                entry["lines_total"] += 1
                if hits > 0:
                    entry["lines_hit"] += 1

        return {
            "version": root.get("version"),
            "line_rate": _float_attr(root, "line-rate"),
            "branch_rate": _float_attr(root, "branch-rate"),
            "lines_covered": _int_attr(root, "lines-covered"),
            "lines_valid": _int_attr(root, "lines-valid"),
            "files": [files[name] for name in sorted(files)],
        }
