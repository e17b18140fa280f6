"""Importer interfaces and format tags."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from ..errors import UnsupportedFormatError


class ExternalFormat(str, Enum):
    """External coverage formats that can be attached to a run."""

    COBERTURA = "cobertura"
    LCOV = "lcov"
    JSON = "json"


class ExternalParser(Protocol):
    """Parser interface: artifact bytes in, JSON-serializable payload out."""

    def parse(self, artifact: bytes) -> dict[str, Any]:
        """Raise ExternalImportError when the artifact cannot be parsed."""
        ...


def resolve_format(format_tag: str | ExternalFormat) -> ExternalFormat:
    if isinstance(format_tag, ExternalFormat):
        return format_tag
    try:
        return ExternalFormat(format_tag.strip().lower())
    except ValueError as exc:
        raise UnsupportedFormatError(format_tag) from exc
