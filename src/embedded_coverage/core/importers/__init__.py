"""External coverage importers.

Payloads are attached to a run verbatim; their meaning is up to whoever
consumes the coverage document.
"""

from __future__ import annotations

from ..models import ExternalMeta
from .base import ExternalFormat, ExternalParser, resolve_format
from .cobertura import CoberturaParser
from .json_meta import JsonMetaParser
from .lcov import LcovParser

PARSERS: dict[ExternalFormat, ExternalParser] = {
    ExternalFormat.COBERTURA: CoberturaParser(),
    ExternalFormat.LCOV: LcovParser(),
    ExternalFormat.JSON: JsonMetaParser(),
}


def import_external(
    artifact: bytes,
    format_tag: str | ExternalFormat,
    *,
    origin: str | None = None,
) -> ExternalMeta:
    """Parse an external artifact into an origin-tagged opaque payload.

    Raises UnsupportedFormatError for unknown tags and ExternalImportError for
    artifacts the format's parser rejects.
    """
    fmt = resolve_format(format_tag)
    content = PARSERS[fmt].parse(artifact)
    return ExternalMeta(format=fmt.value, origin=origin, content=content)


__all__ = [
    "CoberturaParser",
    "ExternalFormat",
    "ExternalParser",
    "JsonMetaParser",
    "LcovParser",
    "PARSERS",
    "import_external",
    "resolve_format",
]
