"""Exception hierarchy for decoding, importing and merging coverage."""

from __future__ import annotations


class CoverageError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(CoverageError):
    """A frame could not be turned into a log record."""


class MalformedFrameError(DecodeError):
    """Structurally invalid frame. Skipped; the run continues."""


class UnknownSymbolError(DecodeError):
    """Frame references an index that is not in the symbol table."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Symbol index {index:#x} not found in symbol table.")
        self.index = index


class VersionMismatchError(DecodeError):
    """Encoding version not supported by the decoder. Fatal on a run's first frame."""

    def __init__(self, found: int, expected: int) -> None:
        super().__init__(f"Frame encoding version {found} is not supported (expected {expected}).")
        self.found = found
        self.expected = expected


class ExternalImportError(CoverageError):
    """External coverage artifact could not be parsed."""


class UnsupportedFormatError(ExternalImportError):
    def __init__(self, format_tag: str) -> None:
        super().__init__(f"Unsupported external coverage format '{format_tag}'.")
        self.format_tag = format_tag


class MergeError(CoverageError):
    """Coverage documents could not be merged. No output is produced."""


class SchemaVersionMismatchError(MergeError):
    def __init__(self, index: int, run_id: str, found: int, expected: int) -> None:
        super().__init__(
            f"Document #{index} (run '{run_id}') has schema version {found}, expected {expected}."
        )
        self.index = index
        self.run_id = run_id
        self.found = found
        self.expected = expected


class DuplicateRunError(MergeError):
    def __init__(self, index: int, run_id: str, detail: str) -> None:
        super().__init__(f"Document #{index} duplicates run '{run_id}': {detail}.")
        self.index = index
        self.run_id = run_id
