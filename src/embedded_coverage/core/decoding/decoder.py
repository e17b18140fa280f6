"""Frame decoder adapter: frame candidate + symbol table -> LogRecord."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import timedelta

from ..errors import MalformedFrameError, UnknownSymbolError, VersionMismatchError
from ..models import DecodeStats, FrameCandidate, Location, LogLevel, LogRecord
from ..symbols import SymbolTable
from .primitive import FramePrimitive, RawFrame, ReferenceFramePrimitive

logger = logging.getLogger(__name__)

_LEVELS: tuple[LogLevel, ...] = (
    LogLevel.TRACE,
    LogLevel.DEBUG,
    LogLevel.INFO,
    LogLevel.WARN,
    LogLevel.ERROR,
)

_PLACEHOLDER_RE = re.compile(r"\{[^{}]*\}")
_NAMED_RE = re.compile(r"^(?P<key>[A-Za-z_][\w.]*)=\{[^{}]*\}$")


def render_fields(fmt: str, args: Sequence[str]) -> tuple[tuple[str, str], ...]:
    """Render a format string into ordered (key, value) fields.

    ``key={...}`` tokens become named fields; anonymous ``{...}``
    placeholders are substituted inline. The first field is always
    ``("message", <rendered text>)``.
    """
    remaining = list(args)
    named: list[tuple[str, str]] = []
    parts: list[str] = []

    def take() -> str:
        if not remaining:
            raise MalformedFrameError(f"not enough arguments for format '{fmt}'")
        return remaining.pop(0)

    for token in fmt.split():
        m = _NAMED_RE.match(token)
        if m:
            value = take()
            named.append((m.group("key"), value))
            parts.append(f"{m.group('key')}={value}")
            continue
        parts.append(_PLACEHOLDER_RE.sub(lambda _: take(), token))

    # Surplus arguments are kept so nothing the target sent is lost.
    parts.extend(remaining)
    return (("message", " ".join(parts)), *named)


class FrameDecoder:
    """Per-run decoder; owns the sequence counter and decode statistics."""

    def __init__(
        self,
        primitive: FramePrimitive | None = None,
        *,
        stats: DecodeStats | None = None,
        strict: bool = False,
    ) -> None:
        self.primitive = primitive or ReferenceFramePrimitive()
        self.stats = stats if stats is not None else DecodeStats()
        self.strict = strict
        self._next_sequence = 0

    @property
    def last_sequence(self) -> int | None:
        """Sequence number of the last produced record, if any."""
        return self._next_sequence - 1 if self._next_sequence else None

    def decode(self, candidate: FrameCandidate, table: SymbolTable) -> LogRecord:
        """Decode one candidate.

        Raises MalformedFrameError (skip and continue) or VersionMismatchError
        (abort the run). Once a record has been produced the stream has proven
        its encoding, so a later version mismatch counts as a malformed frame.
        Unknown symbols yield a location-less record carrying the raw payload
        unless ``strict`` is set.
        """
        self.stats.frames += 1
        try:
            try:
                raw = self.primitive.decode(candidate.payload)
            except VersionMismatchError as exc:
                if self._next_sequence == 0:
                    raise
                raise MalformedFrameError(str(exc)) from exc
            symbol = table.get(raw.index)
            if symbol is None:
                if self.strict:
                    raise UnknownSymbolError(raw.index)
                self.stats.unknown_symbols += 1
                logger.warning("Unknown symbol %#x at offset %s", raw.index, candidate.offset)
                return self._emit(raw, None, _unknown_fields(raw, candidate.payload))
            fields = render_fields(symbol.format, raw.args)
        except MalformedFrameError:
            self.stats.malformed += 1
            raise

        return self._emit(raw, symbol.location, fields)

    def _emit(
        self,
        raw: RawFrame,
        location: Location | None,
        fields: tuple[tuple[str, str], ...],
    ) -> LogRecord:
        record = LogRecord(
            sequence_number=self._next_sequence,
            timestamp=(
                timedelta(microseconds=raw.timestamp_us) if raw.timestamp_us is not None else None
            ),
            level=_LEVELS[raw.level],
            location=location,
            fields=fields,
        )
        self._next_sequence += 1
        self.stats.records += 1
        return record


def _unknown_fields(raw: RawFrame, payload: bytes) -> tuple[tuple[str, str], ...]:
    return (
        ("message", f"<unknown symbol {raw.index:#x}> {' '.join(raw.args)}".rstrip()),
        ("raw", payload.hex()),
        ("index", f"{raw.index:#x}"),
    )
