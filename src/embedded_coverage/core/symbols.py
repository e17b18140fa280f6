"""Symbol tables mapping frame indices to format strings and locations.

A table is built once per run by the symbol resolver (which reads the
binary's debug sections) and handed to the decoder read-only. The resolver
exports it as JSON::

    {"version": 1,
     "symbols": {"0x10": {"format": "test.start={=str}",
                          "file": "tests/sensor.rs", "line": 12,
                          "module": "sensor_tests::tests::reads"}}}
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import Location


@dataclass(frozen=True, slots=True)
class Symbol:
    format: str
    file: str | None = None
    line: int | None = None
    module: str | None = None

    @property
    def location(self) -> Location | None:
        if self.file is None or self.line is None:
            return None
        return Location(file=self.file, line=self.line, module=self.module)


class SymbolTable(Mapping[int, Symbol]):
    """Immutable index -> symbol mapping for one binary."""

    __slots__ = ("_symbols", "binary")

    def __init__(self, symbols: Mapping[int, Symbol], *, binary: str | None = None) -> None:
        self._symbols = MappingProxyType(dict(symbols))
        self.binary = binary

    def __getitem__(self, index: int) -> Symbol:
        return self._symbols[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def __repr__(self) -> str:
        return f"SymbolTable({len(self)} symbols, binary={self.binary!r})"


class _SymbolEntry(BaseModel):
    format: str
    file: str | None = None
    line: int | None = Field(default=None, ge=0)
    module: str | None = None


class _SymbolExport(BaseModel):
    version: int = 1
    binary: str | None = None
    symbols: dict[str, _SymbolEntry] = Field(default_factory=dict)

    @field_validator("symbols")
    @classmethod
    def _keys_are_indices(cls, value: dict[str, _SymbolEntry]) -> dict[str, _SymbolEntry]:
        for key in value:
            _parse_index(key)
        return value


def _parse_index(key: str) -> int:
    try:
        return int(key, 0)
    except ValueError as exc:
        raise ValueError(f"symbol index '{key}' is not an integer") from exc


def parse_symbol_table(text: str | bytes) -> SymbolTable:
    """Parse a symbol resolver JSON export."""
    try:
        export = _SymbolExport.model_validate_json(text)
    except ValidationError as exc:
        raise ValueError(f"Invalid symbol table: {exc}") from exc

    symbols = {
        _parse_index(key): Symbol(
            format=entry.format,
            file=entry.file,
            line=entry.line,
            module=entry.module,
        )
        for key, entry in export.symbols.items()
    }
    return SymbolTable(symbols, binary=export.binary)


def load_symbol_table(path: str | Path) -> SymbolTable:
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Symbol table not found: {p}")
    return parse_symbol_table(p.read_bytes())
