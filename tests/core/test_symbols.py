from __future__ import annotations

import json
from pathlib import Path

import pytest

from embedded_coverage.core.models import Location
from embedded_coverage.core.symbols import (
    Symbol,
    SymbolTable,
    load_symbol_table,
    parse_symbol_table,
)


def test_parse_symbol_table_accepts_hex_and_decimal_keys() -> None:
    table = parse_symbol_table(
        json.dumps(
            {
                "binary": "fw.elf",
                "symbols": {
                    "0x10": {
                        "format": "req.cover={=str}",
                        "file": "a.rs",
                        "line": 3,
                        "module": "m",
                    },
                    "17": {"format": "plain"},
                },
            }
        )
    )

    assert table.binary == "fw.elf"
    assert sorted(table) == [0x10, 17]
    assert table[0x10].location == Location(file="a.rs", line=3, module="m")
    assert table[17].location is None


def test_parse_symbol_table_rejects_bad_index() -> None:
    with pytest.raises(ValueError, match="Invalid symbol table"):
        parse_symbol_table(json.dumps({"symbols": {"nope": {"format": "x"}}}))


def test_symbol_table_is_read_only(symbol_table: SymbolTable) -> None:
    with pytest.raises(TypeError):
        symbol_table[0x99] = Symbol(format="x")  # type: ignore[index]


def test_symbol_table_copies_input() -> None:
    source = {1: Symbol(format="a")}
    table = SymbolTable(source)
    source[2] = Symbol(format="b")

    assert len(table) == 1


def test_load_symbol_table_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_symbol_table(tmp_path / "missing.json")


def test_load_symbol_table_from_file(tmp_path: Path, write_symbols) -> None:
    table = load_symbol_table(write_symbols(tmp_path / "symbols.json"))
    assert table[0x01].format == "test.start={=str}"
