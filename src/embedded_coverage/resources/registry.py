"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from embedded_coverage.core.importers import ExternalFormat
from embedded_coverage.core.schema import SCHEMA_VERSION, AggregateDocument, CoverageDocument

ALLOWED_FILE_SUFFIXES = {".json"}
BASE_DIR_ENV = "EMBEDDED_COVERAGE_BASE_DIR"
TEXT_ENCODING = "utf-8"


def _base_dir() -> Path:
    """Return the resolved base directory for file resources."""
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def _safe_resolve(path: str) -> Path:
    """Resolve a path under the configured base directory."""
    base = _base_dir()
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if base not in p.parents and p != base:
        raise ValueError("Path escapes base dir")
    return p


def _resolve_resource_path(path: str) -> Path:
    """Resolve and validate a resource file path."""
    resolved = _safe_resolve(path)
    if not resolved.is_file():
        raise FileNotFoundError(f"File not found: {resolved}")
    if resolved.suffix.lower() not in ALLOWED_FILE_SUFFIXES:
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        raise ValueError(f"File type not allowed. Allowed: {allowed}.")
    return resolved


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://embedded-coverage/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        formats = ", ".join(f.value for f in ExternalFormat)
        return (
            "Resources:\n"
            "- app://embedded-coverage/help\n"
            "- app://embedded-coverage/schemas/coverage-document\n"
            "- app://embedded-coverage/schemas/aggregate-document\n"
            f"- coverage://{{path}} (restricted to {BASE_DIR_ENV}; .json only)\n"
            f"\nSchema version: {SCHEMA_VERSION}\n"
            f"External formats: {formats}\n"
            f"Base directory: {_base_dir()}\n"
        )

    @mcp.resource("app://embedded-coverage/schemas/coverage-document")
    def coverage_document_schema() -> dict[str, Any]:
        """Return the JSON schema for single-run coverage documents."""
        return CoverageDocument.model_json_schema()

    @mcp.resource("app://embedded-coverage/schemas/aggregate-document")
    def aggregate_document_schema() -> dict[str, Any]:
        """Return the JSON schema for merged coverage documents."""
        return AggregateDocument.model_json_schema()

    @mcp.resource("coverage://{path}")
    async def read_coverage(path: str) -> str:
        """Read a stored coverage document from within EMBEDDED_COVERAGE_BASE_DIR."""
        p = _resolve_resource_path(path)
        return await asyncio.to_thread(p.read_text, encoding=TEXT_ENCODING)
