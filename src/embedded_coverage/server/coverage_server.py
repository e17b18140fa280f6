"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: decode a capture or live RTT channel, merge documents, collect recorded runs
- Resources: document schemas and stored coverage documents

Run locally (stdio):
    python -m embedded_coverage.server.coverage_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from embedded_coverage.resources.registry import register_resources
from embedded_coverage.tools.coverage import (
    capture_coverage_impl,
    capture_rtt_coverage_impl,
    collect_coverage_impl,
    merge_coverage_impl,
)

LOGGER = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv("EMBEDDED_COVERAGE_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


mcp = FastMCP("embedded-coverage", json_response=True)

register_resources(mcp)


@mcp.tool()
async def capture_coverage(
    capture_path: str,
    symbols_path: str,
    run_id: str | None = None,
    binary: str | None = None,
    external_path: str | None = None,
    external_format: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Decode a recorded RTT capture into a coverage document.

    Parameters
    ----------
    capture_path:
        Raw bytes captured from the target's log channel.
    symbols_path:
        Symbol table JSON exported for the binary that produced the capture.
    run_id:
        Identifier of the run. Generated when omitted.
    binary:
        Path of the tested binary, recorded in the document.
    external_path/external_format:
        Optional external coverage file and its format (cobertura, lcov, json).
    output_dir:
        When set, the document is written there and registered for collection.

    Returns
    -------
    dict:
        {"run_id": str, "summary": dict, "path": str | None, "document": dict}
    """
    return await capture_coverage_impl(
        capture_path=capture_path,
        symbols_path=symbols_path,
        run_id=run_id,
        binary=binary,
        external_path=external_path,
        external_format=external_format,
        output_dir=output_dir,
    )


@mcp.tool()
async def capture_rtt_coverage(
    symbols_path: str,
    timeout_s: float,
    host: str | None = None,
    port: int | None = None,
    run_id: str | None = None,
    binary: str | None = None,
    external_path: str | None = None,
    external_format: str | None = None,
    output_dir: str | None = None,
) -> dict[str, Any]:
    """Decode the debug server's live RTT channel into a coverage document.

    host/port default to EMBEDDED_COVERAGE_RTT_PORT on localhost. Reading stops
    when the server closes the channel or after timeout_s seconds. Other
    parameters and the result match capture_coverage.
    """
    return await capture_rtt_coverage_impl(
        symbols_path=symbols_path,
        timeout_s=timeout_s,
        host=host,
        port=port,
        run_id=run_id,
        binary=binary,
        external_path=external_path,
        external_format=external_format,
        output_dir=output_dir,
    )


@mcp.tool()
async def merge_coverage(
    document_paths: Sequence[str],
    output_path: str | None = None,
) -> dict[str, Any]:
    """Merge coverage documents into one aggregate (fails on schema mismatch or duplicates)."""
    return await merge_coverage_impl(document_paths=document_paths, output_path=output_path)


@mcp.tool()
async def collect_coverage(index_path: str, output_path: str = "coverage.json") -> dict[str, Any]:
    """Merge every run recorded in an index file and reset the index."""
    return await collect_coverage_impl(index_path=index_path, output_path=output_path)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
