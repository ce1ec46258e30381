"""MCP server exposing the Clarity PPM database and REST API as tools.

Speaks MCP over stdio.  Once the database pool is verified it prints the
readiness marker on stderr; the relay waits for that line before routing
requests to this process.

Usage:
    clarity-bridge-mcp                          # Config from CLARITY_* env vars
    clarity-bridge-mcp --config bridge.json     # Explicit config file
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from sqlalchemy.exc import SQLAlchemyError

from clarity_bridge.config import BridgeConfig, load_config
from clarity_bridge.db import ClarityDB
from clarity_bridge.mcp_tools import lookups, ppm_api, records
from clarity_bridge.ppm_client import ClarityClient

logger = logging.getLogger(__name__)

server = Server("clarity-bridge")
db: ClarityDB | None = None
api: ClarityClient | None = None


def _collect() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    tools: list[Tool] = []
    handlers: dict[str, Callable[..., Any]] = {}
    for module in (records, lookups, ppm_api):
        module_tools, module_handlers = module.register()
        tools.extend(module_tools)
        handlers.update(module_handlers)
    return tools, handlers


_TOOLS, _HANDLERS = _collect()


def _get_db() -> ClarityDB:
    if db is None:
        msg = "Database not initialized"
        raise RuntimeError(msg)
    return db


def _get_api() -> ClarityClient:
    if api is None:
        msg = "Clarity API client not initialized"
        raise RuntimeError(msg)
    return api


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    handler = _HANDLERS.get(name)
    if handler is None:
        msg = f"Unknown tool: {name}"
        raise ValueError(msg)

    t0 = time.monotonic()
    try:
        result: list[TextContent] = await handler(arguments or {})
    except Exception as exc:
        logger.error("tool_error", extra={"tool": name, "args_data": arguments, "error": str(exc)}, exc_info=True)
        raise
    duration_ms = round((time.monotonic() - t0) * 1000, 1)
    logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
    return result


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(config: BridgeConfig) -> None:
    global db, api

    from clarity_bridge.logging import setup_logging

    # stdout carries the protocol; all diagnostics go to stderr.
    setup_logging(stream=sys.stderr)

    db = ClarityDB.from_config(config.database)
    try:
        await asyncio.to_thread(db.verify)
    except SQLAlchemyError as exc:
        print(f"DB connection failed: {exc}", file=sys.stderr, flush=True)
        db.close()
        sys.exit(1)
    print("Database connected (pool ready)", file=sys.stderr)
    print(f"  Pool: min={config.database.pool_min}, max={config.database.pool_max}", file=sys.stderr)

    api = ClarityClient.from_config(config.api)
    try:
        async with stdio_server() as (read_stream, write_stream):
            print(config.relay.ready_marker, file=sys.stderr, flush=True)
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await api.close()
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Clarity PPM MCP server")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file (defaults to $CLARITY_BRIDGE_CONFIG)")
    args = parser.parse_args()

    asyncio.run(_run(load_config(args.config)))


if __name__ == "__main__":
    main()
