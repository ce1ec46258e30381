"""MCP tools for generic record reads, aggregates, and updates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from clarity_bridge import queries
from clarity_bridge.mcp_tools.common import _mapping_arg, _require, _text

logger = logging.getLogger(__name__)


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for record tools."""
    tools = [
        Tool(
            name="read_records",
            description="Read data from tables with WHERE filter",
            inputSchema={
                "type": "object",
                "properties": {
                    "tableName": {"type": "string"},
                    "columns": {"type": "array", "items": {"type": "string"}},
                    "where": {"type": "object"},
                    "limit": {"type": "number", "description": f"Maximum rows (default {queries.DEFAULT_READ_LIMIT})"},
                },
                "required": ["tableName", "where", "columns"],
            },
        ),
        Tool(
            name="aggregate_query",
            description="Perform counts/sums/averages with grouping, sorting, and limits",
            inputSchema={
                "type": "object",
                "properties": {
                    "tableName": {"type": "string"},
                    "aggregations": {"type": "array", "items": {"type": "string"}},
                    "where": {"type": "object"},
                    "groupBy": {"type": "string"},
                    "orderBy": {"type": "string", "description": 'ORDER BY clause, e.g., "total DESC"'},
                    "limit": {"type": "number", "description": "Number of rows to return"},
                },
                "required": ["tableName", "aggregations"],
            },
        ),
        Tool(
            name="update_records",
            description="Update a single record by ID",
            inputSchema={
                "type": "object",
                "properties": {
                    "tableName": {"type": "string"},
                    "data": {"type": "object"},
                    "idColumn": {"type": "string"},
                    "idValue": {"type": "string"},
                },
                "required": ["tableName", "data", "idColumn", "idValue"],
            },
        ),
        Tool(
            name="bulk_update",
            description="Update multiple records with WHERE filter",
            inputSchema={
                "type": "object",
                "properties": {
                    "tableName": {"type": "string"},
                    "data": {"type": "object"},
                    "where": {"type": "object"},
                },
                "required": ["tableName", "data", "where"],
            },
        ),
        Tool(
            name="get_table_info",
            description="Get column names for a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "tableName": {"type": "string"},
                },
                "required": ["tableName"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "read_records": _handle_read_records,
        "aggregate_query": _handle_aggregate_query,
        "update_records": _handle_update_records,
        "bulk_update": _handle_bulk_update,
        "get_table_info": _handle_get_table_info,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_read_records(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "tableName")
    table = arguments["tableName"]
    sql, params = queries.read_records(
        table,
        arguments.get("columns"),
        _mapping_arg(arguments, "where"),
        arguments.get("limit"),
    )
    logger.info("SQL: %s", sql)
    rows = await _get_db().afetch_all(sql, params)
    if not rows:
        return _text(f"No records found in {table}")
    return _text(rows)


async def _handle_aggregate_query(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "tableName", "aggregations")
    sql, params = queries.aggregate(
        arguments["tableName"],
        arguments["aggregations"],
        _mapping_arg(arguments, "where"),
        group_by=arguments.get("groupBy"),
        order_by=arguments.get("orderBy"),
        limit=arguments.get("limit"),
    )
    logger.info("SQL: %s", sql)
    rows = await _get_db().afetch_all(sql, params)
    return _text(rows)


async def _handle_update_records(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "tableName", "idColumn", "idValue")
    sql, params = queries.update_by_id(
        arguments["tableName"],
        _mapping_arg(arguments, "data"),
        arguments["idColumn"],
        arguments["idValue"],
    )
    logger.info("SQL: %s", sql)
    count = await _get_db().aexecute(sql, params)
    return _text(f"Updated {count} record(s)")


async def _handle_bulk_update(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "tableName")
    sql, params = queries.bulk_update(
        arguments["tableName"],
        _mapping_arg(arguments, "data"),
        _mapping_arg(arguments, "where"),
    )
    logger.info("SQL: %s", sql)
    count = await _get_db().aexecute(sql, params)
    return _text(f"Bulk updated {count} record(s)")


async def _handle_get_table_info(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "tableName")
    sql, params = queries.table_columns(arguments["tableName"])
    rows = await _get_db().afetch_all(sql, params)
    columns = [row["COLUMN_NAME"] for row in rows]
    return _text(f"Columns: {', '.join(columns)}" if columns else "Table not found")
