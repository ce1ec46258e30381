"""MCP tools that know Clarity's schema: project lookup and NSQL lookups."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool
from sqlalchemy.exc import SQLAlchemyError

from clarity_bridge import queries
from clarity_bridge.mcp_tools.common import _require, _text

logger = logging.getLogger(__name__)


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for schema-aware lookup tools."""
    tools = [
        Tool(
            name="find_project",
            description="Smart project finder - automatically tries PREXTERNALID and PRNAME",
            inputSchema={
                "type": "object",
                "properties": {
                    "searchValue": {
                        "type": "string",
                        "description": "Project identifier to search (will try all fields automatically)",
                    },
                },
                "required": ["searchValue"],
            },
        ),
        Tool(
            name="get_lookup_nsql",
            description="Get NSQL query text for a dynamic lookup by its display name",
            inputSchema={
                "type": "object",
                "properties": {
                    "lookupName": {
                        "type": "string",
                        "description": 'Display name of the lookup (e.g., "Active Numeric Lookups")',
                    },
                },
                "required": ["lookupName"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "find_project": _handle_find_project,
        "get_lookup_nsql": _handle_get_lookup_nsql,
    }

    return tools, handlers


async def _handle_find_project(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    # fieldValue is the argument name older clients still send.
    search_value = arguments.get("searchValue") or arguments.get("fieldValue")
    if not search_value:
        msg = "Missing required argument: searchValue"
        raise ValueError(msg)

    db = _get_db()
    for field in queries.PROJECT_SEARCH_FIELDS:
        sql, params = queries.find_project(field, search_value)
        try:
            rows = await db.afetch_all(sql, params)
        except SQLAlchemyError as exc:
            logger.warning("%s search failed: %s", field, exc)
            continue
        if rows:
            project = rows[0]
            logger.info("Found project via %s", field)
            return _text(
                f"Found project: {project['PRNAME']} "
                f"(External ID: {project['PREXTERNALID']}, Internal ID: {project['PRID']})"
            )

    tried = ", ".join(queries.PROJECT_SEARCH_FIELDS)
    return _text(f'No project found with identifier "{search_value}". Tried searching in: {tried}.')


async def _handle_get_lookup_nsql(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_db

    _require(arguments, "lookupName")
    name = arguments["lookupName"]
    sql, params = queries.lookup_nsql(name)
    rows = await _get_db().afetch_all(sql, params)
    if not rows:
        return _text(
            f'No dynamic lookup found with name "{name}". '
            "Try searching for partial name or check if it's a static lookup."
        )

    lookup = rows[0]
    if not lookup.get("nsql_query"):
        return _text(
            f'Lookup "{lookup["lookup_name"]}" (ID: {lookup["lookup_id"]}) exists but has no NSQL query. '
            "It might be a static lookup."
        )
    return _text(f"Lookup: {lookup['lookup_name']}\nID: {lookup['lookup_id']}\n\nNSQL Query:\n{lookup['nsql_query']}")
