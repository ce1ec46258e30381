"""Pure helpers shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
from typing import Any

from mcp.types import TextContent


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _require(arguments: dict[str, Any], *names: str) -> None:
    """Raise ``ValueError`` naming the first missing or empty argument."""
    for name in names:
        if arguments.get(name) in (None, ""):
            msg = f"Missing required argument: {name}"
            raise ValueError(msg)


def _mapping_arg(arguments: dict[str, Any], name: str) -> dict[str, Any]:
    """Return an optional object argument, rejecting non-objects."""
    value = arguments.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"{name} must be an object"
        raise ValueError(msg)
    return value
