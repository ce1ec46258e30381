"""MCP tools backed by the Clarity PPM REST API."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from clarity_bridge.mcp_tools.common import _mapping_arg, _require, _text


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for REST API tools."""
    project_id = {"type": "string", "description": "Clarity project ID"}
    tools = [
        Tool(
            name="list_projects",
            description="List projects from the Clarity PPM web API",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_project",
            description="Get one project from the Clarity PPM web API",
            inputSchema={
                "type": "object",
                "properties": {"projectId": project_id},
                "required": ["projectId"],
            },
        ),
        Tool(
            name="get_tasks",
            description="List the tasks of a project",
            inputSchema={
                "type": "object",
                "properties": {"projectId": project_id},
                "required": ["projectId"],
            },
        ),
        Tool(
            name="create_task",
            description="Create a task under a project",
            inputSchema={
                "type": "object",
                "properties": {
                    "projectId": project_id,
                    "taskData": {"type": "object", "description": "Task fields as accepted by the Clarity API"},
                },
                "required": ["projectId", "taskData"],
            },
        ),
        Tool(
            name="update_task",
            description="Update fields of an existing task",
            inputSchema={
                "type": "object",
                "properties": {
                    "taskId": {"type": "string", "description": "Clarity task ID"},
                    "updates": {"type": "object"},
                },
                "required": ["taskId", "updates"],
            },
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "list_projects": _handle_list_projects,
        "get_project": _handle_get_project,
        "get_tasks": _handle_get_tasks,
        "create_task": _handle_create_task,
        "update_task": _handle_update_task,
    }

    return tools, handlers


async def _handle_list_projects(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_api

    return _text(await _get_api().get_projects())


async def _handle_get_project(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_api

    _require(arguments, "projectId")
    return _text(await _get_api().get_project(str(arguments["projectId"])))


async def _handle_get_tasks(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_api

    _require(arguments, "projectId")
    return _text(await _get_api().get_tasks(str(arguments["projectId"])))


async def _handle_create_task(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_api

    _require(arguments, "projectId")
    task = await _get_api().create_task(str(arguments["projectId"]), _mapping_arg(arguments, "taskData"))
    return _text(task)


async def _handle_update_task(arguments: dict[str, Any]) -> list[TextContent]:
    from clarity_bridge.mcp_server import _get_api

    _require(arguments, "taskId")
    task = await _get_api().update_task(str(arguments["taskId"]), _mapping_arg(arguments, "updates"))
    return _text(task)
