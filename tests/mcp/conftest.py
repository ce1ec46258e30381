"""Fixtures for MCP server tests."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeClarityDB:
    """Records every statement and replays canned results in order."""

    def __init__(self) -> None:
        self.queries: list[tuple[str, dict[str, Any]]] = []
        self.results: list[Any] = []

    def _next(self, sql: str, params: dict[str, Any] | None) -> Any:
        self.queries.append((sql, params or {}))
        result = self.results.pop(0) if self.results else []
        if isinstance(result, BaseException):
            raise result
        return result

    async def afetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return self._next(sql, params)

    async def aexecute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        return self._next(sql, params)


@pytest.fixture
def mcp_db() -> Generator[FakeClarityDB, None, None]:
    """Patch the MCP module's database global with a fake."""
    import clarity_bridge.mcp_server as mcp_mod

    fake = FakeClarityDB()
    original = mcp_mod.db
    mcp_mod.db = fake  # type: ignore[assignment]
    yield fake
    mcp_mod.db = original


@pytest.fixture
def mcp_api() -> Generator[MagicMock, None, None]:
    """Patch the MCP module's REST client global with an async mock."""
    import clarity_bridge.mcp_server as mcp_mod

    fake = MagicMock()
    for name in ("get_projects", "get_project", "get_tasks", "create_task", "update_task"):
        setattr(fake, name, AsyncMock())
    original = mcp_mod.api
    mcp_mod.api = fake
    yield fake
    mcp_mod.api = original
