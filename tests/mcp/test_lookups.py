"""Tests for project lookup and NSQL lookup tools."""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError

from clarity_bridge.mcp_server import call_tool
from tests.mcp._helpers import _parse

PROJECT = {"PRID": 5000001, "PRNAME": "Data Platform", "PREXTERNALID": "PRJ-001"}


class TestFindProject:
    async def test_found_by_external_id(self, mcp_db: Any) -> None:
        mcp_db.results = [[PROJECT]]
        result = await call_tool("find_project", {"searchValue": "PRJ-001"})
        assert _parse(result) == "Found project: Data Platform (External ID: PRJ-001, Internal ID: 5000001)"
        assert len(mcp_db.queries) == 1
        assert "PREXTERNALID = :value" in mcp_db.queries[0][0]

    async def test_falls_back_to_name(self, mcp_db: Any) -> None:
        mcp_db.results = [[], [PROJECT]]
        result = await call_tool("find_project", {"searchValue": "Data Platform"})
        assert _parse(result).startswith("Found project: Data Platform")
        assert "PRNAME = :value" in mcp_db.queries[1][0]

    async def test_failed_field_search_skipped(self, mcp_db: Any) -> None:
        mcp_db.results = [SQLAlchemyError("conversion failed"), [PROJECT]]
        result = await call_tool("find_project", {"searchValue": "Data Platform"})
        assert _parse(result).startswith("Found project:")

    async def test_not_found(self, mcp_db: Any) -> None:
        result = await call_tool("find_project", {"searchValue": "ghost"})
        assert _parse(result) == (
            'No project found with identifier "ghost". Tried searching in: PREXTERNALID, PRNAME.'
        )

    async def test_field_value_alias(self, mcp_db: Any) -> None:
        mcp_db.results = [[PROJECT]]
        result = await call_tool("find_project", {"fieldValue": "PRJ-001"})
        assert _parse(result).startswith("Found project:")

    async def test_missing_value(self, mcp_db: Any) -> None:
        with pytest.raises(ValueError, match="searchValue"):
            await call_tool("find_project", {})


class TestLookupNsql:
    async def test_returns_query_text(self, mcp_db: Any) -> None:
        mcp_db.results = [[{"lookup_id": "ACTIVE_NUMERIC", "lookup_name": "Active Numeric Lookups", "nsql_query": "SELECT @SELECT:x@"}]]
        result = await call_tool("get_lookup_nsql", {"lookupName": "active numeric lookups"})
        assert _parse(result) == (
            "Lookup: Active Numeric Lookups\nID: ACTIVE_NUMERIC\n\nNSQL Query:\nSELECT @SELECT:x@"
        )
        assert mcp_db.queries[0][1] == {"lookupName": "active numeric lookups"}

    async def test_static_lookup(self, mcp_db: Any) -> None:
        mcp_db.results = [[{"lookup_id": "YES_NO", "lookup_name": "Yes/No", "nsql_query": None}]]
        result = await call_tool("get_lookup_nsql", {"lookupName": "Yes/No"})
        assert "exists but has no NSQL query" in _parse(result)

    async def test_not_found(self, mcp_db: Any) -> None:
        result = await call_tool("get_lookup_nsql", {"lookupName": "Nope"})
        assert _parse(result).startswith('No dynamic lookup found with name "Nope".')
