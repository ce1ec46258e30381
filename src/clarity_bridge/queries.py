"""SQL text builders for the Clarity tool set.

Each builder turns tool arguments into ``(sql, params)``: values always
travel as named bind parameters, while table and column names are taken
as given.  Reads use ``WITH(NOLOCK)`` so reporting queries never block
Clarity's own writers.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

DEFAULT_READ_LIMIT = 20

# Fields tried, in order, when locating a project by a user-supplied value.
PROJECT_SEARCH_FIELDS = ("PREXTERNALID", "PRNAME")

Query = tuple[str, dict[str, Any]]

_WS_RE = re.compile(r"\s+")


def _squash(sql: str) -> str:
    return _WS_RE.sub(" ", sql).strip()


def _bind_equalities(values: Mapping[str, Any], prefix: str, params: dict[str, Any]) -> list[str]:
    parts = []
    for idx, (column, value) in enumerate(values.items()):
        name = f"{prefix}{idx}"
        parts.append(f"{column} = :{name}")
        params[name] = value
    return parts


def _where(filters: Mapping[str, Any] | None, params: dict[str, Any], prefix: str = "p") -> str:
    if not filters:
        return ""
    return "WHERE " + " AND ".join(_bind_equalities(filters, prefix, params))


def read_records(
    table: str,
    columns: Sequence[str] | None = None,
    where: Mapping[str, Any] | None = None,
    limit: int | None = None,
) -> Query:
    params: dict[str, Any] = {}
    cols = ",".join(columns) if columns else "*"
    top = int(limit) if limit else DEFAULT_READ_LIMIT
    sql = f"SELECT TOP {top} {cols} FROM {table} WITH(NOLOCK) {_where(where, params)}"
    return _squash(sql), params


def aggregate(
    table: str,
    aggregations: Sequence[str],
    where: Mapping[str, Any] | None = None,
    group_by: str | None = None,
    order_by: str | None = None,
    limit: int | None = None,
) -> Query:
    if not aggregations:
        msg = "aggregations must not be empty"
        raise ValueError(msg)
    params: dict[str, Any] = {}
    top = f"TOP {int(limit)}" if limit else ""
    group = f"GROUP BY {group_by}" if group_by else ""
    order = f"ORDER BY {order_by}" if order_by else ""
    sql = f"SELECT {top} {','.join(aggregations)} FROM {table} WITH(NOLOCK) {_where(where, params)} {group} {order}"
    return _squash(sql), params


def update_by_id(table: str, data: Mapping[str, Any], id_column: str, id_value: Any) -> Query:
    if not data:
        msg = "data must contain at least one column to update"
        raise ValueError(msg)
    params: dict[str, Any] = {}
    assignments = _bind_equalities(data, "u", params)
    params["idVal"] = id_value
    return f"UPDATE {table} SET {', '.join(assignments)} WHERE {id_column} = :idVal", params


def bulk_update(table: str, data: Mapping[str, Any], where: Mapping[str, Any]) -> Query:
    if not data:
        msg = "data must contain at least one column to update"
        raise ValueError(msg)
    if not where:
        msg = "bulk_update requires a non-empty where filter"
        raise ValueError(msg)
    params: dict[str, Any] = {}
    assignments = _bind_equalities(data, "u", params)
    conditions = _bind_equalities(where, "w", params)
    return f"UPDATE {table} SET {', '.join(assignments)} WHERE {' AND '.join(conditions)}", params


def find_project(field: str, value: Any) -> Query:
    sql = f"SELECT TOP 1 PRID, PRNAME, PREXTERNALID FROM PRPROJECT WITH(NOLOCK) WHERE {field} = :value"
    return sql, {"value": value}


def lookup_nsql(lookup_name: str) -> Query:
    """Resolve a dynamic lookup by English caption or lookup code, case-insensitively."""
    sql = """
        SELECT
          l.lookup_type AS lookup_id,
          cap.name AS lookup_name,
          q.nsql_text AS nsql_query
        FROM CMN_LOOKUP_TYPES l WITH(NOLOCK)
        JOIN CMN_CAPTIONS_NLS cap WITH(NOLOCK) ON l.id = cap.pk_id
          AND cap.table_name = 'CMN_LOOKUP_TYPES'
          AND cap.language_code = 'en'
        LEFT JOIN CMN_LIST_OF_VALUES lov WITH(NOLOCK) ON l.lookup_type = lov.lookup_type_code
        LEFT JOIN CMN_NSQL_QUERIES q WITH(NOLOCK) ON lov.sql_text_id = q.id
        WHERE LOWER(cap.name) = LOWER(:lookupName)
           OR LOWER(l.lookup_type) = LOWER(:lookupName)
    """
    return _squash(sql), {"lookupName": lookup_name}


def table_columns(table: str) -> Query:
    return "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS WHERE TABLE_NAME = :tableName", {"tableName": table}
