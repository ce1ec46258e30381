"""Pooled access to the Clarity SQL Server database.

A single SQLAlchemy engine owns the connection pool.  Queries are plain
SQL text with named bind parameters, built by :mod:`clarity_bridge.queries`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from clarity_bridge.config import DatabaseConfig

logger = logging.getLogger(__name__)


def build_url(config: DatabaseConfig) -> URL:
    return URL.create(
        "mssql+pymssql",
        username=config.user,
        password=config.password or None,
        host=config.host,
        port=config.port,
        database=config.database,
    )


def create_pool(config: DatabaseConfig) -> Engine:
    """Create the engine; ``pool_min`` connections stay open, up to ``pool_max``."""
    return create_engine(
        build_url(config),
        pool_size=config.pool_min,
        max_overflow=max(config.pool_max - config.pool_min, 0),
        pool_recycle=config.idle_timeout,
        pool_pre_ping=True,
        connect_args={"login_timeout": config.login_timeout},
    )


class ClarityDB:
    """Thin query runner over a pooled engine.

    The blocking driver calls run in a worker thread so the MCP event loop
    keeps serving other requests while a query is in flight.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> ClarityDB:
        return cls(create_pool(config))

    def verify(self) -> None:
        """Open one pooled connection, failing fast when the server is unreachable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        logger.debug("SQL: %s", sql)
        with self.engine.connect() as conn:
            result = conn.execute(text(sql), params or {})
            return [dict(row) for row in result.mappings()]

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a DML statement in its own transaction; return rows affected."""
        logger.debug("SQL: %s", sql)
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params or {})
            return result.rowcount

    async def afetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.fetch_all, sql, params)

    async def aexecute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        return await asyncio.to_thread(self.execute, sql, params)

    def close(self) -> None:
        self.engine.dispose()
