"""Access to the PostgreSQL server holding the live database.

Uses a SQLAlchemy async engine with the asyncpg driver. Every statement runs
in AUTOCOMMIT mode so read-only metadata queries hold no locks beyond their own
statement, and CREATE/DROP DATABASE can run outside a transaction block.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.errors import DatabaseError

logger = logging.getLogger(__name__)

SERVER_VERSION_SQL = "SELECT version()"
TIMESCALEDB_VERSION_SQL = "SELECT extversion FROM pg_extension WHERE extname = 'timescaledb'"
DATABASE_SIZE_SQL = "SELECT pg_database_size(current_database())"
TABLE_COUNT_SQL = "SELECT count(*) FROM information_schema.tables WHERE table_schema = 'public'"
HYPERTABLE_COUNT_SQL = "SELECT count(*) FROM timescaledb_information.hypertables"


@dataclass
class DatabaseSnapshot:
    """Descriptive facts captured from the live database before a dump."""

    server_version: Optional[str] = None
    timescaledb_version: Optional[str] = None
    database_size_bytes: Optional[int] = None
    table_count: Optional[int] = None
    hypertable_count: Optional[int] = None


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class Database:
    """Thin async wrapper over the server named in the configuration."""

    def __init__(self, config: BackupConfiguration) -> None:
        self.config = config

    @asynccontextmanager
    async def connect(self, database: Optional[str] = None) -> AsyncIterator[AsyncConnection]:
        engine = create_async_engine(
            self.config.database_url(database),
            isolation_level="AUTOCOMMIT",
            poolclass=NullPool,
        )
        try:
            async with engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise DatabaseError(f"database={database or self.config.db_name}: {exc}") from exc
        except OSError as exc:
            raise DatabaseError(f"database={database or self.config.db_name}: {exc}") from exc
        finally:
            await engine.dispose()

    async def scalar(self, sql: str, *, database: Optional[str] = None, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self.connect(database) as conn:
            result = await conn.execute(text(sql), params or {})
            return result.scalar()

    async def execute(self, sql: str, *, database: Optional[str] = None) -> None:
        async with self.connect(database) as conn:
            await conn.execute(text(sql))

    async def _best_effort(self, sql: str, database: Optional[str]) -> Any:
        try:
            return await self.scalar(sql, database=database)
        except DatabaseError as exc:
            logger.warning("metadata_query_failed | database=%s query=%s error=%s", database, sql, exc)
            return None

    async def capture_snapshot(self, database: Optional[str] = None) -> DatabaseSnapshot:
        """Collect version strings, size and object counts; each query is best effort."""
        version = await self._best_effort(SERVER_VERSION_SQL, database)
        ts_version = await self._best_effort(TIMESCALEDB_VERSION_SQL, database)
        size = await self._best_effort(DATABASE_SIZE_SQL, database)
        tables, hypertables = await self.count_objects(database)
        return DatabaseSnapshot(
            server_version=str(version).strip() if version is not None else None,
            timescaledb_version=str(ts_version).strip() if ts_version is not None else None,
            database_size_bytes=int(size) if size is not None else None,
            table_count=tables,
            hypertable_count=hypertables,
        )

    async def count_objects(self, database: Optional[str] = None) -> Tuple[Optional[int], Optional[int]]:
        """Return (public table count, hypertable count); None where a query fails."""
        tables = await self._best_effort(TABLE_COUNT_SQL, database)
        hypertables = await self._best_effort(HYPERTABLE_COUNT_SQL, database)
        return (
            int(tables) if tables is not None else None,
            int(hypertables) if hypertables is not None else None,
        )

    async def create_database(self, name: str) -> None:
        await self.execute(f"CREATE DATABASE {quote_ident(name)}", database=self.config.maintenance_db)

    async def drop_database(self, name: str) -> None:
        await self.execute(f"DROP DATABASE IF EXISTS {quote_ident(name)}", database=self.config.maintenance_db)

    async def install_extensions(self, name: str, extensions: Iterable[str]) -> None:
        async with self.connect(name) as conn:
            for ext in extensions:
                await conn.execute(text(f"CREATE EXTENSION IF NOT EXISTS {quote_ident(ext)}"))
