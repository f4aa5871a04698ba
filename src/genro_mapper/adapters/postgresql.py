# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""PostgreSQL async adapter using psycopg3 with connection pooling.

The mapper's ambient connection and every Transaction hold one pooled
connection each. psycopg opens a transaction on the first statement, so
begin() has nothing to do; commit() and rollback() end it.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

from .base import DbAdapter, ExecResult

_COLON_PARAM = re.compile(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)")


class PostgresAdapter(DbAdapter):
    """PostgreSQL async adapter with connection pooling.

    Generated statements use %(name)s placeholders. Raw SQL written with
    :name placeholders (the SQLite style) is converted, leaving ::casts
    alone. Generated keys are read back with RETURNING.

    The pool opens lazily on first acquire(). Failures to open it surface
    as psycopg.OperationalError, so the mapper reports them as DriverError.
    """

    placeholder = "%(name)s"

    column_types = {**DbAdapter.column_types, int: "BIGINT", float: "DOUBLE PRECISION", bytes: "BYTEA"}

    def __init__(self, dsn: str, pool_size: int = 10, connect_timeout: float = 10.0):
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                "PostgreSQL support requires psycopg. "
                "Install with: pip install genro-mapper[postgresql]"
            ) from e
        self.dsn = dsn
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self.error_types = (psycopg.Error,)
        self._pool: Any = None

    def pk_column(self, name: str) -> str:
        return f"{self.sql_name(name)} BIGSERIAL PRIMARY KEY"

    def _convert_placeholders(self, query: str) -> str:
        return _COLON_PARAM.sub(r"%(\1)s", query)

    async def _open_pool(self) -> Any:
        from psycopg import OperationalError
        from psycopg_pool import AsyncConnectionPool

        pool = AsyncConnectionPool(self.dsn, min_size=1, max_size=self.pool_size, open=False)
        try:
            await asyncio.wait_for(
                pool.open(wait=True, timeout=self.connect_timeout),
                timeout=self.connect_timeout + 1,
            )
        except asyncio.TimeoutError:
            await pool.close()
            raise OperationalError(
                f"PostgreSQL pool did not open within {self.connect_timeout}s. "
                "Check credentials and server availability."
            ) from None
        except Exception as e:
            await pool.close()
            raise OperationalError(f"PostgreSQL connection failed: {e}") from e
        return pool

    async def acquire(self) -> Any:
        if self._pool is None:
            self._pool = await self._open_pool()
        return await self._pool.getconn()

    async def release(self, conn: Any) -> None:
        """Return connection to pool; an unfinished transaction is rolled back by the pool."""
        if self._pool is not None:
            await self._pool.putconn(conn)

    async def shutdown(self) -> None:
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.close()

    async def commit(self, conn: Any) -> None:
        await conn.commit()

    async def rollback(self, conn: Any) -> None:
        await conn.rollback()

    async def _run(self, conn: Any, query: str, params: dict[str, Any] | None, rows: str) -> Any:
        """Execute query on a cursor and collect the result.

        rows: "none" -> ExecResult of the first RETURNING column,
        "one" -> first row as dict, "all" -> every row as dict.
        """
        from psycopg.rows import dict_row

        factory = dict_row if rows != "none" else None
        async with conn.cursor(row_factory=factory) as cur:
            await cur.execute(self._convert_placeholders(query), params or {})
            if rows == "one":
                return await cur.fetchone()
            if rows == "all":
                return await cur.fetchall()
            generated = await cur.fetchone() if cur.description else None
            return ExecResult(cur.rowcount, generated[0] if generated else None)

    async def execute(
        self,
        conn: Any,
        query: str,
        params: dict[str, Any] | None = None,
        returning: str | None = None,
    ) -> ExecResult:
        """Execute query; with returning, report that column of the new row as lastrowid."""
        if returning:
            query = f"{query} RETURNING {self.sql_name(returning)}"
        return await self._run(conn, query, params, "none")

    async def fetch_one(
        self, conn: Any, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        return await self._run(conn, query, params, "one")

    async def fetch_all(
        self, conn: Any, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        return await self._run(conn, query, params, "all")
