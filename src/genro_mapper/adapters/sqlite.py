# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite with per-acquire connections."""

from __future__ import annotations

import datetime
from typing import Any

import aiosqlite

from .base import DbAdapter, ExecResult


class SqliteAdapter(DbAdapter):
    """SQLite async adapter.

    Uses :name placeholders natively. Each acquire() opens a new connection,
    release() closes it. Generated keys are read from cursor.lastrowid.

    Temporal values are written as ISO strings, since the stdlib default
    adapters for datetime are deprecated. The mapper converts them back
    according to the field type on read.

    Note:
        Every acquire() on ":memory:" opens a distinct empty database, so a
        transaction would not see tables created on the mapper's own
        connection. Use a file path when transactions are needed.
    """

    placeholder = ":name"
    error_types = (aiosqlite.Error,)

    column_types = {**DbAdapter.column_types, bool: "INTEGER"}

    def __init__(self, db_path: str):
        self.db_path = db_path or ":memory:"

    def _encode_params(self, params: dict[str, Any] | None) -> dict[str, Any]:
        """Convert temporal values to ISO strings."""
        if not params:
            return {}
        encoded = dict(params)
        for key, value in encoded.items():
            if isinstance(value, (datetime.datetime, datetime.date)):
                encoded[key] = value.isoformat()
        return encoded

    async def acquire(self) -> aiosqlite.Connection:
        """Open new connection."""
        return await aiosqlite.connect(self.db_path)

    async def release(self, conn: aiosqlite.Connection) -> None:
        """Close connection."""
        await conn.close()

    async def shutdown(self) -> None:
        """No-op for SQLite (no pool to close)."""
        pass

    async def begin(self, conn: aiosqlite.Connection) -> None:
        """Open the transaction explicitly so reads belong to it too."""
        await conn.execute("BEGIN")

    async def commit(self, conn: aiosqlite.Connection) -> None:
        """Commit transaction on connection."""
        await conn.commit()

    async def rollback(self, conn: aiosqlite.Connection) -> None:
        """Rollback transaction on connection."""
        await conn.rollback()

    async def execute(
        self,
        conn: aiosqlite.Connection,
        query: str,
        params: dict[str, Any] | None = None,
        returning: str | None = None,
    ) -> ExecResult:
        """Execute query, return affected row count and lastrowid."""
        async with conn.execute(query, self._encode_params(params)) as cursor:
            return ExecResult(cursor.rowcount, cursor.lastrowid)

    async def fetch_one(
        self, conn: aiosqlite.Connection, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        async with conn.execute(query, self._encode_params(params)) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            cols = [c[0] for c in cursor.description]
            return dict(zip(cols, row, strict=True))

    async def fetch_all(
        self, conn: aiosqlite.Connection, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        async with conn.execute(query, self._encode_params(params)) as cursor:
            rows = await cursor.fetchall()
            cols = [c[0] for c in cursor.description]
            return [dict(zip(cols, row, strict=True)) for row in rows]
