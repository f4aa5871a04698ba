# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Execution contexts and the shared CRUD algorithm.

ExecutionContext runs statements on one connection, either the mapper's
ambient connection (committed after every statement) or the connection
of an open Transaction (committed only by Transaction.end()). Driver
exceptions are re-raised as DriverError here and nowhere else.

SqlExecutor holds the operation flow common to Mapper and Transaction:

    pre hook → bind → execute → check rowcount → write back → post hook

Row-count interpretation:

    operation  rowcount 1              rowcount 0                  rowcount > 1
    insert     ok, set generated key   IntegrityError              IntegrityError
    update     ok, version += 1        OptimisticLockError (*)     IntegrityError
    delete     ok                      NotFoundError               IntegrityError

(*) for types with a version field; unversioned updates report False.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from functools import partial
from typing import TYPE_CHECKING, Any

from .errors import DriverError, IntegrityError, MapperError, NotFoundError, OptimisticLockError
from .hooks import invoke_hook

if TYPE_CHECKING:
    from .adapters import DbAdapter, ExecResult
    from .descriptor import TypeDescriptor
    from .mapper import Mapper

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger("genro_mapper.trace")

TraceSink = Callable[[str, dict[str, Any], float], None]
"""Receives (sql, params, duration in seconds) for every executed statement."""


def log_trace(sql: str, params: dict[str, Any], duration: float) -> None:
    """Trace sink writing to the genro_mapper.trace logger."""
    trace_logger.debug("[%.2f ms] %s %r", duration * 1000, sql, params)


class ExecutionContext:
    """Runs statements on a single connection.

    Attributes:
        adapter: Driver adapter.
        conn: Connection from adapter.acquire().
        transactional: False for the mapper's ambient connection.
        trace: Optional trace sink.

    Statements are serialized: each one runs together with its commit or
    rollback before the next starts, so concurrent tasks sharing the
    ambient connection never end each other's work.
    """

    def __init__(self, adapter: DbAdapter, conn: Any, transactional: bool, trace: TraceSink | None = None):
        self.adapter = adapter
        self.conn = conn
        self.transactional = transactional
        self.trace = trace
        self._lock = asyncio.Lock()

    async def _call(
        self, sql: str, params: dict[str, Any] | None, operation: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Run operation, translating driver errors and feeding the trace sink."""
        async with self._lock:
            start = time.perf_counter() if self.trace is not None else 0.0
            try:
                result = await operation()
                if not self.transactional:
                    await self.adapter.commit(self.conn)
                return result
            except self.adapter.error_types as e:
                if not self.transactional:
                    await self._discard()
                raise DriverError(f"{type(e).__name__}: {e}") from e
            finally:
                if self.trace is not None:
                    self.trace(sql, params or {}, time.perf_counter() - start)

    async def _discard(self) -> None:
        """End an implicit transaction left open by a failed ambient statement."""
        try:
            await self.adapter.rollback(self.conn)
        except self.adapter.error_types:
            logger.warning("Rollback of failed ambient statement failed", exc_info=True)

    async def execute(
        self, sql: str, params: dict[str, Any] | None = None, returning: str | None = None
    ) -> ExecResult:
        """Execute a statement, return (rowcount, lastrowid)."""
        return await self._call(sql, params, partial(self.adapter.execute, self.conn, sql, params, returning))

    async def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self._call(sql, params, partial(self.adapter.fetch_one, self.conn, sql, params))

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return await self._call(sql, params, partial(self.adapter.fetch_all, self.conn, sql, params))

    async def begin(self) -> None:
        await self._driver(partial(self.adapter.begin, self.conn))

    async def commit(self) -> None:
        await self._driver(partial(self.adapter.commit, self.conn))

    async def rollback(self) -> None:
        await self._driver(partial(self.adapter.rollback, self.conn))

    async def _driver(self, operation: Callable[[], Awaitable[None]]) -> None:
        async with self._lock:
            try:
                await operation()
            except self.adapter.error_types as e:
                raise DriverError(f"{type(e).__name__}: {e}") from e


# -----------------------------------------------------------------------------
# Row-count checks
# -----------------------------------------------------------------------------


def confirm_insert(descriptor: TypeDescriptor, record: Any, result: ExecResult) -> None:
    """Check an INSERT result and store the generated key on record."""
    if result.rowcount != 1:
        raise IntegrityError(descriptor.table_name, descriptor.key_values(record), result.rowcount, "INSERT")
    auto = descriptor.auto_increment_field
    if auto is not None:
        auto.set(record, result.lastrowid)


def confirm_update(descriptor: TypeDescriptor, record: Any, rowcount: int) -> bool:
    """Check an UPDATE result; bump the in-memory version when confirmed.

    Returns:
        True if the row was updated, False for an unversioned type whose
        row does not exist.

    Raises:
        OptimisticLockError: Versioned type and no row matched key + version.
        IntegrityError: More than one row matched the key.
    """
    version = descriptor.version_field
    if rowcount == 1:
        if version is not None:
            version.set(record, version.get(record) + 1)
        return True
    if rowcount == 0:
        if version is None:
            return False
        key = descriptor.key_values(record)
        logger.info("Stale update on '%s' key=%r version=%r", descriptor.table_name, key, version.get(record))
        raise OptimisticLockError(descriptor.table_name, key, version.get(record))
    raise IntegrityError(descriptor.table_name, descriptor.key_values(record), rowcount, "UPDATE")


def confirm_delete(descriptor: TypeDescriptor, record: Any, rowcount: int) -> None:
    if rowcount == 1:
        return
    key = descriptor.key_values(record)
    if rowcount == 0:
        raise NotFoundError(descriptor.table_name, key)
    raise IntegrityError(descriptor.table_name, key, rowcount, "DELETE")


# -----------------------------------------------------------------------------
# SqlExecutor
# -----------------------------------------------------------------------------


class SqlExecutor(ABC):
    """Operation surface shared by Mapper and Transaction.

    Subclasses provide the owning mapper and _operation(), an async context
    manager yielding the ExecutionContext every operation runs on.
    """

    mapper: Mapper

    @abstractmethod
    def _operation(self) -> AbstractAsyncContextManager[ExecutionContext]:
        ...

    async def insert(self, *records: Any) -> None:
        """Insert records one after the other.

        Each record goes through its hooks and its own statement. The first
        failure stops the batch; the error carries a note with the index of
        the failing record. On the ambient connection the records inserted
        before it stay committed.
        """
        for index, record in enumerate(records):
            try:
                await self._insert_one(record)
            except Exception as e:
                if len(records) > 1:
                    e.add_note(f"insert stopped at record {index} of {len(records)}")
                raise

    async def _insert_one(self, record: Any) -> None:
        async with self._operation() as ctx:
            descriptor, statements = self.mapper.lookup(type(record))
            await invoke_hook(descriptor, "pre_insert", record, self)
            stmt = statements.insert
            result = await ctx.execute(stmt.sql, stmt.bind(record), returning=stmt.returning)
            confirm_insert(descriptor, record, result)
            await invoke_hook(descriptor, "post_insert", record, self)

    async def update(self, record: Any) -> bool:
        """Update the row of record.

        Returns:
            True when the row was updated. False only for unversioned types
            whose row does not exist.

        Raises:
            OptimisticLockError: The stored version differs from the record's
                (or the row is gone). The record is left unchanged.
        """
        async with self._operation() as ctx:
            descriptor, statements = self.mapper.lookup(type(record))
            if statements.update is None:
                raise MapperError(f"Table '{descriptor.table_name}' has only key columns; nothing to update")
            await invoke_hook(descriptor, "pre_update", record, self)
            stmt = statements.update
            result = await ctx.execute(stmt.sql, stmt.bind(record))
            applied = confirm_update(descriptor, record, result.rowcount)
            if applied:
                await invoke_hook(descriptor, "post_update", record, self)
            return applied

    async def delete(self, record: Any) -> bool:
        """Delete the row of record by key. The version is not checked.

        Raises:
            NotFoundError: No row with that key.
        """
        async with self._operation() as ctx:
            descriptor, statements = self.mapper.lookup(type(record))
            await invoke_hook(descriptor, "pre_delete", record, self)
            stmt = statements.delete
            result = await ctx.execute(stmt.sql, stmt.bind(record))
            confirm_delete(descriptor, record, result.rowcount)
            await invoke_hook(descriptor, "post_delete", record, self)
            return True

    async def get(self, record_type: type, *key: Any, ignore_missing: bool = False) -> Any:
        """Load a record by key values, given in key declaration order.

        Raises:
            NotFoundError: No row with that key and ignore_missing=False.
        """
        async with self._operation() as ctx:
            descriptor, statements = self.mapper.lookup(record_type)
            stmt = statements.select_by_key
            row = await ctx.fetch_one(stmt.sql, stmt.bind_key(key))
            if row is None:
                if ignore_missing:
                    return None
                raise NotFoundError(descriptor.table_name, key)
            record = descriptor.new_record(row)
            await invoke_hook(descriptor, "post_get", record, self)
            return record

    async def select(self, record_type: type, query: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Run a raw SELECT and map each row onto record_type.

        Result columns are matched to fields by column name; fields without
        a matching column keep their default.
        """
        async with self._operation() as ctx:
            descriptor, _ = self.mapper.lookup(record_type)
            rows = await ctx.fetch_all(query, params)
            records = [descriptor.new_record(row) for row in rows]
            for record in records:
                await invoke_hook(descriptor, "post_get", record, self)
            return records

    async def select_one(
        self, record_type: type, query: str, params: dict[str, Any] | None = None
    ) -> Any | None:
        """Like select() for queries returning at most one row."""
        records = await self.select(record_type, query, params)
        if len(records) > 1:
            raise MapperError(f"select_one() expected at most 1 row, got {len(records)}")
        return records[0] if records else None

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute raw SQL, return affected row count."""
        async with self._operation() as ctx:
            result = await ctx.execute(query, params)
            return result.rowcount

    async def fetch_all(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute raw SQL, return rows as dicts."""
        async with self._operation() as ctx:
            return await ctx.fetch_all(query, params)


__all__ = [
    "ExecutionContext",
    "SqlExecutor",
    "TraceSink",
    "log_trace",
    "confirm_insert",
    "confirm_update",
    "confirm_delete",
]
