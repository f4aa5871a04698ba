# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter class: the driver boundary consumed by the mapper."""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from typing import Any, NamedTuple


class ExecResult(NamedTuple):
    """Outcome of a write statement."""

    rowcount: int
    lastrowid: Any = None


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    Provides a unified interface for SQLite and PostgreSQL with:
    - Connection management (acquire, release, shutdown)
    - Transaction control (commit, rollback on connection)
    - Statement execution (execute, fetch_one, fetch_all)
    - Dialect strategy (identifier quoting, placeholders, column types)

    Connection model:
    - acquire(): Returns a new connection (from pool or new file handle)
    - release(conn): Returns connection to pool or closes it
    - shutdown(): Closes connection pool (application shutdown only)

    Subclasses must implement the abstract methods, set the placeholder
    attribute for parameter binding (`:name` for SQLite, `%(name)s` for
    PostgreSQL) and list the driver's exception classes in error_types.
    """

    placeholder: str = ":name"  # Override in subclass
    error_types: tuple[type[BaseException], ...] = ()

    # Python type -> column type, overridden per dialect
    column_types: dict[type, str] = {
        bool: "BOOLEAN",
        int: "INTEGER",
        float: "REAL",
        str: "TEXT",
        bytes: "BLOB",
        datetime.datetime: "TIMESTAMP",
        datetime.date: "DATE",
    }

    def pk_column(self, name: str) -> str:
        """Return SQL definition for autoincrement primary key column."""
        return f"{self.sql_name(name)} INTEGER PRIMARY KEY"

    def column_type(self, python_type: type) -> str:
        """Return the column type used to store values of python_type."""
        for base in python_type.__mro__:
            if base in self.column_types:
                return self.column_types[base]
        return "TEXT"

    @abstractmethod
    async def acquire(self) -> Any:
        """Acquire a new connection.

        For pooled adapters: gets connection from pool.
        For file-based adapters: opens new connection.
        """
        ...

    @abstractmethod
    async def release(self, conn: Any) -> None:
        """Release a connection.

        For pooled adapters: returns connection to pool.
        For file-based adapters: closes connection.
        """
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connection pool (application shutdown).

        For file-based adapters: no-op (connections are closed on release).
        """
        ...

    # -------------------------------------------------------------------------
    # Connection-bound operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def execute(
        self,
        conn: Any,
        query: str,
        params: dict[str, Any] | None = None,
        returning: str | None = None,
    ) -> ExecResult:
        """Execute query on connection.

        Args:
            conn: Connection from acquire().
            query: SQL with named placeholders.
            params: Bind values keyed by placeholder name.
            returning: Column whose generated value should be reported
                as lastrowid (auto-increment keys on insert).
        """
        ...

    @abstractmethod
    async def fetch_one(
        self, conn: Any, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query on connection, return single row as dict or None."""
        ...

    @abstractmethod
    async def fetch_all(
        self, conn: Any, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query on connection, return all rows as list of dicts."""
        ...

    async def begin(self, conn: Any) -> None:
        """Start a transaction on connection. Default: the driver begins implicitly."""
        pass

    @abstractmethod
    async def commit(self, conn: Any) -> None:
        """Commit transaction on connection."""
        ...

    @abstractmethod
    async def rollback(self, conn: Any) -> None:
        """Rollback transaction on connection."""
        ...

    # -------------------------------------------------------------------------
    # SQL Helpers
    # -------------------------------------------------------------------------

    def sql_name(self, name: str) -> str:
        """Return quoted SQL identifier for column/table name."""
        return '"{}"'.format(name.replace('"', '""'))

    def placeholder_for(self, name: str) -> str:
        """Return placeholder for named parameter."""
        return self.placeholder.replace("name", name)
