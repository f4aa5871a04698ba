# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy raised by the mapper.

    MapperError
    ├── ConfigurationError      bad registration (fatal at startup)
    ├── OptimisticLockError     stale version on update (reload and retry)
    ├── NotFoundError           delete/get target missing
    ├── IntegrityError          more rows touched than a unique key allows
    ├── TransactionClosedError  operation on an ended transaction
    └── DriverError             wraps the driver exception (see __cause__)

Hook exceptions are never wrapped: they reach the caller as raised.
"""

from __future__ import annotations

from typing import Any


class MapperError(Exception):
    """Base class for all mapper errors."""


class ConfigurationError(MapperError):
    """Raised when a type cannot be registered or a table handle is misused."""


class OptimisticLockError(MapperError):
    """Raised when an update matched no row for the key and version it carried.

    A missing row and a version mismatch look the same (zero affected rows).
    """

    def __init__(self, table: str, key: tuple[Any, ...], version: Any):
        self.table = table
        self.key = key
        self.version = version
        super().__init__(
            f"Stale record in '{table}' with key={key!r}: version {version!r} is no longer current"
        )


class NotFoundError(MapperError):
    """Raised when delete() or get() finds no row for the given key."""

    def __init__(self, table: str, key: tuple[Any, ...]):
        self.table = table
        self.key = key
        super().__init__(f"Record not found in '{table}' with key={key!r}")


class IntegrityError(MapperError):
    """Raised when a statement affected a row count a unique key cannot produce."""

    def __init__(self, table: str, key: tuple[Any, ...] | None, rowcount: int, operation: str):
        self.table = table
        self.key = key
        self.rowcount = rowcount
        self.operation = operation
        super().__init__(
            f"{operation} on '{table}' with key={key!r} affected {rowcount} rows, expected 1"
        )


class TransactionClosedError(MapperError):
    """Raised when a transaction is used after end() or rollback()."""

    def __init__(self) -> None:
        super().__init__("Transaction already ended")


class DriverError(MapperError):
    """Raised for any error coming from the database driver.

    The original driver exception is available as ``__cause__``.
    """


__all__ = [
    "MapperError",
    "ConfigurationError",
    "OptimisticLockError",
    "NotFoundError",
    "IntegrityError",
    "TransactionClosedError",
    "DriverError",
]
