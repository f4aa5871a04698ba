# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transaction: the mapper's operations bound to one database transaction."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from .context import ExecutionContext, SqlExecutor
from .errors import DriverError, TransactionClosedError

if TYPE_CHECKING:
    from .mapper import Mapper

logger = logging.getLogger(__name__)


class Transaction(SqlExecutor):
    """Single-use transaction returned by Mapper.begin().

    Exposes the same insert/update/delete/get/select surface as the Mapper,
    executed in call order on a dedicated connection. Any operation that
    raises marks the transaction as failed; end() then rolls back.

    Usage:
        tx = await mapper.begin()
        try:
            await tx.insert(invoice, *lines)
            await tx.update(customer)
        finally:
            await tx.end()  # COMMIT, or ROLLBACK + re-raise if an operation failed

    Prefer Mapper.transaction(), which calls end() for you.
    """

    def __init__(self, mapper: Mapper, context: ExecutionContext):
        self.mapper = mapper
        self.context = context
        self.error: BaseException | None = None
        self.closed = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    @asynccontextmanager
    async def _operation(self) -> AsyncIterator[ExecutionContext]:
        if self.closed:
            raise TransactionClosedError()
        try:
            yield self.context
        except Exception as e:
            if self.error is None:
                self.error = e
            raise

    async def end(self) -> None:
        """Commit, or roll back if any operation failed.

        Raises:
            The first error raised by an operation of this transaction,
            unchanged, after rolling back.
            DriverError: Commit failed; the transaction was rolled back.
            TransactionClosedError: end() or rollback() was already called.
        """
        if self.closed:
            raise TransactionClosedError()
        self.closed = True
        try:
            if self.error is not None:
                logger.warning("Rolling back transaction after %s: %s", type(self.error).__name__, self.error)
                await self._rollback_quietly("after failed operation")
                raise self.error
            try:
                await self.context.commit()
            except DriverError:
                await self._rollback_quietly("after failed commit")
                raise
            logger.debug("Transaction committed")
        finally:
            await self.mapper.adapter.release(self.context.conn)

    async def rollback(self) -> None:
        """Discard the work of this transaction and close it."""
        if self.closed:
            raise TransactionClosedError()
        self.closed = True
        try:
            await self.context.rollback()
            logger.debug("Transaction rolled back")
        finally:
            await self.mapper.adapter.release(self.context.conn)

    async def _rollback_quietly(self, when: str) -> None:
        try:
            await self.context.rollback()
        except DriverError:
            logger.warning("Rollback %s also failed", when, exc_info=True)


__all__ = ["Transaction"]
