# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Mapper: type registry and operations on the ambient connection."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from .adapters import DbAdapter, get_adapter
from .context import ExecutionContext, SqlExecutor, TraceSink, log_trace
from .descriptor import TableHandle, TypeDescriptor
from .errors import ConfigurationError, DriverError
from .statements import StatementSet, build_create_table, build_drop_table, build_statements
from .transaction import Transaction

if TYPE_CHECKING:
    from .config import MapperConfig

logger = logging.getLogger(__name__)


class Mapper(SqlExecutor):
    """Registry of mapped types and session facade.

    Registration happens at startup; afterwards the registry is only read.
    Operations on the Mapper run on its ambient connection, each statement
    committed on its own. Use begin() or transaction() to group operations
    atomically.

    Multiple mappers can coexist (e.g. one per test), each with its own
    registry and connection.

    Usage:
        mapper = Mapper("/data/shop.db", trace=log_trace)
        mapper.add_table(Product).set_keys(True, "id").set_version_field("version")

        async with mapper:
            await mapper.create_tables()
            product = Product(description="Wool socks", unit_price=499)
            await mapper.insert(product)

            async with mapper.transaction() as tx:
                product.unit_price = 450
                await tx.update(product)
            # COMMIT on success, ROLLBACK on exception
    """

    def __init__(self, connection: str | DbAdapter, trace: TraceSink | None = None, **adapter_options: Any):
        """Initialize the mapper.

        Args:
            connection: Connection string (see adapters.get_adapter) or adapter.
            trace: Optional sink receiving (sql, params, duration) per statement.
            **adapter_options: PostgreSQL pool options (pool_size, connect_timeout).
        """
        if isinstance(connection, DbAdapter):
            self.adapter = connection
        else:
            self.adapter = get_adapter(connection, **adapter_options)
        self.trace = trace
        self._handles: dict[type, TableHandle] = {}
        self._compiled: dict[type, tuple[TypeDescriptor, StatementSet]] = {}
        self._ambient: ExecutionContext | None = None

    @classmethod
    def from_config(cls, config: MapperConfig) -> Mapper:
        """Build a mapper from MapperConfig."""
        return cls(
            config.db_path,
            trace=log_trace if config.trace_sql else None,
            pool_size=config.pool_size,
            connect_timeout=config.connect_timeout,
        )

    @property
    def mapper(self) -> Mapper:
        return self

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def add_table(self, sample: Any, name: str | None = None) -> TableHandle:
        """Register a dataclass type, given as the class or a sample instance.

        Args:
            sample: Record class or instance.
            name: Table name. Default: lower-cased class name.

        Returns:
            TableHandle to declare keys, version field and column overrides.

        Raises:
            ConfigurationError: Type already registered, table name taken,
                or the type cannot be mapped.
        """
        record_type = sample if isinstance(sample, type) else type(sample)
        existing = self._handles.get(record_type)
        if existing is not None:
            raise ConfigurationError(
                f"{record_type.__name__} is already registered as table '{existing.table_name}'"
            )

        handle = TableHandle(record_type, name)
        for other in self._handles.values():
            if other.table_name == handle.table_name:
                raise ConfigurationError(
                    f"Table '{handle.table_name}' is already bound to {other.record_type.__name__}"
                )
        self._handles[record_type] = handle
        logger.debug("Registered %s as table '%s'", record_type.__name__, handle.table_name)
        return handle

    def add_table_with_name(self, sample: Any, name: str) -> TableHandle:
        """Register a type under an explicit table name."""
        return self.add_table(sample, name)

    @property
    def tables(self) -> dict[str, TableHandle]:
        """Registered table handles by table name."""
        return {handle.table_name: handle for handle in self._handles.values()}

    def table(self, record_type: type) -> TypeDescriptor:
        """Return the descriptor of a registered type, freezing its handle."""
        return self.lookup(record_type)[0]

    def lookup(self, record_type: type) -> tuple[TypeDescriptor, StatementSet]:
        """Return descriptor and statements of record_type.

        The first lookup freezes the table handle and builds the statements.

        Raises:
            ConfigurationError: Type not registered or configuration invalid.
        """
        compiled = self._compiled.get(record_type)
        if compiled is not None:
            return compiled
        handle = self._handles.get(record_type)
        if handle is None:
            raise ConfigurationError(f"{record_type.__name__} is not registered. Use add_table() first.")
        descriptor = handle.freeze()
        compiled = (descriptor, build_statements(descriptor, self.adapter))
        self._compiled[record_type] = compiled
        return compiled

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._ambient is not None

    async def open(self) -> None:
        """Acquire the ambient connection."""
        if self._ambient is not None:
            return
        conn = await self._acquire()
        self._ambient = ExecutionContext(self.adapter, conn, transactional=False, trace=self.trace)

    async def close(self) -> None:
        """Release the ambient connection and shut the adapter down."""
        if self._ambient is not None:
            conn = self._ambient.conn
            self._ambient = None
            await self.adapter.release(conn)
        await self.adapter.shutdown()

    async def __aenter__(self) -> Mapper:
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _acquire(self) -> Any:
        try:
            return await self.adapter.acquire()
        except self.adapter.error_types as e:
            raise DriverError(f"{type(e).__name__}: {e}") from e

    @asynccontextmanager
    async def _operation(self) -> AsyncIterator[ExecutionContext]:
        if self._ambient is None:
            raise RuntimeError("Mapper is not open. Use 'async with mapper:' or 'await mapper.open()'")
        yield self._ambient

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def begin(self) -> Transaction:
        """Open a transaction on a dedicated connection."""
        conn = await self._acquire()
        context = ExecutionContext(self.adapter, conn, transactional=True, trace=self.trace)
        try:
            await context.begin()
        except DriverError:
            await self.adapter.release(conn)
            raise
        logger.debug("Transaction started")
        return Transaction(self, context)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Context manager ending the transaction on exit.

        Usage:
            async with mapper.transaction() as tx:
                await tx.insert(a, b, c)
            # COMMIT automatic

            async with mapper.transaction() as tx:
                await tx.insert(a)
                raise ValueError("Ops")  # ROLLBACK automatic
        """
        tx = await self.begin()
        try:
            yield tx
        except BaseException:
            if not tx.closed:
                await tx.rollback()
            raise
        if not tx.closed:
            await tx.end()

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    async def create_tables(self, if_not_exists: bool = True) -> None:
        """Create the tables of all registered types."""
        for record_type in self._handles:
            descriptor = self.table(record_type)
            await self.execute(build_create_table(descriptor, self.adapter, if_not_exists))

    async def drop_tables(self, if_exists: bool = True) -> None:
        """Drop the tables of all registered types, in reverse registration order."""
        for record_type in reversed(list(self._handles)):
            descriptor = self.table(record_type)
            await self.execute(build_drop_table(descriptor, self.adapter, if_exists))


__all__ = ["Mapper"]
