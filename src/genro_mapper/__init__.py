# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""genro-mapper: dataclass-to-table mapping with optimistic locking.

Components:
    Mapper: Type registry; insert/update/delete/get on the ambient connection.
    Transaction: The same operations bound to one database transaction.
    TableHandle: Registration handle (keys, version field, column overrides).
    PreInsert ... PostGet: Hook capabilities a record type can opt into.

Example::

    from dataclasses import dataclass
    from genro_mapper import Mapper

    @dataclass
    class Product:
        id: int = 0
        description: str = ""
        unit_price: int = 0
        version: int = 0

    mapper = Mapper("/data/shop.db")
    mapper.add_table(Product).set_keys(True, "id").set_version_field("version")

    async with mapper:
        await mapper.create_tables()
        socks = Product(description="Wool socks", unit_price=499)
        await mapper.insert(socks)           # socks.id assigned
        socks.unit_price = 450
        await mapper.update(socks)           # socks.version == 1
"""

from .config import MapperConfig, config_from_env
from .context import ExecutionContext, SqlExecutor, log_trace
from .descriptor import FieldDescriptor, TableHandle, TypeDescriptor
from .errors import (
    ConfigurationError,
    DriverError,
    IntegrityError,
    MapperError,
    NotFoundError,
    OptimisticLockError,
    TransactionClosedError,
)
from .hooks import PostDelete, PostGet, PostInsert, PostUpdate, PreDelete, PreInsert, PreUpdate
from .mapper import Mapper
from .transaction import Transaction

__version__ = "0.1.0"

__all__ = [
    "Mapper",
    "Transaction",
    "MapperConfig",
    "config_from_env",
    "TableHandle",
    "TypeDescriptor",
    "FieldDescriptor",
    "ExecutionContext",
    "SqlExecutor",
    "log_trace",
    # Hooks
    "PreInsert",
    "PostInsert",
    "PreUpdate",
    "PostUpdate",
    "PreDelete",
    "PostDelete",
    "PostGet",
    # Exceptions
    "MapperError",
    "ConfigurationError",
    "OptimisticLockError",
    "NotFoundError",
    "IntegrityError",
    "TransactionClosedError",
    "DriverError",
]
