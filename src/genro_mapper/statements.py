# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQL statement builder.

Pure functions of a TypeDescriptor and a dialect (the adapter's quoting
and placeholder strategy). Each returns a Statement: the SQL template and
the ordered bind parameters, each naming the field it reads from the
record. Nothing here touches the database.

Parameter names follow the same convention as the rest of the package:
``val_<column>`` for written values, ``whr_<column>`` for predicates.

Optimistic locking lives in build_update(): when the type has a version
field, the row is matched on the key AND on the version the caller holds,
while SET writes version + 1. A concurrent writer that already bumped the
version makes the statement affect zero rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ConfigurationError, MapperError

if TYPE_CHECKING:
    from .adapters import DbAdapter
    from .descriptor import FieldDescriptor, TypeDescriptor


@dataclass(frozen=True)
class BindParam:
    """A named parameter read from a record field.

    bump: bind the field value plus one (new version on update).
    """

    name: str
    field: FieldDescriptor
    bump: bool = False

    def value(self, record: Any) -> Any:
        value = self.field.get(record)
        return value + 1 if self.bump else value


@dataclass(frozen=True)
class Statement:
    """SQL template with its ordered bind parameters.

    Attributes:
        sql: Statement text with dialect placeholders.
        params: Bind parameters in placeholder order.
        returning: Column of a database-generated key to report back.
    """

    sql: str
    params: tuple[BindParam, ...] = ()
    returning: str | None = None

    def bind(self, record: Any) -> dict[str, Any]:
        """Read every parameter value from record."""
        return {p.name: p.value(record) for p in self.params}

    def bind_key(self, key_values: tuple[Any, ...]) -> dict[str, Any]:
        """Bind explicit key values (statements whose params are the key fields)."""
        if len(key_values) != len(self.params):
            raise MapperError(f"Expected {len(self.params)} key values, got {len(key_values)}")
        return {p.name: value for p, value in zip(self.params, key_values, strict=True)}


@dataclass(frozen=True)
class StatementSet:
    """The CRUD statements of one mapped type.

    update is None when every column is part of the key.
    """

    insert: Statement
    update: Statement | None
    delete: Statement
    select_by_key: Statement


def _param(prefix: str, field: FieldDescriptor, index: int) -> str:
    """Placeholder name for field; falls back to its position for exotic column names."""
    column = field.column_name
    if column.isidentifier() and column.isascii():
        return f"{prefix}_{column}"
    return f"{prefix}_{index}"


def _key_predicate(
    descriptor: TypeDescriptor, dialect: DbAdapter, with_version: bool = False
) -> tuple[str, list[BindParam]]:
    fields = list(descriptor.key_fields)
    if with_version and descriptor.version_field is not None:
        fields.append(descriptor.version_field)
    conditions = []
    params = []
    for index, f in enumerate(fields):
        param = BindParam(_param("whr", f, index), f)
        conditions.append(f"{dialect.sql_name(f.column_name)} = {dialect.placeholder_for(param.name)}")
        params.append(param)
    return " AND ".join(conditions), params


def build_insert(descriptor: TypeDescriptor, dialect: DbAdapter) -> Statement:
    """INSERT of every column except an auto-increment key."""
    table = dialect.sql_name(descriptor.table_name)
    fields = [f for f in descriptor.fields if not f.is_auto_increment]
    auto = descriptor.auto_increment_field
    returning = auto.column_name if auto is not None else None
    if not fields:
        return Statement(f"INSERT INTO {table} DEFAULT VALUES", (), returning)

    params = tuple(BindParam(_param("val", f, i), f) for i, f in enumerate(fields))
    col_list = ", ".join(dialect.sql_name(f.column_name) for f in fields)
    placeholders = ", ".join(dialect.placeholder_for(p.name) for p in params)
    return Statement(f"INSERT INTO {table} ({col_list}) VALUES ({placeholders})", params, returning)


def build_update(descriptor: TypeDescriptor, dialect: DbAdapter) -> Statement:
    """UPDATE of every non-key column, matched on key and current version."""
    fields = descriptor.non_key_fields
    if not fields:
        raise ConfigurationError(f"Table '{descriptor.table_name}' has no non-key columns to update")

    set_params = tuple(BindParam(_param("val", f, i), f, bump=f.is_version) for i, f in enumerate(fields))
    set_parts = ", ".join(
        f"{dialect.sql_name(p.field.column_name)} = {dialect.placeholder_for(p.name)}" for p in set_params
    )
    where, where_params = _key_predicate(descriptor, dialect, with_version=True)
    sql = f"UPDATE {dialect.sql_name(descriptor.table_name)} SET {set_parts} WHERE {where}"
    return Statement(sql, set_params + tuple(where_params))


def build_delete(descriptor: TypeDescriptor, dialect: DbAdapter) -> Statement:
    """DELETE matched on the key only; the version is not checked."""
    where, params = _key_predicate(descriptor, dialect)
    return Statement(f"DELETE FROM {dialect.sql_name(descriptor.table_name)} WHERE {where}", tuple(params))


def build_select_by_key(descriptor: TypeDescriptor, dialect: DbAdapter) -> Statement:
    """SELECT of every mapped column, in field order, matched on the key."""
    columns = ", ".join(dialect.sql_name(f.column_name) for f in descriptor.fields)
    where, params = _key_predicate(descriptor, dialect)
    sql = f"SELECT {columns} FROM {dialect.sql_name(descriptor.table_name)} WHERE {where}"
    return Statement(sql, tuple(params))


def build_statements(descriptor: TypeDescriptor, dialect: DbAdapter) -> StatementSet:
    """Build the CRUD statements of descriptor once."""
    return StatementSet(
        insert=build_insert(descriptor, dialect),
        update=build_update(descriptor, dialect) if descriptor.non_key_fields else None,
        delete=build_delete(descriptor, dialect),
        select_by_key=build_select_by_key(descriptor, dialect),
    )


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------


def build_create_table(
    descriptor: TypeDescriptor, dialect: DbAdapter, if_not_exists: bool = True
) -> str:
    """Generate CREATE TABLE from the field types."""
    col_defs = []
    for f in descriptor.fields:
        if f.is_auto_increment:
            col_defs.append(dialect.pk_column(f.column_name))
            continue
        col_def = f"{dialect.sql_name(f.column_name)} {dialect.column_type(f.python_type)}"
        if f.is_key or not f.nullable:
            col_def += " NOT NULL"
        col_defs.append(col_def)

    if not descriptor.auto_increment:
        keys = ", ".join(dialect.sql_name(f.column_name) for f in descriptor.key_fields)
        col_defs.append(f"PRIMARY KEY ({keys})")

    exists = "IF NOT EXISTS " if if_not_exists else ""
    return (
        f"CREATE TABLE {exists}{dialect.sql_name(descriptor.table_name)} (\n    "
        + ",\n    ".join(col_defs)
        + "\n)"
    )


def build_drop_table(descriptor: TypeDescriptor, dialect: DbAdapter, if_exists: bool = True) -> str:
    exists = "IF EXISTS " if if_exists else ""
    return f"DROP TABLE {exists}{dialect.sql_name(descriptor.table_name)}"


__all__ = [
    "BindParam",
    "Statement",
    "StatementSet",
    "build_insert",
    "build_update",
    "build_delete",
    "build_select_by_key",
    "build_statements",
    "build_create_table",
    "build_drop_table",
]
