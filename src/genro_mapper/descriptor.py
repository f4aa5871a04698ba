# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Type descriptors: how a dataclass record type maps to a table.

Registration walks the dataclass fields once and builds, for every mapped
field, a FieldDescriptor holding its column name and accessor closures.
Fields whose type is itself a dataclass are composed: their leaf fields
are flattened into the same table and accessed through the field path::

    @dataclass
    class Audit:
        id: int = 0
        version: int = 0

    @dataclass
    class Invoice:
        audit: Audit = field(default_factory=Audit)
        customer: str = ""

    mapper.add_table(Invoice).set_keys(True, "id").set_version_field("version")
    # columns: id, version, customer

Field metadata can override the defaults at class level:
    field(metadata={"column": "descr"})   # column name
    field(metadata={"transient": True})   # not mapped

A TableHandle is configurable until first use, when it freezes into an
immutable TypeDescriptor shared by every operation on that type.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
import operator
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigurationError
from .hooks import resolve_hooks

logger = logging.getLogger(__name__)


def is_integer_type(python_type: type) -> bool:
    """True for int and its subclasses, excluding bool."""
    return issubclass(python_type, int) and not issubclass(python_type, bool)


@dataclass(frozen=True)
class FieldDescriptor:
    """A mapped leaf field.

    Attributes:
        path: Attribute path from the record (("audit", "version")).
        column_name: Column the field is stored in.
        python_type: Declared type, Optional unwrapped.
        nullable: Declared as Optional.
        is_key: Part of the primary key.
        is_version: Optimistic-lock version counter.
        is_auto_increment: Key assigned by the database on insert.
    """

    path: tuple[str, ...]
    column_name: str
    python_type: type
    nullable: bool = False
    is_key: bool = False
    is_version: bool = False
    is_auto_increment: bool = False
    getter: Callable[[Any], Any] = field(default=None, repr=False, compare=False)  # type: ignore[assignment]
    setter: Callable[[Any, Any], None] = field(default=None, repr=False, compare=False)  # type: ignore[assignment]

    @property
    def name(self) -> str:
        """Dotted field path."""
        return ".".join(self.path)

    def get(self, record: Any) -> Any:
        return self.getter(record)

    def set(self, record: Any, value: Any) -> None:
        self.setter(record, value)

    def from_db(self, value: Any) -> Any:
        """Convert a stored value back to the declared field type."""
        if value is None:
            return None
        if self.python_type is bool and not isinstance(value, bool):
            return bool(value)
        if isinstance(value, str):
            if self.python_type is datetime.datetime:
                return datetime.datetime.fromisoformat(value)
            if self.python_type is datetime.date:
                return datetime.date.fromisoformat(value)
        return value


@dataclass(frozen=True)
class TypeDescriptor:
    """Immutable mapping of a record type to its table."""

    record_type: type
    table_name: str
    fields: tuple[FieldDescriptor, ...]
    key_fields: tuple[FieldDescriptor, ...]
    auto_increment: bool
    version_field: FieldDescriptor | None
    hooks: frozenset[str]
    factory: Callable[[dict[tuple[str, ...], Any]], Any] = field(repr=False, compare=False)

    @property
    def type_name(self) -> str:
        return self.record_type.__name__

    @property
    def auto_increment_field(self) -> FieldDescriptor | None:
        return self.key_fields[0] if self.auto_increment else None

    @property
    def non_key_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.fields if not f.is_key)

    def column_map(self) -> dict[str, FieldDescriptor]:
        """Mapped fields by column name."""
        return {f.column_name: f for f in self.fields}

    def key_values(self, record: Any) -> tuple[Any, ...]:
        """Return the key of record, in key declaration order."""
        return tuple(f.get(record) for f in self.key_fields)

    def new_record(self, row: dict[str, Any]) -> Any:
        """Build a record instance from a row keyed by column name.

        Columns missing from row leave the field at its dataclass default.
        """
        columns = self.column_map()
        values = {columns[c].path: columns[c].from_db(v) for c, v in row.items() if c in columns}
        return self.factory(values)


# -----------------------------------------------------------------------------
# Dataclass walking
# -----------------------------------------------------------------------------


@dataclass
class _FieldSpec:
    """Mutable per-field settings collected before freezing."""

    path: tuple[str, ...]
    column_name: str
    python_type: type
    nullable: bool
    has_default: bool
    transient: bool = False

    @property
    def name(self) -> str:
        return ".".join(self.path)


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    """Return (inner type, nullable) for Optional[X] / X | None."""
    if typing.get_origin(hint) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0], len(args) < len(typing.get_args(hint))
    return hint, False


def _make_accessors(path: tuple[str, ...]) -> tuple[Callable[[Any], Any], Callable[[Any, Any], None]]:
    """Build getter/setter closures for an attribute path."""
    getter = operator.attrgetter(".".join(path))
    *parents, leaf = path
    if parents:
        get_parent = operator.attrgetter(".".join(parents))

        def setter(record: Any, value: Any) -> None:
            setattr(get_parent(record), leaf, value)

    else:

        def setter(record: Any, value: Any) -> None:
            setattr(record, leaf, value)

    return getter, setter


def _walk(
    cls: type, prefix: tuple[str, ...], seen: frozenset[type]
) -> tuple[list[_FieldSpec], Callable[[dict[tuple[str, ...], Any]], Any]]:
    """Collect leaf field specs of dataclass cls and a factory rebuilding it.

    The factory takes a {path: value} dict and instantiates cls, building
    composed dataclasses bottom-up.
    """
    if not dataclasses.is_dataclass(cls):
        raise ConfigurationError(f"{cls.__name__} is not a dataclass")
    if cls.__dataclass_params__.frozen:  # type: ignore[attr-defined]
        raise ConfigurationError(f"{cls.__name__} is a frozen dataclass; mapped records must be writable")
    if cls in seen:
        raise ConfigurationError(f"{cls.__name__} composes itself")

    try:
        hints = typing.get_type_hints(cls)
    except NameError as e:
        raise ConfigurationError(f"Cannot resolve annotations of {cls.__name__}: {e}") from e

    specs: list[_FieldSpec] = []
    members: list[tuple[str, bool, Callable[[dict[tuple[str, ...], Any]], Any] | None]] = []
    for f in dataclasses.fields(cls):
        path = prefix + (f.name,)
        hint, nullable = _unwrap_optional(hints.get(f.name, Any))
        base = typing.get_origin(hint) or hint
        has_default = f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING

        if isinstance(hint, type) and dataclasses.is_dataclass(hint):
            child_specs, child_factory = _walk(hint, path, seen | {cls})
            specs.extend(child_specs)
            members.append((f.name, f.init, child_factory))
            continue

        spec = _FieldSpec(
            path=path,
            column_name=f.metadata.get("column", f.name.lower()),
            python_type=base if isinstance(base, type) else object,
            nullable=nullable,
            has_default=has_default or not f.init,
            transient=bool(f.metadata.get("transient", False)),
        )
        specs.append(spec)
        members.append((f.name, f.init, None))

    def factory(values: dict[tuple[str, ...], Any]) -> Any:
        kwargs: dict[str, Any] = {}
        late: dict[str, Any] = {}
        for name, init, child in members:
            if child is not None:
                value = child(values)
            elif prefix + (name,) in values:
                value = values[prefix + (name,)]
            else:
                continue
            if init:
                kwargs[name] = value
            else:
                late[name] = value
        record = cls(**kwargs)
        for name, value in late.items():
            setattr(record, name, value)
        return record

    return specs, factory


# -----------------------------------------------------------------------------
# TableHandle
# -----------------------------------------------------------------------------


class TableHandle:
    """Registration handle returned by Mapper.add_table().

    Configuration methods return the handle so calls can be chained::

        mapper.add_table(Product).set_keys(True, "id").set_version_field("version")
    """

    def __init__(self, record_type: type, table_name: str | None = None):
        self.record_type = record_type
        self.table_name = table_name or record_type.__name__.lower()
        self._specs, self._factory = _walk(record_type, (), frozenset())
        if not self._specs:
            raise ConfigurationError(f"{record_type.__name__} has no fields to map")
        self._keys: tuple[_FieldSpec, ...] = ()
        self._auto_increment = False
        self._version: _FieldSpec | None = None
        self._descriptor: TypeDescriptor | None = None

    @property
    def frozen(self) -> bool:
        return self._descriptor is not None

    def _check_mutable(self) -> None:
        if self._descriptor is not None:
            raise ConfigurationError(
                f"Table '{self.table_name}' is already in use and can no longer be configured"
            )

    def _find(self, name: str) -> _FieldSpec:
        """Resolve a dotted path or an unambiguous leaf field name."""
        for spec in self._specs:
            if spec.name == name:
                return spec
        matches = [spec for spec in self._specs if spec.path[-1] == name]
        if not matches:
            raise ConfigurationError(f"{self.record_type.__name__} has no field '{name}'")
        if len(matches) > 1:
            paths = ", ".join(m.name for m in matches)
            raise ConfigurationError(
                f"Field name '{name}' is ambiguous in {self.record_type.__name__}: {paths}"
            )
        return matches[0]

    def set_keys(self, auto_increment: bool, *field_names: str) -> TableHandle:
        """Declare the primary key fields.

        Args:
            auto_increment: The database assigns the key on insert. Requires
                a single integer key field.
            *field_names: Key fields, in key order.
        """
        self._check_mutable()
        if not field_names:
            raise ConfigurationError(f"set_keys() on '{self.table_name}' needs at least one field")
        keys = tuple(self._find(name) for name in field_names)
        if auto_increment:
            if len(keys) != 1:
                raise ConfigurationError(
                    f"Auto-increment key of '{self.table_name}' must be a single field, got {len(keys)}"
                )
            if not is_integer_type(keys[0].python_type):
                raise ConfigurationError(
                    f"Auto-increment key '{keys[0].name}' of '{self.table_name}' must be an integer field"
                )
        if self._version is not None and self._version in keys:
            raise ConfigurationError(f"Version field '{self._version.name}' cannot be part of the key")
        self._keys = keys
        self._auto_increment = auto_increment
        return self

    def set_version_field(self, field_name: str) -> TableHandle:
        """Enable optimistic locking on an integer field."""
        self._check_mutable()
        spec = self._find(field_name)
        if not is_integer_type(spec.python_type):
            raise ConfigurationError(
                f"Version field '{spec.name}' of '{self.table_name}' must be an integer field"
            )
        if spec.nullable:
            raise ConfigurationError(
                f"Version field '{spec.name}' of '{self.table_name}' cannot be Optional"
            )
        if spec in self._keys:
            raise ConfigurationError(f"Version field '{spec.name}' cannot be part of the key")
        self._version = spec
        return self

    def set_column(self, field_name: str, column_name: str) -> TableHandle:
        """Override the column a field is stored in."""
        self._check_mutable()
        self._find(field_name).column_name = column_name
        return self

    def set_transient(self, field_name: str) -> TableHandle:
        """Exclude a field from the table."""
        self._check_mutable()
        self._find(field_name).transient = True
        return self

    def freeze(self) -> TypeDescriptor:
        """Validate the configuration and build the immutable descriptor."""
        if self._descriptor is not None:
            return self._descriptor

        name = self.record_type.__name__
        if not self._keys:
            raise ConfigurationError(f"No key fields set for '{self.table_name}' ({name}); call set_keys()")

        columns: dict[str, _FieldSpec] = {}
        fields: list[FieldDescriptor] = []
        by_spec: dict[int, FieldDescriptor] = {}
        for spec in self._specs:
            if spec.transient:
                if spec in self._keys or spec is self._version:
                    raise ConfigurationError(f"Key or version field '{spec.name}' cannot be transient")
                if not spec.has_default:
                    raise ConfigurationError(
                        f"Transient field '{spec.name}' of {name} needs a default value"
                    )
                continue
            if spec.column_name in columns:
                raise ConfigurationError(
                    f"Fields '{columns[spec.column_name].name}' and '{spec.name}' "
                    f"both map to column '{spec.column_name}' in '{self.table_name}'"
                )
            columns[spec.column_name] = spec

            is_key = spec in self._keys
            getter, setter = _make_accessors(spec.path)
            fd = FieldDescriptor(
                path=spec.path,
                column_name=spec.column_name,
                python_type=spec.python_type,
                nullable=spec.nullable,
                is_key=is_key,
                is_version=spec is self._version,
                is_auto_increment=is_key and self._auto_increment,
                getter=getter,
                setter=setter,
            )
            fields.append(fd)
            by_spec[id(spec)] = fd

        self._descriptor = TypeDescriptor(
            record_type=self.record_type,
            table_name=self.table_name,
            fields=tuple(fields),
            key_fields=tuple(by_spec[id(spec)] for spec in self._keys),
            auto_increment=self._auto_increment,
            version_field=by_spec[id(self._version)] if self._version is not None else None,
            hooks=resolve_hooks(self.record_type),
            factory=self._factory,
        )
        logger.debug(
            "Mapped %s to table '%s' (%d columns, hooks: %s)",
            name,
            self.table_name,
            len(fields),
            ", ".join(sorted(self._descriptor.hooks)) or "none",
        )
        return self._descriptor


__all__ = ["FieldDescriptor", "TypeDescriptor", "TableHandle", "is_integer_type"]
