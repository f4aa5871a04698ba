# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for descriptor module - registration and type descriptors."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

import pytest
from mapped_types import Audit, Invoice, OrderLine, Product, Tag, Tracked, register_all

from genro_mapper import ConfigurationError, Mapper, TableHandle


@dataclass
class Empty:
    pass


@dataclass(frozen=True)
class Frozen:
    id: int = 0


class NotADataclass:
    id: int = 0


@dataclass
class Renamed:
    id: int = 0
    description: str = field(default="", metadata={"column": "descr"})
    cache: dict = field(default_factory=dict, metadata={"transient": True})


@dataclass
class Header:
    id: int = 0
    name: str = ""


@dataclass
class Clash:
    header: Header = field(default_factory=Header)
    name: str = ""


@dataclass
class Twice:
    first: Header = field(default_factory=Header)
    second: Header = field(default_factory=Header)


@dataclass
class NoDefault:
    id: int
    scratch: str


@dataclass
class Node:
    id: int = 0
    parent: Node | None = None


@dataclass
class NullableVersion:
    id: int = 0
    name: str = ""
    version: int | None = None


@pytest.fixture
def mapper(db_path) -> Mapper:
    """Unopened mapper; registration needs no connection."""
    return Mapper(db_path)


class TestRegistration:
    """Tests for Mapper.add_table."""

    def test_add_table_returns_handle(self, mapper):
        handle = mapper.add_table(Product)
        assert isinstance(handle, TableHandle)
        assert handle.table_name == "product"
        assert "product" in mapper.tables

    def test_add_table_from_sample_instance(self, mapper):
        handle = mapper.add_table(Product(description="Wool socks"))
        assert handle.record_type is Product

    def test_add_table_with_name(self, mapper):
        handle = mapper.add_table_with_name(Product, "products")
        assert handle.table_name == "products"
        assert mapper.tables["products"] is handle

    def test_second_registration_rejected(self, mapper):
        mapper.add_table(Product)
        with pytest.raises(ConfigurationError, match="already registered"):
            mapper.add_table(Product, "other_products")

    def test_table_name_bound_once(self, mapper):
        mapper.add_table(Product, "items")
        with pytest.raises(ConfigurationError, match="already bound"):
            mapper.add_table(Tag, "items")
        assert Tag not in [h.record_type for h in mapper.tables.values()]

    def test_not_a_dataclass(self, mapper):
        with pytest.raises(ConfigurationError, match="not a dataclass"):
            mapper.add_table(NotADataclass)

    def test_frozen_dataclass(self, mapper):
        with pytest.raises(ConfigurationError, match="frozen"):
            mapper.add_table(Frozen)

    def test_no_fields(self, mapper):
        with pytest.raises(ConfigurationError, match="no fields"):
            mapper.add_table(Empty)

    def test_self_composition(self, mapper):
        with pytest.raises(ConfigurationError, match="composes itself"):
            mapper.add_table(Node)

    def test_registries_are_independent(self, db_path):
        first = Mapper(db_path)
        second = Mapper(db_path)
        first.add_table(Product).set_keys(True, "id")
        second.add_table(Product).set_keys(True, "id")
        assert first.table(Product) is not second.table(Product)


class TestTableHandle:
    """Tests for key, version and column configuration."""

    def test_unknown_key_field(self, mapper):
        handle = mapper.add_table(Product)
        with pytest.raises(ConfigurationError, match="no field 'sku'"):
            handle.set_keys(False, "sku")

    def test_set_keys_needs_fields(self, mapper):
        with pytest.raises(ConfigurationError, match="at least one field"):
            mapper.add_table(Product).set_keys(True)

    def test_auto_increment_needs_single_key(self, mapper):
        handle = mapper.add_table(OrderLine)
        with pytest.raises(ConfigurationError, match="single field"):
            handle.set_keys(True, "order_id", "line_no")

    def test_auto_increment_needs_integer_key(self, mapper):
        handle = mapper.add_table(Tag)
        with pytest.raises(ConfigurationError, match="must be an integer"):
            handle.set_keys(True, "code")

    def test_version_must_be_integer(self, mapper):
        handle = mapper.add_table(Product).set_keys(True, "id")
        with pytest.raises(ConfigurationError, match="must be an integer"):
            handle.set_version_field("description")

    def test_version_cannot_be_optional(self, mapper):
        handle = mapper.add_table(NullableVersion).set_keys(True, "id")
        with pytest.raises(ConfigurationError, match="cannot be Optional"):
            handle.set_version_field("version")
        assert mapper.table(NullableVersion).version_field is None

    def test_version_cannot_be_key(self, mapper):
        handle = mapper.add_table(Product).set_keys(True, "id")
        with pytest.raises(ConfigurationError, match="cannot be part of the key"):
            handle.set_version_field("id")

    def test_key_cannot_be_version(self, mapper):
        handle = mapper.add_table(OrderLine).set_version_field("quantity")
        with pytest.raises(ConfigurationError, match="cannot be part of the key"):
            handle.set_keys(False, "order_id", "quantity")

    def test_missing_keys_detected_on_first_use(self, mapper):
        mapper.add_table(Product)
        with pytest.raises(ConfigurationError, match="No key fields"):
            mapper.table(Product)

    def test_frozen_after_first_use(self, mapper):
        handle = mapper.add_table(Product).set_keys(True, "id")
        mapper.table(Product)
        assert handle.frozen
        with pytest.raises(ConfigurationError, match="already in use"):
            handle.set_version_field("version")

    def test_ambiguous_leaf_name(self, mapper):
        handle = mapper.add_table(Twice)
        with pytest.raises(ConfigurationError, match="ambiguous"):
            handle.set_keys(False, "name")

    def test_exact_path_wins_over_leaf(self, mapper):
        handle = mapper.add_table(Clash).set_keys(False, "name")
        assert handle._keys[0].path == ("name",)

    def test_dotted_path_resolves_ambiguity(self, mapper):
        handle = mapper.add_table(Clash).set_keys(True, "header.id").set_column("header.name", "header_name")
        descriptor = handle.freeze()
        assert descriptor.key_fields[0].path == ("header", "id")
        assert [f.column_name for f in descriptor.fields] == ["id", "header_name", "name"]

    def test_duplicate_column(self, mapper):
        handle = mapper.add_table(Clash).set_keys(True, "header.id")
        with pytest.raises(ConfigurationError, match="both map to column 'name'"):
            handle.freeze()

    def test_set_column(self, mapper):
        mapper.add_table(Product).set_keys(True, "id").set_column("unit_price", "price")
        columns = [f.column_name for f in mapper.table(Product).fields]
        assert columns == ["id", "description", "price", "version"]

    def test_set_transient(self, mapper):
        mapper.add_table(Product).set_keys(True, "id").set_transient("description")
        columns = [f.column_name for f in mapper.table(Product).fields]
        assert "description" not in columns

    def test_transient_needs_default(self, mapper):
        mapper.add_table(NoDefault).set_keys(False, "id").set_transient("scratch")
        with pytest.raises(ConfigurationError, match="needs a default"):
            mapper.table(NoDefault)

    def test_key_cannot_be_transient(self, mapper):
        mapper.add_table(Product).set_keys(True, "id").set_transient("id")
        with pytest.raises(ConfigurationError, match="cannot be transient"):
            mapper.table(Product)


class TestTypeDescriptor:
    """Tests for the frozen descriptor."""

    def test_product_descriptor(self, mapper):
        register_all(mapper)
        descriptor = mapper.table(Product)
        assert descriptor.type_name == "Product"
        assert descriptor.table_name == "product"
        assert [f.name for f in descriptor.fields] == ["id", "description", "unit_price", "version"]
        assert [f.name for f in descriptor.key_fields] == ["id"]
        assert descriptor.auto_increment
        assert descriptor.auto_increment_field.is_auto_increment
        assert descriptor.version_field.name == "version"
        assert descriptor.version_field.is_version
        assert descriptor.hooks == frozenset({"pre_insert"})

    def test_composite_key_order(self, mapper):
        register_all(mapper)
        descriptor = mapper.table(OrderLine)
        assert [f.name for f in descriptor.key_fields] == ["order_id", "line_no"]
        assert not descriptor.auto_increment
        assert descriptor.auto_increment_field is None
        assert descriptor.version_field is None
        assert descriptor.key_values(OrderLine(order_id=3, line_no=1)) == (3, 1)

    def test_metadata_overrides(self, mapper):
        mapper.add_table(Renamed).set_keys(True, "id")
        descriptor = mapper.table(Renamed)
        assert [f.column_name for f in descriptor.fields] == ["id", "descr"]

    def test_composed_fields_are_flattened(self, mapper):
        register_all(mapper)
        descriptor = mapper.table(Invoice)
        assert [f.column_name for f in descriptor.fields] == [
            "id",
            "version",
            "customer",
            "total",
            "paid",
            "issued",
        ]
        assert descriptor.key_fields[0].path == ("audit", "id")
        assert descriptor.version_field.path == ("audit", "version")
        assert descriptor.key_fields[0].nullable

    def test_column_map(self, mapper):
        register_all(mapper)
        columns = mapper.table(Invoice).column_map()
        assert list(columns) == ["id", "version", "customer", "total", "paid", "issued"]
        assert columns["version"].path == ("audit", "version")

    def test_accessors_follow_path(self, mapper):
        register_all(mapper)
        version = mapper.table(Invoice).version_field
        invoice = Invoice(audit=Audit(id=1, version=4))
        assert version.get(invoice) == 4
        version.set(invoice, 5)
        assert invoice.audit.version == 5

    def test_new_record_builds_composed_instance(self, mapper):
        register_all(mapper)
        row = {"id": 9, "version": 2, "customer": "ACME", "total": 10.5, "paid": 1, "issued": "2025-03-01"}
        invoice = mapper.table(Invoice).new_record(row)
        assert invoice == Invoice(
            audit=Audit(id=9, version=2),
            customer="ACME",
            total=10.5,
            paid=True,
            issued=datetime.date(2025, 3, 1),
        )

    def test_new_record_keeps_defaults_for_missing_columns(self, mapper):
        register_all(mapper)
        product = mapper.table(Product).new_record({"id": 1, "description": "Scarf"})
        assert product == Product(id=1, description="Scarf", unit_price=0, version=0)

    def test_new_record_ignores_unmapped_columns(self, mapper):
        register_all(mapper)
        product = mapper.table(Product).new_record({"id": 2, "description": "Cap", "n": 7})
        assert product == Product(id=2, description="Cap")

    def test_transient_fields_not_mapped(self, mapper):
        register_all(mapper)
        columns = [f.column_name for f in mapper.table(Tracked).fields]
        assert columns == ["id", "name", "version"]
        record = mapper.table(Tracked).new_record({"id": 1, "name": "a", "version": 0})
        assert record.calls == []

    def test_descriptor_is_immutable(self, mapper):
        register_all(mapper)
        descriptor = mapper.table(Product)
        with pytest.raises(AttributeError):
            descriptor.table_name = "other"  # type: ignore[misc]
