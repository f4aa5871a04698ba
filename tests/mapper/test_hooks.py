# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for lifecycle hooks around insert/update/delete/get."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from mapped_types import HookFailure, Product, Tag, Tracked, executed

from genro_mapper import NotFoundError, OptimisticLockError, PostGet, PreInsert
from genro_mapper.hooks import HOOK_CAPABILITIES, invoke_hook, resolve_hooks


@dataclass
class NoHooks:
    id: int = 0


@dataclass
class SomeHooks(PreInsert, PostGet):
    id: int = 0

    async def pre_insert(self, ctx):
        pass

    async def post_get(self, ctx):
        pass


class TestResolveHooks:
    def test_no_capabilities(self):
        assert resolve_hooks(NoHooks) == frozenset()

    def test_declared_capabilities(self):
        assert resolve_hooks(SomeHooks) == frozenset({"pre_insert", "post_get"})

    def test_all_capabilities(self):
        assert resolve_hooks(Tracked) == frozenset(HOOK_CAPABILITIES)

    def test_capability_requires_method(self):
        @dataclass
        class Incomplete(PreInsert):
            id: int = 0

        with pytest.raises(TypeError):
            Incomplete()

    async def test_invoke_skips_missing_capability(self, mapper):
        descriptor = mapper.table(Product)
        product = Product(version=5)
        await invoke_hook(descriptor, "post_get", product, mapper)
        assert product.version == 5
        await invoke_hook(descriptor, "pre_insert", product, mapper)
        assert product.version == 0


class TestInsertHooks:
    async def test_order(self, mapper, statements):
        record = Tracked(name="a")
        await mapper.insert(record)
        assert record.calls == ["pre_insert", "post_insert"]
        assert len(executed(statements, "INSERT")) == 1

    async def test_context_is_mapper(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        assert record.contexts == [mapper, mapper]

    async def test_pre_insert_failure_skips_statement(self, mapper, statements):
        record = Tracked(name="a", fail_on="pre_insert")
        with pytest.raises(HookFailure):
            await mapper.insert(record)
        assert statements == []
        assert record.calls == ["pre_insert"]
        assert record.id == 0

    async def test_post_insert_failure_keeps_row(self, mapper):
        record = Tracked(name="a", fail_on="post_insert")
        with pytest.raises(HookFailure):
            await mapper.insert(record)
        # Generated key was written back before the hook ran
        assert record.id > 0
        stored = await mapper.get(Tracked, record.id)
        assert stored.name == "a"

    async def test_pre_insert_can_modify_record(self, mapper):
        product = Product(description="Scarf", version=17)
        await mapper.insert(product)
        assert (await mapper.get(Product, product.id)).version == 0


class TestUpdateHooks:
    async def test_order(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        record.calls.clear()

        record.name = "b"
        await mapper.update(record)
        assert record.calls == ["pre_update", "post_update"]

    async def test_pre_update_failure_leaves_row_and_version(self, mapper, statements):
        record = Tracked(name="a")
        await mapper.insert(record)
        statements.clear()

        record.name = "b"
        record.fail_on = "pre_update"
        with pytest.raises(HookFailure):
            await mapper.update(record)
        assert executed(statements, "UPDATE") == []
        assert record.version == 0
        assert (await mapper.get(Tracked, record.id)).name == "a"

    async def test_stale_update_skips_post_hook(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        stale = await mapper.get(Tracked, record.id)
        await mapper.update(record)

        stale.calls.clear()
        with pytest.raises(OptimisticLockError):
            await mapper.update(stale)
        assert stale.calls == ["pre_update"]

    async def test_post_update_failure_keeps_new_version(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        record.fail_on = "post_update"
        with pytest.raises(HookFailure):
            await mapper.update(record)
        assert record.version == 1
        assert (await mapper.get(Tracked, record.id)).version == 1


class TestDeleteHooks:
    async def test_order(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        record.calls.clear()

        await mapper.delete(record)
        assert record.calls == ["pre_delete", "post_delete"]

    async def test_pre_delete_failure_keeps_row(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        record.fail_on = "pre_delete"
        with pytest.raises(HookFailure):
            await mapper.delete(record)
        assert await mapper.get(Tracked, record.id, ignore_missing=True) is not None

    async def test_missing_row_skips_post_hook(self, mapper):
        record = Tracked(id=99, name="ghost")
        with pytest.raises(NotFoundError):
            await mapper.delete(record)
        assert record.calls == ["pre_delete"]


class TestGetHooks:
    async def test_post_get_on_loaded_record(self, mapper):
        record = Tracked(name="a")
        await mapper.insert(record)
        loaded = await mapper.get(Tracked, record.id)
        assert loaded.calls == ["post_get"]
        assert loaded.contexts == [mapper]

    async def test_post_get_on_select(self, mapper):
        await mapper.insert(Tracked(name="a"), Tracked(name="b"))
        records = await mapper.select(Tracked, 'SELECT * FROM "tracked"')
        assert [r.calls for r in records] == [["post_get"], ["post_get"]]

    async def test_missing_row_skips_post_get(self, mapper):
        assert await mapper.get(Tracked, 123, ignore_missing=True) is None

    async def test_types_without_hooks(self, mapper):
        tag = Tag(code="a", label="A")
        await mapper.insert(tag)
        assert await mapper.get(Tag, "a") == tag
