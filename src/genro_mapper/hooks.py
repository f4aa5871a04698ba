# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Lifecycle hook capabilities and the hook invoker.

A record type opts into a hook by inheriting its capability class and
implementing the single async method it declares::

    @dataclass
    class Product(PreInsert, PostUpdate):
        id: int = 0
        version: int = 0

        async def pre_insert(self, ctx):
            self.version = 0

        async def post_update(self, ctx):
            await ctx.execute("INSERT INTO audit (product) VALUES (:id)", {"id": self.id})

The ctx argument is the Mapper or Transaction running the operation, so
hooks can issue further statements in the same transaction.

Capabilities are resolved once, when the type's descriptor is built.
Per operation the order is fixed: pre hook, statement, post hook. An
exception from a pre hook means the statement is never sent; an exception
from a post hook is raised after the statement ran.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import SqlExecutor
    from .descriptor import TypeDescriptor


class PreInsert(ABC):
    @abstractmethod
    async def pre_insert(self, ctx: SqlExecutor) -> None:
        """Called before the INSERT is built. May set field values."""


class PostInsert(ABC):
    @abstractmethod
    async def post_insert(self, ctx: SqlExecutor) -> None:
        """Called after a successful INSERT, generated key already set."""


class PreUpdate(ABC):
    @abstractmethod
    async def pre_update(self, ctx: SqlExecutor) -> None:
        """Called before the UPDATE is built."""


class PostUpdate(ABC):
    @abstractmethod
    async def post_update(self, ctx: SqlExecutor) -> None:
        """Called after a confirmed UPDATE, version already bumped."""


class PreDelete(ABC):
    @abstractmethod
    async def pre_delete(self, ctx: SqlExecutor) -> None:
        """Called before the DELETE is sent."""


class PostDelete(ABC):
    @abstractmethod
    async def post_delete(self, ctx: SqlExecutor) -> None:
        """Called after the row was deleted."""


class PostGet(ABC):
    @abstractmethod
    async def post_get(self, ctx: SqlExecutor) -> None:
        """Called after a record was loaded by get() or select()."""


HOOK_CAPABILITIES: dict[str, type[ABC]] = {
    "pre_insert": PreInsert,
    "post_insert": PostInsert,
    "pre_update": PreUpdate,
    "post_update": PostUpdate,
    "pre_delete": PreDelete,
    "post_delete": PostDelete,
    "post_get": PostGet,
}


def resolve_hooks(record_type: type) -> frozenset[str]:
    """Return the names of the hooks record_type implements."""
    return frozenset(
        name for name, capability in HOOK_CAPABILITIES.items() if issubclass(record_type, capability)
    )


async def invoke_hook(
    descriptor: TypeDescriptor, name: str, record: Any, ctx: SqlExecutor
) -> None:
    """Run hook name on record if its type implements it.

    Exceptions raised by the hook propagate unchanged.
    """
    if name not in descriptor.hooks:
        return
    await getattr(record, name)(ctx)


__all__ = [
    "PreInsert",
    "PostInsert",
    "PreUpdate",
    "PostUpdate",
    "PreDelete",
    "PostDelete",
    "PostGet",
    "HOOK_CAPABILITIES",
    "resolve_hooks",
    "invoke_hook",
]
