# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Mapper fixtures over a temporary SQLite database.

The mapper fixture is open and has every table of mapped_types created.
Statements it executes are collected in the `statements` fixture.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from mapped_types import register_all

from genro_mapper import Mapper


@pytest.fixture
def statements() -> list[tuple[str, dict[str, Any], float]]:
    """Trace sink target: (sql, params, duration) per executed statement."""
    return []


@pytest_asyncio.fixture
async def mapper(db_path, statements) -> AsyncGenerator[Mapper, None]:
    """Open mapper with all test tables created."""

    def trace(sql: str, params: dict[str, Any], duration: float) -> None:
        statements.append((sql, params, duration))

    mapper = register_all(Mapper(db_path, trace=trace))
    async with mapper:
        await mapper.create_tables()
        statements.clear()
        yield mapper
