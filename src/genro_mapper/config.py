# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclass for the mapper.

Configuration via environment variables:
    GENRO_MAPPER_DB: Database path (SQLite file or PostgreSQL URL)
    GENRO_MAPPER_TRACE: Log every executed statement (default: false)
    GENRO_MAPPER_POOL_SIZE: PostgreSQL pool size (default: 10)
    GENRO_MAPPER_CONNECT_TIMEOUT: PostgreSQL connect timeout in seconds (default: 10)

Usage:
    # From environment (Docker/production):
    mapper = Mapper.from_config(config_from_env())

    # Explicit configuration:
    mapper = Mapper.from_config(MapperConfig(db_path="/data/app.db", trace_sql=True))
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = ("1", "true", "yes")


@dataclass
class MapperConfig:
    """Settings used to build a Mapper.

    Attributes:
        db_path: SQLite path or PostgreSQL URL (see adapters.get_adapter).
        trace_sql: Send every executed statement to the trace logger.
        pool_size: Maximum PostgreSQL pool size. Ignored by SQLite.
        connect_timeout: PostgreSQL connect timeout in seconds. Ignored by SQLite.
    """

    db_path: str = "/data/mapper.db"
    """SQLite database path or PostgreSQL URL."""

    trace_sql: bool = False
    """Log each executed statement with its parameters and duration."""

    pool_size: int = 10
    """Maximum PostgreSQL connections kept in the pool."""

    connect_timeout: float = 10.0
    """Seconds to wait for the PostgreSQL pool to open."""


def config_from_env() -> MapperConfig:
    """Build MapperConfig from GENRO_MAPPER_* environment variables."""
    return MapperConfig(
        db_path=os.environ.get("GENRO_MAPPER_DB", "/data/mapper.db"),
        trace_sql=os.environ.get("GENRO_MAPPER_TRACE", "").lower() in _TRUE_VALUES,
        pool_size=int(os.environ.get("GENRO_MAPPER_POOL_SIZE", "10")),
        connect_timeout=float(os.environ.get("GENRO_MAPPER_CONNECT_TIMEOUT", "10")),
    )


__all__ = ["MapperConfig", "config_from_env"]
