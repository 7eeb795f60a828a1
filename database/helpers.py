"""
Database helper functions — schema bootstrap and dialect-aware upserts.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from database.models import Base

logger = logging.getLogger(__name__)


async def init_schema(engine: AsyncEngine) -> None:
    """Create any missing tables (idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


def build_upsert(
    session: AsyncSession,
    model: Any,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
):
    """
    Single-statement ``INSERT … ON CONFLICT (…) DO UPDATE`` for ``model``.

    Every supplied column except the conflict key, ``id`` and ``created_at``
    is overwritten, so the surviving row reflects ``values`` only.
    """
    dialect = session.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    conflict_columns = list(conflict_columns)
    keep = set(conflict_columns) | {"id", "created_at"}

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={key: stmt.excluded[key] for key in values if key not in keep},
    )
