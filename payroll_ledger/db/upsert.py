"""
Dialect-aware ``INSERT … ON CONFLICT DO UPDATE``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

_NATIVE_UPSERT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


async def upsert(
    db: AsyncSession,
    model: type,
    keys: dict[str, Any],
    values: dict[str, Any],
) -> None:
    """Insert ``keys + values`` or update ``values`` on the row matching *keys*.

    *keys* must be exactly the columns of a unique constraint on *model*.
    ORM instances of *model* already loaded in *db* are not refreshed; read
    them back with ``populate_existing``.
    """
    dialect = db.get_bind().dialect.name
    insert = _NATIVE_UPSERT.get(dialect)
    if insert is not None:
        stmt = insert(model).values(**keys, **values)
        stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=values)
        await db.execute(stmt)
        return

    # Other dialects: lock-then-write inside the caller's transaction.
    existing = (
        await db.execute(select(model).filter_by(**keys).with_for_update())
    ).scalar_one_or_none()
    if existing is None:
        db.add(model(**keys, **values))
    else:
        for field, value in values.items():
            setattr(existing, field, value)
    await db.flush()
