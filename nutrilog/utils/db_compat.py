"""
Database compatibility helpers for SQLite and PostgreSQL.
"""
import uuid
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import DateTime, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import TypeDecorator


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC (SQLite drops tzinfo silently)."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


async def upsert(
    db: AsyncSession,
    model,
    values: dict,
    index_elements: Iterable[str],
    update_columns: Iterable[str],
) -> None:
    """INSERT ... ON CONFLICT DO UPDATE on SQLite/PostgreSQL; select-then-write elsewhere."""
    index_elements = list(index_elements)
    update_columns = list(update_columns)
    name = dialect_name(db)

    if name in ("sqlite", "postgresql"):
        insert = sqlite.insert if name == "sqlite" else postgresql.insert
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={col: stmt.excluded[col] for col in update_columns},
        )
        await db.execute(stmt)
        return

    query = select(model)
    for col in index_elements:
        query = query.where(getattr(model, col) == values[col])
    result = await db.execute(query)
    existing = result.scalar_one_or_none()
    if existing is None:
        db.add(model(**values))
    else:
        for col in update_columns:
            setattr(existing, col, values[col])
    await db.flush()
