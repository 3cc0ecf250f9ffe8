"""SQLAlchemy-backed key-value store.

One table, one row per key, JSON values. Works with any async driver
SQLAlchemy supports (aiosqlite locally, asyncpg in production).
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import DateTime, String, Text, delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for the store's tables."""
    pass


class KeyValueEntry(Base):
    """A single stored value with optional expiry."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        # SQLite drops tzinfo on the way back
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


class SqlKeyValueStore:
    """Async key-value store on top of a SQLAlchemy engine.

    Usage::

        store = SqlKeyValueStore.from_url("sqlite+aiosqlite:///platform_sync.db")
        await store.init()
        await store.set("token:spotify", {...})
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> "SqlKeyValueStore":
        return cls(create_async_engine(url, **engine_kwargs))

    async def init(self) -> None:
        """Create the table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            row = await session.get(KeyValueEntry, key)
            if row is None:
                return None
            if row.is_expired(datetime.now(timezone.utc)):
                await session.delete(row)
                await session.commit()
                return None
            return json.loads(row.value)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        payload = json.dumps(value, default=str)

        async with self._session_factory() as session:
            row = await session.get(KeyValueEntry, key)
            if row is None:
                session.add(KeyValueEntry(key=key, value=payload, expires_at=expires_at))
            else:
                row.value = payload
                row.expires_at = expires_at
            await session.commit()

    async def delete(self, key: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
            await session.commit()
            return (result.rowcount or 0) > 0

    async def keys(self, prefix: str = "") -> list[str]:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            stmt = select(KeyValueEntry).where(KeyValueEntry.key.startswith(prefix, autoescape=True))
            rows = (await session.execute(stmt)).scalars().all()
            return sorted(r.key for r in rows if not r.is_expired(now))
