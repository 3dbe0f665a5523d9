# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""SQL coordination store using SQLModel/SQLAlchemy.

Atomicity comes from the database itself:
- set_if_absent inserts against the primary key; on a duplicate it only
  replaces a row whose TTL has already elapsed
- compare_and_swap and versioned delete are single guarded UPDATE/DELETE
  statements, so the row count decides the winner
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import delete, func, insert, text, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlmodel import SQLModel, col, select

from ..models.coordination_entry import CoordinationEntryModel
from .base import CoordinationStore, JSONPayload, StoreEntry, StoreUnavailableError, new_version, ttl_to_ns

logger = logging.getLogger(__name__)

Entry = CoordinationEntryModel


@contextmanager
def _unavailable_on_failure(operation: str, key: str) -> Iterator[None]:
    """Translate connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
        logger.warning(f"SQL coordination store unavailable during {operation} for key={key}: {e}")
        raise StoreUnavailableError(f"SQL coordination store unavailable during {operation}") from e


class SQLCoordinationStore(CoordinationStore):
    """Async SQL coordination store supporting SQLite, PostgreSQL, MySQL."""

    def __init__(self, engine: AsyncEngine, *, clock: Callable[[], int] = time.time_ns) -> None:
        self._engine = engine
        self._clock = clock
        self._initialized = False

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        clock: Callable[[], int] = time.time_ns,
        **kwargs: Any,
    ) -> SQLCoordinationStore:
        """Create store from database URL."""
        if not any(driver in url for driver in ["+asyncpg", "+aiosqlite", "+aiomysql"]):
            raise ValueError(f"URL must contain async driver (+asyncpg, +aiosqlite, or +aiomysql): {url}")

        if "sqlite" in url:
            connect_args = kwargs.pop("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", 30)
            engine = create_async_engine(
                url,
                echo=echo,
                connect_args=connect_args,
                poolclass=kwargs.pop("poolclass", None),
                **kwargs,
            )
        else:
            engine = create_async_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
                **kwargs,
            )

        return cls(engine, clock=clock)

    async def setup(self) -> None:
        """Create the coordination_entries table if needed."""
        if self._initialized:
            return
        with _unavailable_on_failure("setup", "*"):
            async with self._engine.begin() as conn:
                if "sqlite" in str(self._engine.url.drivername):
                    await conn.execute(text("PRAGMA busy_timeout=30000"))
                await conn.run_sync(SQLModel.metadata.create_all, tables=[Entry.__table__])  # type: ignore[attr-defined]
        self._initialized = True
        logger.info("SQLCoordinationStore initialized successfully")

    @staticmethod
    def _to_entry(row: CoordinationEntryModel) -> StoreEntry:
        return StoreEntry(
            key=row.key,
            value=json.loads(row.value),
            version=row.version,
            expires_at_ns=row.expires_at_ns,
        )

    async def get(self, key: str) -> StoreEntry | None:
        await self.setup()
        stmt = select(Entry).where(col(Entry.key) == key, col(Entry.expires_at_ns) > self._clock())
        with _unavailable_on_failure("get", key):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(stmt)
                row = result.scalars().first()
        return self._to_entry(row) if row is not None else None

    async def set_if_absent(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry | None:
        await self.setup()
        now = self._clock()
        entry = StoreEntry(key=key, value=value, version=new_version(), expires_at_ns=now + ttl_to_ns(ttl_seconds))
        values = {"value": json.dumps(value), "version": entry.version, "expires_at_ns": entry.expires_at_ns}

        with _unavailable_on_failure("set_if_absent", key):
            async with AsyncSession(self._engine) as session:
                try:
                    await session.execute(insert(Entry).values(key=key, **values))
                    await session.commit()
                    return entry
                except IntegrityError:
                    await session.rollback()

                # Row exists: only an expired one may be taken over
                result = await session.execute(
                    update(Entry).where(col(Entry.key) == key, col(Entry.expires_at_ns) <= now).values(**values)
                )
                await session.commit()

        if result.rowcount == 1:  # type: ignore[attr-defined]
            logger.debug(f"Replaced expired entry for key={key}")
            return entry
        return None

    async def compare_and_swap(
        self,
        key: str,
        expected_version: int,
        value: JSONPayload,
        ttl_seconds: float,
    ) -> StoreEntry | None:
        await self.setup()
        now = self._clock()
        entry = StoreEntry(key=key, value=value, version=new_version(), expires_at_ns=now + ttl_to_ns(ttl_seconds))
        stmt = (
            update(Entry)
            .where(
                col(Entry.key) == key,
                col(Entry.version) == expected_version,
                col(Entry.expires_at_ns) > now,
            )
            .values(value=json.dumps(value), version=entry.version, expires_at_ns=entry.expires_at_ns)
        )
        with _unavailable_on_failure("compare_and_swap", key):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(stmt)
                await session.commit()
        return entry if result.rowcount == 1 else None  # type: ignore[attr-defined]

    async def put(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry:
        await self.setup()
        now = self._clock()
        entry = StoreEntry(key=key, value=value, version=new_version(), expires_at_ns=now + ttl_to_ns(ttl_seconds))
        values = {"value": json.dumps(value), "version": entry.version, "expires_at_ns": entry.expires_at_ns}
        update_stmt = update(Entry).where(col(Entry.key) == key).values(**values)

        with _unavailable_on_failure("put", key):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(update_stmt)
                if result.rowcount == 0:  # type: ignore[attr-defined]
                    try:
                        await session.execute(insert(Entry).values(key=key, **values))
                    except IntegrityError:
                        # Inserted concurrently by another writer; last write wins
                        await session.rollback()
                        await session.execute(update_stmt)
                await session.commit()
        return entry

    async def delete(self, key: str, *, expected_version: int | None = None) -> bool:
        await self.setup()
        conditions = [col(Entry.key) == key, col(Entry.expires_at_ns) > self._clock()]
        if expected_version is not None:
            conditions.append(col(Entry.version) == expected_version)

        with _unavailable_on_failure("delete", key):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(delete(Entry).where(*conditions))
                await session.commit()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def scan_prefix(self, prefix: str) -> list[StoreEntry]:
        await self.setup()
        stmt = (
            select(Entry)
            .where(
                col(Entry.key).startswith(prefix, autoescape=True),
                col(Entry.expires_at_ns) > self._clock(),
            )
            .order_by(col(Entry.key))
        )
        with _unavailable_on_failure("scan_prefix", prefix):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
        return [self._to_entry(row) for row in rows]

    async def purge_expired(self) -> int:
        """Physically remove expired rows.

        Reads already ignore them; this only keeps the table small.

        Returns:
            Number of rows removed
        """
        await self.setup()
        with _unavailable_on_failure("purge_expired", "*"):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(delete(Entry).where(col(Entry.expires_at_ns) <= self._clock()))
                await session.commit()
        count = result.rowcount or 0  # type: ignore[attr-defined]
        if count > 0:
            logger.info(f"Purged {count} expired coordination entr{'y' if count == 1 else 'ies'}")
        return count

    async def count(self) -> int:
        """Count physically stored rows, live or not."""
        await self.setup()
        with _unavailable_on_failure("count", "*"):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(select(func.count()).select_from(Entry))
                return result.scalar() or 0

    async def close(self) -> None:
        await self._engine.dispose()
