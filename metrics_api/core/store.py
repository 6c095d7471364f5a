"""
Read-only async query layer over the tournament tables.

The MetricsStore hands out small immutable query builders:

    await store.table("team").eq("status", "registered").gte("created_at", start).count()

Every awaited query opens its own AsyncSession from the session factory so
independent queries can run concurrently under asyncio.gather. Database and
connection failures are re-raised as StoreError; callers decide whether to
absorb them.
"""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import ColumnElement, Table, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import metrics_api.models.db_models  # noqa: F401 — registers the tables with Base.metadata
from metrics_api.core.database import Base

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A query against the data store could not be completed."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class TableQuery:
    """Filter chain bound to a single table. Each filter returns a new query."""

    def __init__(
        self,
        store: "MetricsStore",
        table: Table,
        conditions: Sequence[ColumnElement[bool]] = (),
    ) -> None:
        self._store = store
        self._table = table
        self._conditions = tuple(conditions)

    @property
    def table_name(self) -> str:
        return self._table.name

    def _column(self, name: str):
        try:
            return self._table.c[name]
        except KeyError:
            raise StoreError(
                f"column '{name}' does not exist on table '{self._table.name}'",
                code="unknown_column",
            ) from None

    def _where(self, condition: ColumnElement[bool]) -> "TableQuery":
        return TableQuery(self._store, self._table, self._conditions + (condition,))

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._where(self._column(column) == value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._where(self._column(column) >= value)

    def lte(self, column: str, value: Any) -> "TableQuery":
        return self._where(self._column(column) <= value)

    def not_null(self, column: str) -> "TableQuery":
        return self._where(self._column(column).is_not(None))

    def match(self, filters: dict[str, Any] | None) -> "TableQuery":
        """Apply every column -> value pair as an equality filter."""
        query = self
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        return query

    async def count(self) -> int:
        """Exact number of matching rows."""
        stmt = select(func.count()).select_from(self._table).where(*self._conditions)
        return await self._store.scalar(stmt) or 0

    async def values(self, column: str) -> list[Any]:
        """Values of ``column`` for every matching row, duplicates included."""
        stmt = select(self._column(column)).where(*self._conditions)
        return await self._store.scalars(stmt)


class MetricsStore:
    """Entry point for table queries; wraps an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def table(self, name: str) -> TableQuery:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"table '{name}' is not known to the store", code="unknown_table")
        return TableQuery(self, table)

    async def scalar(self, stmt) -> Any:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise _as_store_error(exc) from exc

    async def scalars(self, stmt) -> list[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            raise _as_store_error(exc) from exc

    async def ping(self) -> int:
        """Round-trip ``SELECT 1``; used by the health endpoint and startup warm-up."""
        return await self.scalar(text("SELECT 1"))


def _as_store_error(exc: Exception) -> StoreError:
    code = getattr(exc, "code", None)
    logger.debug("Store query failed: %s", exc)
    return StoreError(str(exc) or exc.__class__.__name__, code=code)
