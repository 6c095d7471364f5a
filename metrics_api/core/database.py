"""
Async SQLAlchemy engine and session factory construction.

Nothing here is created at import time: the application lifespan builds one
engine per process and hands the session factory to the MetricsStore.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from metrics_api.core.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str | None = None, **kwargs) -> AsyncEngine:
    """Create the async engine, defaulting to the configured DATABASE_URL."""
    kwargs.setdefault("echo", settings.DEBUG)
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(database_url or settings.DATABASE_URL, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )
