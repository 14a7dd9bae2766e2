"""Async engine and session factory construction.

Nothing here is cached at module level: the process entry point builds the
engine once and hands it down through :class:`scangate.core.context.AppContext`.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from scangate.core.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=5, pool_recycle=1800)
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows are handed to the reconciler after their session closes
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


async def create_schema(engine: AsyncEngine) -> None:
    """Create any missing tables (dev / tests; production runs Alembic)."""
    from scangate.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
