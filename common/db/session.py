from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from common.core.config import settings
from common.core.telemetry import get_logger
from common.db.base import Base

logger = get_logger(__name__)


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine for the configured database URL."""
    url = database_url or settings.database_url
    # Replace postgresql:// with postgresql+asyncpg:// for async support
    url = url.replace("postgresql://", "postgresql+asyncpg://")
    logger.info(f"Creating database engine for {url.split('://')[0]}")
    return create_async_engine(url, echo=settings.debug, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table registered on the declarative base."""
    # Register the retrieval entities with Base.metadata
    import packages.retrieval.models.database  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Acquire a session for one unit of work.

    Commits when the block exits cleanly and rolls back on error.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
