"""Database connection and session management."""

from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from goaltrack.config import settings
from goaltrack.logging_config import get_logger
from goaltrack.models import Base

logger = get_logger(__name__)


# Convert postgresql:// to postgresql+asyncpg:// for async support
async_database_url = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")

engine_options: dict[str, Any] = {"echo": settings.debug}
if not async_database_url.startswith("sqlite"):
    # SQLite uses a static/null pool and rejects pool sizing
    engine_options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )

# Create async engine
async_engine = create_async_engine(async_database_url, **engine_options)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Database session error", error=str(e), exc_info=True)
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


async def close_db() -> None:
    """Close database connections."""
    await async_engine.dispose()
    logger.info("Database connections closed")
