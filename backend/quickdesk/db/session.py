"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Using a context manager ensures proper connection cleanup and transaction management.
Each request is one transaction: every workflow operation commits or rolls
back as a unit.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from quickdesk.core.config import settings


def _engine_options() -> Dict[str, Any]:
    """
    Engine keyword arguments for the configured database.

    WHY: pool_size/max_overflow apply to PostgreSQL's queue pool; SQLite
    (tests, local runs) uses a static pool that rejects them.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not settings.is_sqlite:
        options.update(pool_size=10, max_overflow=20)
    return options


engine = create_async_engine(settings.async_database_url, **_engine_options())

# expire_on_commit=False prevents lazy-loading issues after commit.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Commits when the route returns normally and rolls back on any exception,
    so a failed validation never leaves half an update behind.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
