"""Async database engine and session factory for BookOps.

Usage:
    from bookops.db.session import get_session

    async with get_session() as session:
        result = await session.execute(select(Account))

IMPORTANT: Each request/operation must get its own session from the factory.
AsyncSession is NOT safe to share across concurrent coroutines or requests.
The clash collector relies on this: every per-build fetch opens its own
session so the fetches can run concurrently.
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bookops.config import settings

# Module-level async engine, shared across the process lifetime
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# expire_on_commit=False keeps ORM objects accessible after commit
AsyncSessionFactory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session() -> AsyncSession:
    """Async context manager that yields a database session.

    Yields a fresh AsyncSession for each call.  The session is closed and
    its connection returned to the pool when the context exits, whether
    normally or via exception.

    Example:
        async with get_session() as session:
            await session.execute(...)
            await session.commit()
    """
    async with AsyncSessionFactory() as session:
        yield session
