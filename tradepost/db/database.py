"""
Database engine and session management.

One AsyncSession per request or job batch. The trade services decide their
own transaction boundaries where they need them; everything else is
committed when the request finishes.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tradepost.config import settings
from tradepost.models.db import Base

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Trade services keep using domain dataclasses after commit, never ORM rows
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Commits when the endpoint returns. Any exception, including a domain
    KnownError, rolls back whatever the request left uncommitted so that a
    rejected proposal or transition persists nothing.

    Settlement and side-effect dispatch commit on their own; the final
    commit is then a no-op.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all tables. Called once from the application lifespan."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
