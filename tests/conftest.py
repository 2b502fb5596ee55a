import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tradepost.db.operations import create_friendship, set_quantity, upsert_card
from tradepost.models.db import Base
from tradepost.models.inventory import Condition, Variant


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded_session(session: AsyncSession) -> AsyncSession:
    """
    Catalog, friendship and inventory for a two-collector trade.

    alice holds 1x sv1-001 and bob holds 2x sv1-002 (both normal, near mint).
    alice and bob are friends; carol is nobody's friend.
    """
    await upsert_card(session, "sv1-001", "Sprigatito", "Common", "sv1")
    await upsert_card(session, "sv1-002", "Fuecoco", "Common", "sv1")
    await upsert_card(session, "sv3pt5-65", "Alakazam ex", "Double Rare", "sv3pt5")
    await create_friendship(session, "alice", "bob")
    await set_quantity(session, "alice", "sv1-001", Condition.NEAR_MINT, Variant.NORMAL, 1)
    await set_quantity(session, "bob", "sv1-002", Condition.NEAR_MINT, Variant.NORMAL, 2)
    await session.commit()
    return session
