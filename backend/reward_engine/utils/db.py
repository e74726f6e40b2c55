"""Database connection and session management for the SQL ledger backend."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from reward_engine.config import get_settings
from reward_engine.models.base import Base

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_session_factory(engine_: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by the SQL ledger store."""
    return async_sessionmaker(
        bind=engine_,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db() -> async_sessionmaker[AsyncSession]:
    """Initialize database connection pool and return the session factory."""
    global engine, async_session_factory

    settings = get_settings()
    engine = create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=False,
        future=True,
    )
    async_session_factory = create_session_factory(engine)

    # Test connection
    async with engine.begin() as conn:
        await conn.run_sync(lambda _: None)

    return async_session_factory


async def create_tables(engine_: AsyncEngine) -> None:
    """Create ledger tables (development and tests; production uses alembic)."""
    async with engine_.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection pool."""
    global engine, async_session_factory

    if engine is not None:
        await engine.dispose()
        engine = None
        async_session_factory = None
