"""
Database engine and session management.

Provides the async SQLAlchemy engine and session factory backing the
shared SQL store.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from numberzz.config import settings
from numberzz.models.db import Base

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Session factory
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models.
    Should be called once at application startup.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(bind: AsyncEngine | None = None) -> None:
    """
    Drop all database tables.

    WARNING: Destroys all data. Use only for testing.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
