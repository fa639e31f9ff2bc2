# backend/app/db/database.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from typing import AsyncGenerator, Any, Dict

from app.core.config import settings


def _async_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return options


# Create async engine
_url = _async_url(settings.DATABASE_URL)
engine = create_async_engine(_url, **_engine_options(_url))

# Create async session factory
async_session_local = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def get_session_factory() -> async_sessionmaker:
    """Session factory dependency.

    Services open their own short transactions (one per batch, one per
    counter delta), so they take the factory rather than a single session.
    """
    return async_session_local


async def init_db():
    """Initialize database (create tables)"""
    from app.db.base import Base

    async with engine.begin() as conn:
        # Import all models to ensure they're registered
        from app.db import models  # noqa: F401

        # Create tables
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections"""
    await engine.dispose()
