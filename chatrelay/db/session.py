"""Async database session management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chatrelay.core.config import get_settings
from chatrelay.core.logging import get_logger

logger = get_logger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``."""
    engine_kwargs: dict[str, Any] = {"echo": echo}
    if not url.startswith("sqlite"):
        engine_kwargs.update({"pool_pre_ping": True, "pool_recycle": 1800})
    return create_async_engine(url, **engine_kwargs)


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.database_url, echo=settings.db_echo)
        logger.info("Database engine created")

    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())

    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on exception."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables defined in the models if they don't exist."""
    from chatrelay.db.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")


async def check_db_health(engine: AsyncEngine | None = None, timeout: float = 5.0) -> bool:
    """Check database connectivity with timeout."""

    async def _check() -> bool:
        async with (engine or get_engine()).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    try:
        return await asyncio.wait_for(_check(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("Database health check timed out", timeout=timeout)
        return False
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
