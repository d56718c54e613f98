"""Database engine, session factory, and lifecycle helpers.

A single async engine serves the FastAPI handlers.  The token store opens a
short-lived session per operation, so this module hands out the session
factory rather than a request-scoped session.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Declarative Base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base for all ORM models."""


# ---------------------------------------------------------------------------
#  Async engine
# ---------------------------------------------------------------------------

_async_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def build_session_factory(
    database_url: str, **engine_kwargs: Any
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine and a session factory bound to it."""
    engine = create_async_engine(database_url, echo=False, **engine_kwargs)
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, factory


async def init_db() -> None:
    """Create the async engine and session factory.  Called during FastAPI lifespan startup."""
    global _async_engine, AsyncSessionLocal  # noqa: PLW0603

    settings = get_settings()
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=10, max_overflow=20)

    _async_engine, AsyncSessionLocal = build_session_factory(
        settings.database_url, **engine_kwargs
    )

    if settings.db_create_tables:
        # Import models so they register on Base.metadata.
        from app.models import reward_token  # noqa: F401

        async with _async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    logger.info("Async database engine initialized")


async def close_db() -> None:
    """Dispose the async engine.  Called during FastAPI lifespan shutdown."""
    global _async_engine, AsyncSessionLocal  # noqa: PLW0603
    if _async_engine is not None:
        await _async_engine.dispose()
        _async_engine = None
        AsyncSessionLocal = None
        logger.info("Async database engine disposed")


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
    """Return the session factory, or None if the engine is not initialized."""
    return AsyncSessionLocal
