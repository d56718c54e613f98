"""Shared fixtures: a throwaway SQLite token store and signed pingback helpers."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.config import Settings
from app.core.security import sign_pingback
from app.models.database import Base, build_session_factory
from app.models.reward_token import RewardToken
from app.repositories.reward_tokens import RewardTokenStore

TEST_SECRET = "test_paymentwall_secret_1234567890"
TEST_ADMIN_SECRET = "test_admin_secret"
TEST_USER_ID = "3f2b8c1e-9a4d-4c6e-8b7a-1d2e3f4a5b6c"


def signed_params(
    uid: str = TEST_USER_ID,
    ref: str = "b123456789",
    secret: str = TEST_SECRET,
    **extra: str,
) -> dict[str, str]:
    """Build pingback query parameters with a valid signature."""
    params = {"uid": uid, "ref": ref, "type": "0", **extra}
    params["sig"] = sign_pingback(params, secret)
    return params


@pytest.fixture()
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        paymentwall_secret_key=TEST_SECRET,
        admin_secret=TEST_ADMIN_SECRET,
        database_url="sqlite+aiosqlite://",
        store_timeout_seconds=5.0,
    )


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """SQLite file with the token table created."""
    path = tmp_path / "tokens.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture()
def session_factory(db_path: Path) -> async_sessionmaker[AsyncSession]:
    # NullPool: no aiosqlite connection outlives the event loop that opened it.
    _, factory = build_session_factory(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return factory


@pytest.fixture()
def store(session_factory: async_sessionmaker[AsyncSession]) -> RewardTokenStore:
    return RewardTokenStore(session_factory, timeout=5.0)


@pytest.fixture()
def token_rows(db_path: Path) -> Iterator:
    """Callable returning every persisted token, read through a sync engine."""
    engine = create_engine(f"sqlite:///{db_path}")

    def _rows(user_id: str | None = None) -> list[RewardToken]:
        with Session(engine) as session:
            query = select(RewardToken)
            if user_id is not None:
                query = query.where(RewardToken.user_id == uuid.UUID(user_id))
            return list(session.scalars(query).all())

    yield _rows
    engine.dispose()


@pytest.fixture()
def token_count(db_path: Path) -> Iterator:
    """Callable returning the number of persisted tokens."""
    engine = create_engine(f"sqlite:///{db_path}")

    def _count() -> int:
        with Session(engine) as session:
            return session.scalar(select(func.count()).select_from(RewardToken))

    yield _count
    engine.dispose()
