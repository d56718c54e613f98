"""Persistence boundary for reward tokens.

The only external collaborator the pingback pipeline depends on.  Every
operation opens its own short-lived session, commits immediately, and is
bounded by a timeout; failures surface as ``StoreUnavailableError``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StoreUnavailableError
from app.models.reward_token import RewardToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_naive_utc(moment: datetime) -> datetime:
    """Normalize an aware datetime to the naive-UTC form stored in the table."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class RewardTokenStore:
    """Async data access for the ``one_time_action_tokens`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as exc:
            logger.error(
                "Token store timed out",
                extra={"operation": operation, "timeout": self._timeout},
            )
            raise StoreUnavailableError(f"{operation} timed out after {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            logger.error(
                "Token store failure",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreUnavailableError(f"{operation} failed: {exc}") from exc
        except OSError as exc:
            # Drivers can raise socket errors on connect without wrapping them.
            logger.error(
                "Token store unreachable",
                extra={"operation": operation, "error": repr(exc)},
            )
            raise StoreUnavailableError(f"{operation} could not connect: {exc!r}") from exc

    # ------------------------------------------------------------------
    #  Pingback pipeline operations
    # ------------------------------------------------------------------

    async def find_by_source_ref(self, source: str, ref: str) -> RewardToken | None:
        """Return the token issued for this partner reference, if any."""

        async def _query() -> RewardToken | None:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RewardToken)
                    .where(RewardToken.source == source)
                    .where(RewardToken.source_session_id == ref)
                    .limit(1)
                )
                return result.scalar_one_or_none()

        return await self._bounded("find_by_source_ref", _query())

    async def count_by_user_since(
        self, user_id: uuid.UUID, source: str, since: datetime
    ) -> int:
        """Count tokens issued to ``user_id`` from ``source`` at or after ``since``."""

        async def _query() -> int:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count(RewardToken.id))
                    .where(RewardToken.user_id == user_id)
                    .where(RewardToken.source == source)
                    .where(RewardToken.created_at >= to_naive_utc(since))
                )
                return int(result.scalar_one())

        return await self._bounded("count_by_user_since", _query())

    async def insert_if_absent(self, token: RewardToken) -> RewardToken | None:
        """Insert ``token`` unless its (source, source_session_id) already exists.

        Returns:
            The persisted token, or None when the unique constraint rejected
            the row (another request already issued it).
        """

        async def _insert() -> RewardToken | None:
            async with self._session_factory() as session:
                session.add(token)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.info(
                        "Insert rejected by unique constraint",
                        extra={"source": token.source, "ref": token.source_session_id},
                    )
                    return None
                return token

        return await self._bounded("insert_if_absent", _insert())

    # ------------------------------------------------------------------
    #  Read helpers for status and admin views
    # ------------------------------------------------------------------

    async def list_by_user_since(
        self, user_id: uuid.UUID, source: str, since: datetime
    ) -> list[RewardToken]:
        """Return the user's tokens from ``source`` created at or after ``since``, newest first."""

        async def _query() -> list[RewardToken]:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RewardToken)
                    .where(RewardToken.user_id == user_id)
                    .where(RewardToken.source == source)
                    .where(RewardToken.created_at >= to_naive_utc(since))
                    .order_by(RewardToken.created_at.desc())
                )
                return list(result.scalars().all())

        return await self._bounded("list_by_user_since", _query())

    async def count_by_source_since(self, source: str, since: datetime) -> int:
        """Count all tokens from ``source`` created at or after ``since``."""

        async def _query() -> int:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count(RewardToken.id))
                    .where(RewardToken.source == source)
                    .where(RewardToken.created_at >= to_naive_utc(since))
                )
                return int(result.scalar_one())

        return await self._bounded("count_by_source_since", _query())

    async def ping(self) -> None:
        """Run a trivial query; raises StoreUnavailableError if the database is down."""

        async def _query() -> None:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

        await self._bounded("ping", _query())
