"""Reward issuance rules: idempotency guard, daily quota, token issuer.

The guard and the quota are both check-then-act against the token store and
are therefore advisory.  Duplicate issuance is prevented for real by the
(source, source_session_id) unique constraint, which ``issue`` reports as
``DuplicateEventError``.  The daily ceiling can be overshot by concurrent
requests for the same user; it is an abuse deterrent, not a hard cap.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.config import Settings
from app.core.exceptions import DuplicateEventError, QuotaExceededError
from app.models.reward_token import RewardToken
from app.repositories.reward_tokens import RewardTokenStore, to_naive_utc

logger = logging.getLogger(__name__)

# After a token is redeemed the next one unlocks only after this pause.
REDEMPTION_COOLDOWN = timedelta(seconds=30)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def start_of_local_day(moment: datetime) -> datetime:
    """Midnight of ``moment``'s calendar day in the server's local timezone."""
    local = moment.astimezone()
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class TokenStatus:
    """Snapshot of a user's reward tokens for the current day."""

    issued_today: int
    available: int
    used_today: int
    daily_limit: int
    cooldown_seconds: int

    @property
    def remaining_today(self) -> int:
        """Tokens the user can still earn before today's quota is reached."""
        return max(self.daily_limit - self.issued_today, 0)

    @property
    def can_use(self) -> bool:
        """True when a token is available and the redemption cooldown has passed."""
        return self.available > 0 and self.cooldown_seconds == 0


class RewardIssuer:
    """Issues reward tokens for one partner source."""

    def __init__(
        self,
        store: RewardTokenStore,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._source = settings.reward_source
        self._action_type = settings.reward_action_type
        self._daily_limit = settings.daily_token_limit
        self._ttl = settings.token_ttl
        self._clock = clock

    @property
    def source(self) -> str:
        return self._source

    @property
    def daily_limit(self) -> int:
        return self._daily_limit

    # ------------------------------------------------------------------
    #  Idempotency guard
    # ------------------------------------------------------------------

    async def seen(self, source: str, ref: str) -> bool:
        """True if a token was already issued for this partner reference."""
        return await self._store.find_by_source_ref(source, ref) is not None

    # ------------------------------------------------------------------
    #  Quota enforcer
    # ------------------------------------------------------------------

    async def count_today(self, user_id: uuid.UUID, source: str) -> int:
        """Tokens issued to ``user_id`` from ``source`` since local midnight."""
        since = start_of_local_day(self._clock())
        return await self._store.count_by_user_since(user_id, source, since)

    async def ensure_quota(self, user_id: uuid.UUID) -> int:
        """Raise QuotaExceededError if the user is at the daily ceiling.

        Returns:
            The number of tokens already issued today.
        """
        count = await self.count_today(user_id, self._source)
        if count >= self._daily_limit:
            raise QuotaExceededError(count, self._daily_limit)
        return count

    # ------------------------------------------------------------------
    #  Token issuer
    # ------------------------------------------------------------------

    async def issue(self, user_id: uuid.UUID, ref: str) -> RewardToken:
        """Persist a new unused token for ``user_id`` keyed by the partner ``ref``.

        Raises:
            DuplicateEventError: the unique constraint rejected the insert.
            StoreUnavailableError: the store failed or timed out.
        """
        created_at = to_naive_utc(self._clock())
        token = RewardToken(
            id=uuid.uuid4(),
            user_id=user_id,
            source=self._source,
            source_session_id=ref,
            action_type=self._action_type,
            is_used=False,
            created_at=created_at,
            expires_at=created_at + self._ttl,
        )
        persisted = await self._store.insert_if_absent(token)
        if persisted is None:
            raise DuplicateEventError(f"Token already issued for ref={ref}")
        return persisted

    # ------------------------------------------------------------------
    #  Status
    # ------------------------------------------------------------------

    async def status(self, user_id: uuid.UUID) -> TokenStatus:
        """Summarize today's tokens for ``user_id``."""
        now = self._clock()
        tokens = await self._store.list_by_user_since(
            user_id, self._source, start_of_local_day(now)
        )
        now_naive = to_naive_utc(now)

        cooldown_seconds = 0
        used_times = [t.used_at for t in tokens if t.is_used and t.used_at is not None]
        if used_times:
            cooldown_ends_at = max(used_times) + REDEMPTION_COOLDOWN
            if cooldown_ends_at > now_naive:
                cooldown_seconds = math.ceil((cooldown_ends_at - now_naive).total_seconds())

        return TokenStatus(
            issued_today=len(tokens),
            available=sum(1 for t in tokens if t.is_available(now_naive)),
            used_today=sum(1 for t in tokens if t.is_used),
            daily_limit=self._daily_limit,
            cooldown_seconds=cooldown_seconds,
        )
