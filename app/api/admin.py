"""Admin endpoints for reward token observability.

Read-only views over the token store.  Protected by the X-Admin-Secret
header, which must match ADMIN_SECRET; with no ADMIN_SECRET configured every
request is refused.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_reward_issuer, get_token_store, require_admin
from app.config import Settings, get_settings
from app.core.exceptions import StoreUnavailableError
from app.core.rewards import RewardIssuer, start_of_local_day, utc_now
from app.repositories.reward_tokens import RewardTokenStore

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/stats")
async def admin_stats(
    config: Settings = Depends(get_settings),
    store: RewardTokenStore | None = Depends(get_token_store),
) -> dict[str, Any]:
    """Return today's issuance totals for the configured source."""
    if store is None:
        raise HTTPException(status_code=503, detail="Token store unavailable")
    try:
        issued_today = await store.count_by_source_since(
            config.reward_source, start_of_local_day(utc_now())
        )
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {
        "source": config.reward_source,
        "issued_today": issued_today,
        "daily_limit_per_user": config.daily_token_limit,
    }


@router.get("/users/{user_id}/reward-tokens")
async def user_token_status(
    user_id: uuid.UUID,
    issuer: RewardIssuer = Depends(get_reward_issuer),
) -> dict[str, Any]:
    """Return the user's token availability for today.

    Mirrors what the client app shows: available tokens, tokens used today,
    the daily limit, and the cooldown after the last redemption.
    """
    try:
        status = await issuer.status(user_id)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {
        "user_id": str(user_id),
        "source": issuer.source,
        "issued_today": status.issued_today,
        "available": status.available,
        "used_today": status.used_today,
        "daily_limit": status.daily_limit,
        "remaining_today": status.remaining_today,
        "cooldown_seconds": status.cooldown_seconds,
        "can_use": status.can_use,
    }
