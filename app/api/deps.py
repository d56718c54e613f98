"""FastAPI dependency providers shared by the routers."""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException

from app.config import Settings, get_settings
from app.core.pingback import PingbackController
from app.core.rewards import RewardIssuer
from app.models.database import get_session_factory
from app.repositories.reward_tokens import RewardTokenStore


def get_token_store(config: Settings = Depends(get_settings)) -> RewardTokenStore | None:
    """Return the token store, or None while the database is not initialized.

    Never raises: the webhook route must still answer ``OK`` without a store.
    """
    factory = get_session_factory()
    if factory is None:
        return None
    return RewardTokenStore(factory, timeout=config.store_timeout_seconds)


def get_pingback_controller(
    config: Settings = Depends(get_settings),
    store: RewardTokenStore | None = Depends(get_token_store),
) -> PingbackController:
    issuer = RewardIssuer(store, config) if store is not None else None
    return PingbackController(config, issuer)


def get_reward_issuer(
    config: Settings = Depends(get_settings),
    store: RewardTokenStore | None = Depends(get_token_store),
) -> RewardIssuer:
    if store is None:
        raise HTTPException(status_code=503, detail="Token store unavailable")
    return RewardIssuer(store, config)


def require_admin(
    x_admin_secret: str | None = Header(default=None),
    config: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless X-Admin-Secret matches ADMIN_SECRET."""
    if not config.admin_secret or not x_admin_secret:
        raise HTTPException(status_code=403, detail="Admin access denied")
    if not hmac.compare_digest(
        x_admin_secret.encode("utf-8"), config.admin_secret.encode("utf-8")
    ):
        raise HTTPException(status_code=403, detail="Admin access denied")
