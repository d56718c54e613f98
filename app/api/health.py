"""Health-check endpoints.

Docker Compose health checks and load balancers hit these endpoints
to verify the application is running and the database is reachable.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_token_store
from app.core.exceptions import StoreUnavailableError
from app.repositories.reward_tokens import RewardTokenStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return a simple liveness status."""
    return {"status": "healthy"}


@router.get("/health/ready", response_model=None)
async def readiness_check(
    store: RewardTokenStore | None = Depends(get_token_store),
) -> dict[str, str] | JSONResponse:
    """Return 200 when the token store answers, 503 otherwise."""
    if store is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": "not initialized"},
        )
    try:
        await store.ping()
    except StoreUnavailableError:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": "unreachable"},
        )
    return {"status": "ready", "database": "ok"}
