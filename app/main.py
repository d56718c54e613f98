"""Entry point for the pingback rewards service.

Start with:
    uvicorn app.main:app --reload

Serves the Paymentwall pingback at /api/webhooks/paymentwall, the readiness
checks under /health and the token views under /admin.  Logging and the token
store engine are set up in the lifespan.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.models.database import close_db, init_db

assert sys.version_info >= (3, 11), "The pingback rewards service requires Python 3.11+"

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Lifespan: startup / shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize and tear down shared resources."""
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Pingback rewards service starting up")
    settings.warn_if_incomplete()

    await init_db()

    yield

    # Shutdown
    logger.info("Pingback rewards service shutting down")
    await close_db()


# ---------------------------------------------------------------------------
#  FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Pingback Rewards",
    description="Offerwall pingback receiver issuing one-time reward tokens",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# CORS: the partner callback may come from anywhere.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
#  Router Registration
# ---------------------------------------------------------------------------

# Import routers lazily to avoid circular-import issues.
from app.api.webhooks import router as webhook_router  # noqa: E402
from app.api.health import router as health_router  # noqa: E402
from app.api.admin import router as admin_router  # noqa: E402

app.include_router(webhook_router, prefix="/api/webhooks")
app.include_router(health_router)
app.include_router(admin_router, prefix="/admin")
