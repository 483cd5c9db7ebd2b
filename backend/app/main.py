"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify key-store and counter-store connectivity (non-fatal).
  • On shutdown: dispose the engine and close the Redis pool.

Routers (all under /api):
  • /ai              — API-key gated AI proxy
  • /admin/...       — keys, upstream credentials, tiers, analytics
  • /cron/healthcheck — scheduler-triggered upstream health sweep
  • /health (root)   — shallow liveness probe
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy import text

from app.core.config import settings
from app.core.counters import close_redis, get_redis
from app.core.database import engine
from app.core.errors import register_error_handlers
from app.routers.admin_analytics import router as admin_analytics_router
from app.routers.admin_credentials import router as admin_credentials_router
from app.routers.admin_keys import router as admin_keys_router
from app.routers.admin_tiers import router as admin_tiers_router
from app.routers.ai import router as ai_router
from app.routers.cron import router as cron_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    # Startup — verify Redis is reachable (rate limits fail open without it)
    try:
        await get_redis().ping()
        logger.info("Redis connection verified ✓")
    except (RedisError, OSError):
        logger.warning(
            "Could not reach Redis on startup. Rate limits and quotas will "
            "fail open and routing will reject until it is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pools
    await close_redis()
    await engine.dispose()
    logger.info("Connections closed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    description=(
        "API-key gated AI proxy with per-tier rate limits, monthly token "
        "quotas and a health-routed upstream credential pool."
    ),
    lifespan=lifespan,
)

register_error_handlers(app)

# Mount routers
app.include_router(ai_router, prefix="/api")
app.include_router(admin_keys_router, prefix="/api/admin")
app.include_router(admin_credentials_router, prefix="/api/admin")
app.include_router(admin_tiers_router, prefix="/api/admin")
app.include_router(admin_analytics_router, prefix="/api/admin")
app.include_router(cron_router, prefix="/api/cron")


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}
