"""
Cron router — the upstream health sweep.

GET /api/cron/healthcheck
  Triggered by an external scheduler holding CRON_SECRET. Probes every
  credential not in cool-down and reports per-credential results. One
  credential's failure never fails the sweep; only a failure to load the
  pool itself returns 500.
"""

import logging
from typing import Annotated

import httpx
import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_cron_secret
from app.core.counters import get_redis
from app.core.database import get_db_session, utcnow
from app.core.errors import reported_as
from app.core.http import get_http_client
from app.schemas.health import HealthSweepOut, ProbeResultOut
from app.services.prober import run_health_sweep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cron"], dependencies=[Depends(require_cron_secret)])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


@router.get(
    "/healthcheck",
    response_model=HealthSweepOut,
    summary="Probe every upstream credential",
)
async def healthcheck(
    session: DbSession,
    redis: Redis,
    client: HttpClient,
) -> HealthSweepOut:
    async with reported_as("Healthcheck failed", session):
        results = await run_health_sweep(session, redis, client)

    return HealthSweepOut(
        success=True,
        timestamp=utcnow(),
        keys_checked=len(results),
        results=[ProbeResultOut.model_validate(r) for r in results],
    )
