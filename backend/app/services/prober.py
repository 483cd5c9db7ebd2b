"""
Upstream prober — the cron-triggered health sweep over the credential pool.

For each credential:
  1. Still rate_limited and inside RATE_LIMIT_COOLDOWN_SECONDS of its last
     check → skipped, status untouched.
  2. Secret not resolvable → unhealthy ("configuration error"), no request.
  3. Otherwise GET {OPENROUTER_BASE_URL}/auth/key with PROBE_TIMEOUT_SECONDS:
       200     → healthy
       429     → rate_limited
       timeout → unhealthy ("timed out")
       other   → unhealthy (status code in the message)

Probes run concurrently; results are persisted one credential at a time.
A failure on one credential is reported as unhealthy and never aborts the
sweep for the others.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import as_utc, utcnow
from app.core.policy import INFRASTRUCTURE_ERRORS
from app.models.upstream_credential import HealthStatus, UpstreamCredential
from app.services.llm_client import upstream_headers
from app.services.upstream_health import (
    list_credentials,
    record_health,
    resolve_secret,
    set_flag,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProbeResult:
    id: str
    env_name: str
    status: str
    message: str
    skipped: bool = False


def in_cooldown(credential: UpstreamCredential, now: datetime.datetime) -> bool:
    """True while a rate-limited credential should be left alone."""
    if credential.status != HealthStatus.RATE_LIMITED.value:
        return False
    cooldown = datetime.timedelta(seconds=settings.RATE_LIMIT_COOLDOWN_SECONDS)
    return as_utc(credential.last_checked_at) + cooldown > now


async def probe_credential(
    client: httpx.AsyncClient,
    credential: UpstreamCredential,
) -> tuple[HealthStatus, str]:
    """Probe one credential. Network only — writes nothing."""
    secret = resolve_secret(credential.env_name)
    if secret is None:
        return HealthStatus.UNHEALTHY, (
            f"Configuration error: environment variable {credential.env_name} is not set"
        )

    try:
        response = await client.get(
            f"{settings.OPENROUTER_BASE_URL}/auth/key",
            headers=upstream_headers(secret),
            timeout=settings.PROBE_TIMEOUT_SECONDS,
        )
    except httpx.TimeoutException:
        return HealthStatus.UNHEALTHY, "Probe timed out"

    if response.status_code == 200:
        return HealthStatus.HEALTHY, "OK"
    if response.status_code == 429:
        return HealthStatus.RATE_LIMITED, "Rate limited"
    return HealthStatus.UNHEALTHY, f"HTTP {response.status_code}"


async def _probe_isolated(
    client: httpx.AsyncClient,
    credential: UpstreamCredential,
) -> tuple[HealthStatus, str]:
    try:
        return await probe_credential(client, credential)
    except Exception as exc:  # one bad credential must not sink the sweep
        logger.exception("Probe for credential %s failed", credential.id)
        return HealthStatus.UNHEALTHY, str(exc) or exc.__class__.__name__


async def run_health_sweep(
    session: AsyncSession,
    redis: aioredis.Redis,
    client: httpx.AsyncClient,
    now: datetime.datetime | None = None,
) -> list[ProbeResult]:
    """Probe every eligible credential and persist the resulting statuses."""
    now = now or utcnow()
    credentials = await list_credentials(session)
    # Detached: a rollback after one failed write must not expire the rest.
    session.expunge_all()

    due = [c for c in credentials if not in_cooldown(c, now)]
    outcomes = await asyncio.gather(*(_probe_isolated(client, c) for c in due))
    by_id = {c.id: outcome for c, outcome in zip(due, outcomes)}

    results: list[ProbeResult] = []
    for credential in credentials:
        if credential.id not in by_id:
            results.append(
                ProbeResult(
                    id=credential.id,
                    env_name=credential.env_name,
                    status=credential.status,
                    message="Skipped: rate-limit cooldown active",
                    skipped=True,
                )
            )
            continue

        status, message = by_id[credential.id]
        try:
            await record_health(session, redis, credential.id, status)
        except INFRASTRUCTURE_ERRORS as exc:
            await session.rollback()
            logger.exception("Could not persist health for credential %s", credential.id)
            status = HealthStatus.UNHEALTHY
            message = f"{message} (status not persisted: {exc})"
            try:
                await set_flag(redis, credential.id, status)
            except INFRASTRUCTURE_ERRORS:
                logger.exception("Could not flag credential %s", credential.id)

        results.append(
            ProbeResult(
                id=credential.id,
                env_name=credential.env_name,
                status=status.value,
                message=message,
            )
        )

    logger.info(
        "Health sweep: %d checked, %d skipped",
        len(due),
        len(credentials) - len(due),
    )
    return results
