"""
Upstream credential health flags.

Two copies of each flag:
  • counter store — the live copy the router reads. Negative states carry
    a TTL so they expire back to an implicit "healthy".
  • key store — upstream_credentials.status / last_checked_at, the durable
    copy shown to admins and used for prober cool-downs.

A missing live flag reads as healthy.
"""

from __future__ import annotations

import os
from collections.abc import Sequence

import redis.asyncio as aioredis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.counters import upstream_status_key
from app.core.database import utcnow
from app.models.upstream_credential import HealthStatus, UpstreamCredential


def resolve_secret(env_name: str) -> str | None:
    """Read the secret a credential points at. Empty counts as missing."""
    return os.environ.get(env_name) or None


def flag_ttl(status: HealthStatus) -> int | None:
    if status is HealthStatus.UNHEALTHY:
        return settings.UNHEALTHY_TTL_SECONDS
    if status is HealthStatus.RATE_LIMITED:
        return settings.RATE_LIMITED_TTL_SECONDS
    return None


async def list_credentials(session: AsyncSession) -> list[UpstreamCredential]:
    """The whole pool, in stable id order."""
    result = await session.execute(
        select(UpstreamCredential).order_by(UpstreamCredential.id)
    )
    return list(result.scalars().all())


async def read_flags(
    redis: aioredis.Redis,
    credential_ids: Sequence[str],
) -> list[HealthStatus | None]:
    """
    Live flags for `credential_ids`, in order.

    None means no flag (implicitly healthy). An unrecognised value maps to
    UNHEALTHY so it can never be routed to.
    """
    if not credential_ids:
        return []
    raw = await redis.mget([upstream_status_key(cid) for cid in credential_ids])
    flags: list[HealthStatus | None] = []
    for value in raw:
        if value is None:
            flags.append(None)
            continue
        try:
            flags.append(HealthStatus(value))
        except ValueError:
            flags.append(HealthStatus.UNHEALTHY)
    return flags


async def set_flag(
    redis: aioredis.Redis,
    credential_id: str,
    status: HealthStatus,
) -> None:
    """Write the live flag only."""
    await redis.set(upstream_status_key(credential_id), status.value, ex=flag_ttl(status))


async def record_health(
    session: AsyncSession,
    redis: aioredis.Redis,
    credential_id: str,
    status: HealthStatus,
) -> None:
    """Write both copies of the flag and stamp last_checked_at."""
    await set_flag(redis, credential_id, status)
    await session.execute(
        update(UpstreamCredential)
        .where(UpstreamCredential.id == credential_id)
        .values(status=status.value, last_checked_at=utcnow())
    )
    await session.commit()
