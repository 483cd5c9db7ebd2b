"""
Upstream router — pick one healthy credential from the pool.

Policies:
  • round_robin — a shared cursor in the counter store (INCR) indexes the
    healthy list, so concurrent callers on any instance spread evenly
    without a lock.
  • least_load  — the healthy credential with the fewest in-flight calls
    (per-credential counters kept by the upstream client). Ties go to the
    earliest credential in id order.

Credentials whose live flag is rate_limited or unhealthy are never
returned. Store errors propagate: selection fails closed.
"""

from __future__ import annotations

import enum
import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.counters import UPSTREAM_RR_INDEX, upstream_concurrent_key
from app.models.upstream_credential import HealthStatus, UpstreamCredential
from app.services.upstream_health import list_credentials, read_flags

logger = logging.getLogger(__name__)


class RoutingPolicy(str, enum.Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_LOAD = "least_load"


async def healthy_credentials(
    session: AsyncSession,
    redis: aioredis.Redis,
) -> list[UpstreamCredential]:
    credentials = await list_credentials(session)
    flags = await read_flags(redis, [c.id for c in credentials])
    return [
        credential
        for credential, flag in zip(credentials, flags)
        if flag is None or flag is HealthStatus.HEALTHY
    ]


async def select_credential(
    session: AsyncSession,
    redis: aioredis.Redis,
    policy: RoutingPolicy | str = RoutingPolicy.ROUND_ROBIN,
) -> UpstreamCredential | None:
    """Return a healthy credential, or None when the healthy set is empty."""
    policy = RoutingPolicy(policy)

    healthy = await healthy_credentials(session, redis)
    if not healthy:
        logger.warning("No healthy upstream credentials available")
        return None

    if policy is RoutingPolicy.ROUND_ROBIN:
        cursor = await redis.incr(UPSTREAM_RR_INDEX)
        return healthy[(cursor - 1) % len(healthy)]

    loads = await redis.mget([upstream_concurrent_key(c.id) for c in healthy])
    counts = [int(value) if value is not None else 0 for value in loads]
    # min() keeps the first of equal minima, i.e. list order.
    best = min(range(len(healthy)), key=counts.__getitem__)
    return healthy[best]
