"""
Read-through tier config cache.

Tier configs live in the key store and are cached in the counter store
for TIER_CACHE_TTL seconds. There is no write-through from other readers:
an admin update may take up to the TTL to reach them.
"""

from __future__ import annotations

import logging
from decimal import Decimal

import redis.asyncio as aioredis
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.counters import TIER_CACHE_TTL, tier_key
from app.core.policy import TierNotFoundError
from app.models.tier import Tier

logger = logging.getLogger(__name__)


class TierConfig(BaseModel):
    """The admission- and billing-relevant slice of a tier."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    rate_limit_per_min: int
    monthly_quota: int
    price_per_token: Decimal
    default_model: str


async def get_tier_config(
    session: AsyncSession,
    redis: aioredis.Redis,
    name: str,
) -> TierConfig:
    """
    Return the config for tier `name`, from cache when possible.

    Raises TierNotFoundError if the tier is not stored.
    """
    cached = await redis.get(tier_key(name))
    if cached:
        return TierConfig.model_validate_json(cached)

    tier = await session.get(Tier, name)
    if tier is None:
        raise TierNotFoundError(name)

    config = TierConfig.model_validate(tier)
    await redis.set(tier_key(name), config.model_dump_json(), ex=TIER_CACHE_TTL)
    logger.debug("Cached tier %s for %ds", name, TIER_CACHE_TTL)
    return config


async def cache_tier(redis: aioredis.Redis, tier: Tier) -> None:
    """Refresh the cache entry after an admin write."""
    config = TierConfig.model_validate(tier)
    await redis.set(tier_key(tier.name), config.model_dump_json(), ex=TIER_CACHE_TTL)


async def evict_tier(redis: aioredis.Redis, name: str) -> None:
    await redis.delete(tier_key(name))
