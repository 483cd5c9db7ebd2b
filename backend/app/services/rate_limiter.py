"""
Admission controller — per-key rate limit and monthly token quota.

Rate limit (fixed one-minute window, counter store):
  • Every request INCRs the counter; the value INCR returns decides.
  • The INCR that creates the counter (returns 1) sets the 60 s TTL; later
    hits never extend it.
  • Over the limit the request is rejected and its INCR is undone with
    DECR, so rejected requests do not count against the window.

Token quota (counter store mirror of the durable usage):
  • Seeded lazily from api_keys.usage_this_month with a 30-day TTL.
  • Checked against an estimate before the call; advanced by the real
    upstream token count afterwards. Over/under-shoot is accepted.
  • payg keys have no quota.

Both checks fail OPEN on infrastructure errors (see app.core.policy).
"""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.keys import redact
from app.core.counters import (
    RATE_WINDOW_TTL,
    TOKEN_MIRROR_TTL,
    rate_limit_key,
    token_usage_key,
)
from app.core.database import utcnow
from app.core.policy import INFRASTRUCTURE_ERRORS, fails_open
from app.models.api_key import APIKey
from app.models.tier import TIER_PAYG
from app.services.tier_cache import get_tier_config

logger = logging.getLogger(__name__)

# Completion budget assumed when the client does not send max_tokens.
DEFAULT_COMPLETION_TOKENS = 1000

# Synthetic result returned when the rate check fails open.
FAIL_OPEN_LIMIT = 100


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    limited: bool
    remaining: int
    limit: int
    reset_at: datetime.datetime

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
        }


def _fail_open_result(now: datetime.datetime) -> RateLimitResult:
    return RateLimitResult(
        limited=False,
        remaining=FAIL_OPEN_LIMIT,
        limit=FAIL_OPEN_LIMIT,
        reset_at=now + datetime.timedelta(seconds=RATE_WINDOW_TTL),
    )


async def check_rate_limit(
    session: AsyncSession,
    redis: aioredis.Redis,
    record: APIKey,
) -> RateLimitResult:
    """Apply the fixed-window limit of the key's tier and count this request."""
    now = utcnow()
    try:
        tier = await get_tier_config(session, redis, record.tier)
        limit = tier.rate_limit_per_min
        key = rate_limit_key(record.key)

        count = await redis.incr(key)
        if count == 1:
            await redis.expire(key, RATE_WINDOW_TTL)
            ttl = RATE_WINDOW_TTL
        else:
            ttl = await redis.ttl(key)
            if ttl < 0:
                # Counter survived without an expiry; close the window now.
                await redis.expire(key, RATE_WINDOW_TTL)
                ttl = RATE_WINDOW_TTL
        reset_at = now + datetime.timedelta(seconds=ttl)

        if count > limit:
            await redis.decr(key)
            return RateLimitResult(limited=True, remaining=0, limit=limit, reset_at=reset_at)

        return RateLimitResult(
            limited=False,
            remaining=limit - count,
            limit=limit,
            reset_at=reset_at,
        )
    except INFRASTRUCTURE_ERRORS:
        if not fails_open("rate_limit"):
            raise
        logger.warning(
            "Rate limit check failed for %s; admitting (fail open)",
            redact(record.key),
            exc_info=True,
        )
        return _fail_open_result(now)


def estimate_tokens(prompt: str, max_tokens: int | None = None) -> int:
    """Rough pre-admission estimate: ~4 characters per prompt token plus the completion budget."""
    return math.ceil(len(prompt) / 4) + (max_tokens or DEFAULT_COMPLETION_TOKENS)


async def check_token_quota(
    redis: aioredis.Redis,
    record: APIKey,
    tokens_requested: int = 1,
) -> bool:
    """True if `tokens_requested` more tokens would exceed the monthly quota."""
    if record.tier == TIER_PAYG:
        return False

    try:
        key = token_usage_key(record.key)
        current = await redis.get(key)
        if current is None:
            await redis.set(key, record.usage_this_month, ex=TOKEN_MIRROR_TTL, nx=True)
            usage = record.usage_this_month
        else:
            usage = int(current)
        return usage + tokens_requested > record.monthly_quota
    except INFRASTRUCTURE_ERRORS:
        if not fails_open("token_quota"):
            raise
        logger.warning(
            "Token quota check failed for %s; admitting (fail open)",
            redact(record.key),
            exc_info=True,
        )
        return False


async def record_token_usage(
    redis: aioredis.Redis,
    record: APIKey,
    tokens_used: int,
) -> None:
    """
    Advance the token mirror after a completed request.

    Call before the durable usage increment: the seed is computed from
    the usage value read at admission time.
    """
    key = token_usage_key(record.key)
    seeded = await redis.set(
        key,
        record.usage_this_month + tokens_used,
        ex=TOKEN_MIRROR_TTL,
        nx=True,
    )
    if not seeded:
        # INCRBY keeps the existing TTL.
        await redis.incrby(key, tokens_used)
