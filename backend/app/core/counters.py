"""
Counter store client and key layout.

The counter store holds only ephemeral state: rate windows, the token-usage
mirror, cached tier configs, upstream health flags, per-credential
concurrency counters and the round-robin cursor. Every cross-request
coordination goes through Redis' atomic primitives (INCR/DECR/SET NX/EX);
nothing here keeps in-process mutable state beyond the client itself.
"""

from __future__ import annotations

import redis.asyncio as aioredis

from app.core.config import settings

# ── Key layout ──────────────────────────────────────────────
QUOTA_PREFIX = "quota:"
TIER_PREFIX = "tier:"
UPSTREAM_STATUS_PREFIX = "openrouter:status:"
UPSTREAM_CONCURRENT_PREFIX = "openrouter:concurrent:"
UPSTREAM_RR_INDEX = "openrouter:rr_index"

# ── TTLs (seconds) ──────────────────────────────────────────
RATE_WINDOW_TTL = 60
TOKEN_MIRROR_TTL = 86400 * 30
TIER_CACHE_TTL = 3600


def rate_limit_key(api_key: str) -> str:
    return f"{QUOTA_PREFIX}{api_key}:rate_limit"


def token_usage_key(api_key: str) -> str:
    return f"{QUOTA_PREFIX}{api_key}:tokens"


def tier_key(name: str) -> str:
    return f"{TIER_PREFIX}{name}"


def upstream_status_key(credential_id: str) -> str:
    return f"{UPSTREAM_STATUS_PREFIX}{credential_id}"


def upstream_concurrent_key(credential_id: str) -> str:
    return f"{UPSTREAM_CONCURRENT_PREFIX}{credential_id}"


# ── Client ──────────────────────────────────────────────────
_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """
    Return the process-wide Redis client (created lazily).

    Also used as a FastAPI dependency. The client holds a connection
    pool; no connection is opened until the first command.
    """
    global _client
    if _client is None:
        _client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


async def close_redis() -> None:
    """Close the pool on shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
