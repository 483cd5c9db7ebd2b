"""
OpenRouter client for forwarding proxied completions.

Uses OpenRouter's OpenAI-compatible /chat/completions API via httpx.
The secret for each pooled credential is read from the environment
variable the credential names — it never touches the database or logs.

Every call:
  • bumps the credential's in-flight counter (read by the least_load
    policy) and always drops it again;
  • records the outcome as the credential's health flag:
      200            → healthy
      429            → rate_limited
      other / error  → unhealthy
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.counters import upstream_concurrent_key
from app.core.policy import INFRASTRUCTURE_ERRORS
from app.models.upstream_credential import HealthStatus, UpstreamCredential
from app.schemas.proxy import CompletionOptions
from app.services.upstream_health import record_health, resolve_secret

logger = logging.getLogger(__name__)

# Upstream defaults for parameters the client leaves out.
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1.0


class UpstreamError(Exception):
    """The upstream call failed. `error_code` goes into the usage log."""

    error_code = "upstream_error"


class UpstreamRateLimited(UpstreamError):
    error_code = "upstream_rate_limited"


class UpstreamTimeout(UpstreamError):
    error_code = "upstream_timeout"


def upstream_headers(secret: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {secret}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.APP_URL,
        "X-Title": settings.APP_TITLE,
    }


def build_payload(
    prompt: str,
    model: str,
    options: CompletionOptions | None = None,
) -> dict[str, Any]:
    """Chat-completion body for a single-prompt request."""
    options = options or CompletionOptions()
    return {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
        "temperature": (
            options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
        ),
        "top_p": options.top_p if options.top_p is not None else DEFAULT_TOP_P,
        # Streaming pass-through is not supported; always ask for one response.
        "stream": False,
        "stop": options.stop or [],
    }


async def _record_outcome(
    session: AsyncSession,
    redis: aioredis.Redis,
    credential_id: str,
    status: HealthStatus,
) -> None:
    """Best-effort health write; must not replace the call's own outcome."""
    try:
        await record_health(session, redis, credential_id, status)
    except INFRASTRUCTURE_ERRORS:
        await session.rollback()
        logger.exception("Could not record %s for credential %s", status.value, credential_id)


async def send_completion(
    client: httpx.AsyncClient,
    session: AsyncSession,
    redis: aioredis.Redis,
    credential: UpstreamCredential,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """
    POST `payload` upstream using `credential`.

    Returns the decoded JSON body on HTTP 200.

    Raises:
        UpstreamRateLimited: upstream answered 429.
        UpstreamTimeout:     no answer within UPSTREAM_TIMEOUT_SECONDS.
        UpstreamError:       missing secret, transport error, any other status.
    """
    credential_id = credential.id
    concurrent_key = upstream_concurrent_key(credential_id)
    await redis.incr(concurrent_key)

    try:
        secret = resolve_secret(credential.env_name)
        if secret is None:
            await _record_outcome(session, redis, credential_id, HealthStatus.UNHEALTHY)
            raise UpstreamError(f"Secret for credential {credential_id} is not configured")

        try:
            response = await client.post(
                f"{settings.OPENROUTER_BASE_URL}/chat/completions",
                json=payload,
                headers=upstream_headers(secret),
                timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException as exc:
            await _record_outcome(session, redis, credential_id, HealthStatus.UNHEALTHY)
            raise UpstreamTimeout(f"Credential {credential_id} timed out") from exc
        except httpx.HTTPError as exc:
            await _record_outcome(session, redis, credential_id, HealthStatus.UNHEALTHY)
            raise UpstreamError(f"Transport error via {credential_id}: {exc}") from exc

        if response.status_code == 429:
            await _record_outcome(session, redis, credential_id, HealthStatus.RATE_LIMITED)
            raise UpstreamRateLimited(f"Credential {credential_id} is rate limited")

        if response.status_code != 200:
            logger.error(
                "OpenRouter error: credential=%s status=%d body=%s",
                credential_id,
                response.status_code,
                response.text[:500],
            )
            await _record_outcome(session, redis, credential_id, HealthStatus.UNHEALTHY)
            raise UpstreamError(f"OpenRouter returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            await _record_outcome(session, redis, credential_id, HealthStatus.UNHEALTHY)
            raise UpstreamError("OpenRouter returned a non-JSON body") from exc

        await _record_outcome(session, redis, credential_id, HealthStatus.HEALTHY)
        return data
    finally:
        try:
            await redis.decr(concurrent_key)
        except RedisError:
            logger.exception("Could not release in-flight slot for %s", credential_id)


def parse_completion(data: dict[str, Any]) -> tuple[str, int]:
    """
    Extract (content, total_tokens) from a completion body.

    Raises ValueError if the body has no usable usage data.
    """
    try:
        total_tokens = int(data["usage"]["total_tokens"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError("Upstream response is missing usage data") from exc
    if total_tokens <= 0:
        raise ValueError("Upstream response is missing usage data")

    try:
        content = data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError):
        content = ""
    return content, total_tokens
