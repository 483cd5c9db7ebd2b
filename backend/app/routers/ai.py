"""
AI proxy router — the only endpoint API-key clients call.

POST /api/ai
  1. Validates the body and the key format             → 400
  2. Looks up the key; unknown or revoked               → 401
  3. Fixed-window rate limit for the key's tier         → 429 + X-RateLimit-*
  4. Monthly token quota against a rough estimate       → 403
  5. Picks a healthy upstream credential                → 503 if none
  6. Forwards to OpenRouter                             → 503 on upstream failure
  7. Records usage (mirror, durable counters, usage log)

Once the key is resolved, every terminal outcome writes exactly one usage
log entry. Logging a failure is best-effort and never replaces the
response the client was going to get.
"""

from __future__ import annotations

import datetime
import logging
from typing import Annotated

import httpx
import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.keys import is_well_formed, redact
from app.core.config import settings
from app.core.counters import get_redis
from app.core.database import get_db_session, utcnow
from app.core.errors import APIError
from app.core.http import get_http_client
from app.core.policy import INFRASTRUCTURE_ERRORS
from app.models.api_key import APIKey
from app.schemas.proxy import AIRequest, AIResponse
from app.services.key_validator import InvalidAPIKeyError, authorize_api_key
from app.services.llm_client import (
    UpstreamError,
    build_payload,
    parse_completion,
    send_completion,
)
from app.services.rate_limiter import (
    check_rate_limit,
    check_token_quota,
    estimate_tokens,
    record_token_usage,
)
from app.services.tier_cache import get_tier_config
from app.services.upstream_router import select_credential
from app.services.usage_recorder import record_failure, record_success

logger = logging.getLogger(__name__)

router = APIRouter(tags=["AI Proxy"])

ENDPOINT = "/api/ai"

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


class _Rejected(Exception):
    """A terminal failure with its client response and usage-log code."""

    def __init__(self, error: APIError, error_code: str, credential_id: str | None = None):
        super().__init__(error_code)
        self.error = error
        self.error_code = error_code
        self.credential_id = credential_id


async def _record_failure_safely(
    session: AsyncSession,
    record: APIKey,
    error_code: str,
    credential_id: str | None = None,
) -> None:
    try:
        await session.rollback()
        await record_failure(
            session,
            api_key=record.key,
            owner_id=record.owner_id,
            endpoint=ENDPOINT,
            error_code=error_code,
            upstream_credential_used=credential_id,
        )
    except Exception:
        logger.exception("Could not log failed request for %s", redact(record.key))


async def _resolve_model(
    session: AsyncSession,
    redis: aioredis.Redis,
    record: APIKey,
    requested: str | None,
) -> str:
    if requested:
        return requested
    try:
        tier = await get_tier_config(session, redis, record.tier)
    except INFRASTRUCTURE_ERRORS:
        logger.warning("Tier lookup failed for %s; using default model", record.tier)
        return settings.DEFAULT_MODEL
    return tier.default_model


@router.post(
    "/ai",
    response_model=AIResponse,
    summary="Proxy a completion request",
    description=(
        "Authenticates the API key in the body, applies the tier's rate "
        "limit and monthly token quota, and forwards the prompt to a "
        "healthy upstream credential."
    ),
)
async def proxy_completion(
    payload: AIRequest,
    response: Response,
    session: DbSession,
    redis: Redis,
    client: HttpClient,
) -> AIResponse:
    if not is_well_formed(payload.api_key):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid API key format")

    try:
        record = await authorize_api_key(session, payload.api_key)
    except InvalidAPIKeyError:
        raise APIError(status.HTTP_401_UNAUTHORIZED, "Invalid or inactive API key")
    # Detached so that rollbacks further down never expire it.
    session.expunge(record)

    try:
        result, rate_headers = await _admit_and_forward(payload, session, redis, client, record)
    except _Rejected as rejected:
        await _record_failure_safely(session, record, rejected.error_code, rejected.credential_id)
        raise rejected.error from None
    except Exception:
        logger.exception("Unexpected error proxying request for %s", redact(record.key))
        await _record_failure_safely(session, record, "internal_error")
        raise

    response.headers.update(rate_headers)
    return result


async def _admit_and_forward(
    payload: AIRequest,
    session: AsyncSession,
    redis: aioredis.Redis,
    client: httpx.AsyncClient,
    record: APIKey,
) -> tuple[AIResponse, dict[str, str]]:
    options = payload.options

    # ── 1. Rate limit ───────────────────────────────────────
    rate = await check_rate_limit(session, redis, record)
    rate_headers = rate.headers()
    if rate.limited:
        raise _Rejected(
            APIError(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "Rate limit exceeded",
                headers=rate_headers,
                extra={"limit": rate.limit, "reset_at": rate.reset_at.isoformat()},
            ),
            "rate_limited",
        )

    # ── 2. Token quota ──────────────────────────────────────
    estimated = estimate_tokens(payload.prompt, options.max_tokens if options else None)
    if await check_token_quota(redis, record, estimated):
        raise _Rejected(
            APIError(status.HTTP_403_FORBIDDEN, "Monthly token quota exceeded"),
            "quota_exceeded",
        )

    # ── 3. Route ────────────────────────────────────────────
    try:
        credential = await select_credential(session, redis, settings.ROUTING_POLICY)
    except INFRASTRUCTURE_ERRORS:
        logger.exception("Credential selection failed; rejecting (fail closed)")
        credential = None
    if credential is None:
        raise _Rejected(
            APIError(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "No healthy upstream available",
                message="Please try again later",
            ),
            "no_healthy_upstream",
        )
    credential_id = credential.id

    # ── 4. Forward ──────────────────────────────────────────
    model = await _resolve_model(session, redis, record, options.model if options else None)
    try:
        data = await send_completion(
            client,
            session,
            redis,
            credential,
            build_payload(payload.prompt, model, options),
        )
    except UpstreamError as exc:
        logger.error("Upstream call via %s failed: %s", credential_id, exc)
        raise _Rejected(
            APIError(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "Service unavailable",
                message="Please try again later",
            ),
            exc.error_code,
            credential_id,
        ) from exc

    try:
        content, tokens_used = parse_completion(data)
    except ValueError as exc:
        logger.error("Unusable upstream response via %s: %s", credential_id, exc)
        raise _Rejected(
            APIError(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                message="An unexpected error occurred",
            ),
            "internal_error",
            credential_id,
        ) from exc

    # ── 5. Record usage (never fails the request) ───────────
    try:
        await record_token_usage(redis, record, tokens_used)
    except INFRASTRUCTURE_ERRORS:
        logger.exception("Could not update token mirror for %s", redact(record.key))
    try:
        await record_success(session, record, ENDPOINT, tokens_used, credential_id)
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Could not record usage for %s", redact(record.key))

    created = data.get("created")
    created_at = (
        datetime.datetime.fromtimestamp(created, tz=datetime.timezone.utc)
        if isinstance(created, (int, float))
        else utcnow()
    )
    result = AIResponse(
        id=str(data.get("id", "")),
        response=content,
        model=str(data.get("model", model)),
        tokens_used=tokens_used,
        created_at=created_at,
    )
    return result, rate_headers
