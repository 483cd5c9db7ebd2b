"""
Admin router — API key lifecycle.

GET    /api/admin/keys   list every key
POST   /api/admin/keys   issue a key for an account     {userId, tier, quota?}
DELETE /api/admin/keys   revoke a key                   {key}

Revocation is a status flip, never a delete: usage logs keep pointing at
the key. The key's rate window and token mirror are cleared with it.
"""

import logging
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, status
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AdminContext, require_admin
from app.auth.keys import generate_api_key, is_well_formed, redact
from app.core.counters import get_redis, rate_limit_key, token_usage_key
from app.core.database import get_db_session
from app.core.errors import APIError, reported_as
from app.models.account import Account
from app.models.api_key import KEY_STATUS_ACTIVE, KEY_STATUS_REVOKED, APIKey
from app.models.tier import Tier
from app.schemas.admin import APIKeyCreate, APIKeyOut, APIKeyRevoke, SuccessOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin: API keys"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
Admin = Annotated[AdminContext, Depends(require_admin)]


@router.get("/keys", response_model=list[APIKeyOut], summary="List API keys")
async def list_keys(session: DbSession, _admin: Admin) -> list[APIKey]:
    async with reported_as("Failed to get API keys"):
        result = await session.execute(select(APIKey).order_by(APIKey.created_at.desc()))
        return list(result.scalars().all())


@router.post(
    "/keys",
    response_model=APIKeyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a new API key",
)
async def create_key(payload: APIKeyCreate, session: DbSession, admin: Admin) -> APIKey:
    async with reported_as("Failed to create API key", session):
        account = await session.get(Account, payload.user_id)
        if account is None:
            raise APIError(status.HTTP_404_NOT_FOUND, "User not found")

        tier = await session.get(Tier, payload.tier)
        if tier is None:
            raise APIError(
                status.HTTP_400_BAD_REQUEST,
                "Tier is not configured",
                message=f"No tier config named {payload.tier!r}",
            )

        record = APIKey(
            key=generate_api_key(),
            tier=tier.name,
            status=KEY_STATUS_ACTIVE,
            owner_id=account.id,
            monthly_quota=payload.quota or tier.monthly_quota,
            usage_this_month=0,
            linked_upstream_credentials=[],
        )
        session.add(record)
        await session.commit()
        await session.refresh(record)

    logger.info(
        "Admin %s issued %s key %s for %s",
        admin.account_id,
        record.tier,
        redact(record.key),
        record.owner_id,
    )
    return record


@router.delete("/keys", response_model=SuccessOut, summary="Revoke an API key")
async def revoke_key(
    payload: APIKeyRevoke,
    session: DbSession,
    redis: Redis,
    admin: Admin,
) -> SuccessOut:
    if not is_well_formed(payload.key):
        raise APIError(status.HTTP_400_BAD_REQUEST, "Invalid API key format")

    async with reported_as("Failed to revoke API key", session):
        record = await session.get(APIKey, payload.key)
        if record is None:
            raise APIError(status.HTTP_404_NOT_FOUND, "API key not found")

        record.status = KEY_STATUS_REVOKED
        await session.commit()

    try:
        await redis.delete(rate_limit_key(payload.key), token_usage_key(payload.key))
    except RedisError:
        logger.warning("Could not clear counters for %s", redact(payload.key), exc_info=True)

    logger.info("Admin %s revoked key %s", admin.account_id, redact(payload.key))
    return SuccessOut()
