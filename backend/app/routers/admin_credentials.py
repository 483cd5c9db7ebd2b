"""
Admin router — the upstream credential pool.

GET    /api/admin/openrouter        list credentials with their live status
POST   /api/admin/openrouter        create or update     {id, env_name, notes?}
DELETE /api/admin/openrouter?id=    remove a credential

A new or updated credential gets an explicit "healthy" flag so the router
never has to guess. Counter-store trouble is logged and tolerated here:
the key store is the source of truth for the pool itself.
"""

import logging
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AdminContext, require_admin
from app.core.counters import get_redis, upstream_concurrent_key, upstream_status_key
from app.core.database import get_db_session, utcnow
from app.core.errors import APIError, reported_as
from app.models.upstream_credential import HealthStatus, UpstreamCredential
from app.schemas.admin import CredentialOut, CredentialUpsert, SuccessOut
from app.services.upstream_health import list_credentials, read_flags, set_flag

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin: upstream credentials"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
Admin = Annotated[AdminContext, Depends(require_admin)]


@router.get(
    "/openrouter",
    response_model=list[CredentialOut],
    summary="List upstream credentials",
)
async def list_upstream_credentials(
    session: DbSession,
    redis: Redis,
    _admin: Admin,
) -> list[CredentialOut]:
    async with reported_as("Failed to get upstream credentials"):
        credentials = await list_credentials(session)

    try:
        flags = await read_flags(redis, [c.id for c in credentials])
    except RedisError:
        logger.warning("Live status unavailable; reporting stored status", exc_info=True)
        flags = [None] * len(credentials)

    return [
        CredentialOut.model_validate(credential).model_copy(
            update={"current_status": (flag or HealthStatus.HEALTHY).value}
        )
        for credential, flag in zip(credentials, flags)
    ]


@router.post(
    "/openrouter",
    response_model=CredentialOut,
    summary="Create or update an upstream credential",
)
async def upsert_upstream_credential(
    payload: CredentialUpsert,
    session: DbSession,
    redis: Redis,
    admin: Admin,
) -> CredentialOut:
    async with reported_as("Failed to create/update upstream credential", session):
        credential = await session.get(UpstreamCredential, payload.id)
        if credential is None:
            credential = UpstreamCredential(id=payload.id)
            session.add(credential)

        credential.env_name = payload.env_name
        credential.notes = payload.notes or ""
        credential.status = HealthStatus.HEALTHY.value
        credential.last_checked_at = utcnow()
        await session.commit()
        await session.refresh(credential)

    try:
        await set_flag(redis, credential.id, HealthStatus.HEALTHY)
    except RedisError:
        logger.warning("Could not flag credential %s healthy", credential.id, exc_info=True)

    logger.info("Admin %s saved upstream credential %s", admin.account_id, credential.id)
    return CredentialOut.model_validate(credential).model_copy(
        update={"current_status": HealthStatus.HEALTHY.value}
    )


@router.delete(
    "/openrouter",
    response_model=SuccessOut,
    summary="Delete an upstream credential",
)
async def delete_upstream_credential(
    session: DbSession,
    redis: Redis,
    admin: Admin,
    credential_id: str | None = Query(default=None, alias="id"),
) -> SuccessOut:
    if not credential_id:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing credential id")

    async with reported_as("Failed to delete upstream credential", session):
        credential = await session.get(UpstreamCredential, credential_id)
        if credential is not None:
            await session.delete(credential)
            await session.commit()

    try:
        await redis.delete(
            upstream_status_key(credential_id),
            upstream_concurrent_key(credential_id),
        )
    except RedisError:
        logger.warning("Could not clear flags for %s", credential_id, exc_info=True)

    logger.info("Admin %s deleted upstream credential %s", admin.account_id, credential_id)
    return SuccessOut()
