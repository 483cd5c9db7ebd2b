"""
Admin router — tier configuration.

GET    /api/admin/tiers           list tiers
POST   /api/admin/tiers           create or update (name in body)
DELETE /api/admin/tiers?name=     delete
GET    /api/admin/tiers/{name}    one tier
PUT    /api/admin/tiers/{name}    create or update (name in path)
DELETE /api/admin/tiers/{name}    delete

POST refreshes the tier's cache entry; PUT and DELETE evict it. Readers
on other instances may see the old config until the cache TTL runs out.
"""

import logging
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, status
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AdminContext, require_admin
from app.core.counters import get_redis
from app.core.database import get_db_session
from app.core.errors import APIError, reported_as
from app.models.tier import Tier
from app.schemas.admin import SuccessOut, TierFields, TierName, TierOut, TierUpsert
from app.services.tier_cache import cache_tier, evict_tier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin: tiers"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
Admin = Annotated[AdminContext, Depends(require_admin)]


async def _save_tier(session: AsyncSession, name: str, fields: TierFields) -> Tier:
    tier = await session.get(Tier, name)
    if tier is None:
        tier = Tier(name=name)
        session.add(tier)

    for field, value in fields.model_dump(include=set(TierFields.model_fields)).items():
        setattr(tier, field, value)

    await session.commit()
    await session.refresh(tier)
    return tier


async def _delete_tier(session: AsyncSession, redis: aioredis.Redis, name: str) -> None:
    tier = await session.get(Tier, name)
    if tier is not None:
        await session.delete(tier)
        await session.commit()
    try:
        await evict_tier(redis, name)
    except RedisError:
        logger.warning("Could not evict cached tier %s", name, exc_info=True)


@router.get("/tiers", response_model=list[TierOut], summary="List tiers")
async def list_tiers(session: DbSession, _admin: Admin) -> list[Tier]:
    async with reported_as("Failed to get tiers"):
        result = await session.execute(select(Tier).order_by(Tier.name))
        return list(result.scalars().all())


@router.post("/tiers", response_model=TierOut, summary="Create or update a tier")
async def upsert_tier(
    payload: TierUpsert,
    session: DbSession,
    redis: Redis,
    admin: Admin,
) -> Tier:
    async with reported_as("Failed to create/update tier", session):
        tier = await _save_tier(session, payload.name, payload)

    try:
        await cache_tier(redis, tier)
    except RedisError:
        logger.warning("Could not cache tier %s", tier.name, exc_info=True)

    logger.info("Admin %s saved tier %s", admin.account_id, tier.name)
    return tier


@router.delete("/tiers", response_model=SuccessOut, summary="Delete a tier")
async def delete_tier_by_query(
    session: DbSession,
    redis: Redis,
    admin: Admin,
    name: str | None = Query(default=None),
) -> SuccessOut:
    if not name:
        raise APIError(status.HTTP_400_BAD_REQUEST, "Missing tier name")

    async with reported_as("Failed to delete tier", session):
        await _delete_tier(session, redis, name)

    logger.info("Admin %s deleted tier %s", admin.account_id, name)
    return SuccessOut()


@router.get("/tiers/{name}", response_model=TierOut, summary="Get one tier")
async def get_tier(name: TierName, session: DbSession, _admin: Admin) -> Tier:
    async with reported_as("Failed to get tier"):
        tier = await session.get(Tier, name)
    if tier is None:
        raise APIError(status.HTTP_404_NOT_FOUND, "Tier not found")
    return tier


@router.put("/tiers/{name}", response_model=TierOut, summary="Replace a tier")
async def replace_tier(
    name: TierName,
    payload: TierFields,
    session: DbSession,
    redis: Redis,
    admin: Admin,
) -> Tier:
    async with reported_as("Failed to update tier", session):
        tier = await _save_tier(session, name, payload)

    try:
        await evict_tier(redis, name)
    except RedisError:
        logger.warning("Could not evict cached tier %s", name, exc_info=True)

    logger.info("Admin %s replaced tier %s", admin.account_id, name)
    return tier


@router.delete("/tiers/{name}", response_model=SuccessOut, summary="Delete one tier")
async def delete_tier(
    name: TierName,
    session: DbSession,
    redis: Redis,
    admin: Admin,
) -> SuccessOut:
    async with reported_as("Failed to delete tier", session):
        await _delete_tier(session, redis, name)

    logger.info("Admin %s deleted tier %s", admin.account_id, name)
    return SuccessOut()
