"""
Usage recorder — the bookkeeping after a terminal request outcome.

Called exactly once per request attempt, after the outcome is known:
  • success → usage_this_month += tokens, owner usage += tokens,
              payg owners accrue tokens × price_per_token,
              one UsageLog(success=True)
  • failure → one UsageLog(success=False, tokens_used=0, error_code)

Increments are single UPDATE … SET col = col + n statements, and each
outcome commits in one transaction.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.keys import redact
from app.models.account import Account
from app.models.api_key import APIKey
from app.models.tier import TIER_PAYG, Tier
from app.models.usage_log import UsageLog

logger = logging.getLogger(__name__)


async def record_success(
    session: AsyncSession,
    record: APIKey,
    endpoint: str,
    tokens_used: int,
    upstream_credential_used: str | None,
) -> None:
    api_key = record.key
    owner_id = record.owner_id

    await session.execute(
        update(APIKey)
        .where(APIKey.key == api_key)
        .values(usage_this_month=APIKey.usage_this_month + tokens_used)
    )
    await session.execute(
        update(Account)
        .where(Account.id == owner_id)
        .values(usage=Account.usage + tokens_used)
    )

    if record.tier == TIER_PAYG:
        price = await session.scalar(
            select(Tier.price_per_token).where(Tier.name == TIER_PAYG)
        )
        if price:
            cost = Decimal(tokens_used) * Decimal(price)
            await session.execute(
                update(Account)
                .where(Account.id == owner_id)
                .values(payg_due=Account.payg_due + cost)
            )

    session.add(
        UsageLog(
            api_key=api_key,
            owner_id=owner_id,
            endpoint=endpoint,
            tokens_used=tokens_used,
            success=True,
            upstream_credential_used=upstream_credential_used,
        )
    )
    await session.commit()
    logger.debug("Recorded %d tokens for %s", tokens_used, redact(api_key))


async def record_failure(
    session: AsyncSession,
    api_key: str,
    owner_id: str,
    endpoint: str,
    error_code: str,
    upstream_credential_used: str | None = None,
) -> None:
    """Log a failed attempt. Quota and usage counters are untouched."""
    session.add(
        UsageLog(
            api_key=api_key,
            owner_id=owner_id,
            endpoint=endpoint,
            tokens_used=0,
            success=False,
            error_code=error_code,
            upstream_credential_used=upstream_credential_used,
        )
    )
    await session.commit()
