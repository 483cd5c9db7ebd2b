"""
Admin analytics over usage_logs.

All aggregation happens in SQL via GROUP BY — no Python-side loops over
log rows. Each report covers the window [now - period, now].
"""

from __future__ import annotations

import datetime

from sqlalchemy import case, distinct, func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.models.account import Account
from app.models.api_key import APIKey
from app.models.usage_log import UsageLog
from app.schemas.analytics import (
    AnalyticsPeriod,
    CredentialTokensOut,
    ErrorCountOut,
    ErrorsReport,
    KeyTokensOut,
    OwnerTokensOut,
    UsageReport,
    UsersReport,
)

PERIODS: dict[str, datetime.timedelta] = {
    "1h": datetime.timedelta(hours=1),
    "24h": datetime.timedelta(hours=24),
    "7d": datetime.timedelta(days=7),
    "30d": datetime.timedelta(days=30),
    "90d": datetime.timedelta(days=90),
}

TOP_N = 5


def window_start(period: AnalyticsPeriod, now: datetime.datetime | None = None) -> datetime.datetime:
    return (now or utcnow()) - PERIODS[period]


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


async def usage_report(
    session: AsyncSession,
    period: AnalyticsPeriod,
    now: datetime.datetime | None = None,
) -> UsageReport:
    in_window = UsageLog.timestamp >= window_start(period, now)
    tokens = func.coalesce(func.sum(UsageLog.tokens_used), 0)

    totals = (
        await session.execute(
            select(
                func.count().label("requests"),
                func.coalesce(func.sum(case((UsageLog.success, 1), else_=0)), 0).label("ok"),
                tokens.label("tokens"),
            ).where(in_window)
        )
    ).one()

    top_keys = await session.execute(
        select(UsageLog.api_key.label("key"), tokens.label("tokens"))
        .where(in_window)
        .group_by(UsageLog.api_key)
        .order_by(tokens.desc(), UsageLog.api_key)
        .limit(TOP_N)
    )

    per_credential = await session.execute(
        select(
            UsageLog.upstream_credential_used.label("id"),
            tokens.label("tokens"),
            func.count().label("requests"),
        )
        .where(in_window, UsageLog.upstream_credential_used.is_not(None))
        .group_by(UsageLog.upstream_credential_used)
        .order_by(tokens.desc(), UsageLog.upstream_credential_used)
    )

    return UsageReport(
        period=period,
        total_requests=totals.requests,
        successful_requests=int(totals.ok),
        total_tokens=int(totals.tokens),
        success_rate=_rate(int(totals.ok), totals.requests),
        top_api_keys=[KeyTokensOut.model_validate(row) for row in top_keys.all()],
        upstream_credentials=[
            CredentialTokensOut.model_validate(row) for row in per_credential.all()
        ],
    )


async def users_report(
    session: AsyncSession,
    period: AnalyticsPeriod,
    now: datetime.datetime | None = None,
) -> UsersReport:
    since = window_start(period, now)
    in_window = UsageLog.timestamp >= since
    tokens = func.coalesce(func.sum(UsageLog.tokens_used), 0)

    active_users = await session.scalar(
        select(func.count(distinct(UsageLog.owner_id))).where(in_window)
    )
    total_accounts = await session.scalar(select(func.count()).select_from(Account))
    keys_created = await session.scalar(
        select(func.count()).select_from(APIKey).where(APIKey.created_at >= since)
    )

    top_users = await session.execute(
        select(
            UsageLog.owner_id.label("owner_id"),
            tokens.label("tokens"),
            func.count().label("requests"),
        )
        .where(in_window)
        .group_by(UsageLog.owner_id)
        .order_by(tokens.desc(), UsageLog.owner_id)
        .limit(TOP_N)
    )

    return UsersReport(
        period=period,
        active_users=active_users or 0,
        total_accounts=total_accounts or 0,
        keys_created=keys_created or 0,
        top_users=[OwnerTokensOut.model_validate(row) for row in top_users.all()],
    )


async def errors_report(
    session: AsyncSession,
    period: AnalyticsPeriod,
    now: datetime.datetime | None = None,
) -> ErrorsReport:
    in_window = UsageLog.timestamp >= window_start(period, now)
    failed = UsageLog.success.is_(False)
    # Literal, not a bind parameter, so SELECT and GROUP BY render identically.
    code = func.coalesce(UsageLog.error_code, literal_column("'unknown'"))

    count_logs = select(func.count()).select_from(UsageLog)
    total_requests = await session.scalar(count_logs.where(in_window)) or 0
    total_errors = await session.scalar(count_logs.where(in_window, failed)) or 0

    top_errors = await session.execute(
        select(code.label("code"), func.count().label("count"))
        .where(in_window, failed)
        .group_by(code)
        .order_by(func.count().desc(), code)
        .limit(TOP_N)
    )

    return ErrorsReport(
        period=period,
        total_requests=total_requests,
        total_errors=total_errors,
        error_rate=_rate(total_errors, total_requests),
        top_errors=[ErrorCountOut.model_validate(row) for row in top_errors.all()],
    )
