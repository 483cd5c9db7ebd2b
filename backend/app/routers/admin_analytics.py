"""
Admin router — usage analytics.

GET /api/admin/analytics?period=24h&type=usage

  period ∈ {1h, 24h, 7d, 30d, 90d}
  type   ∈ {usage, users, errors}

Anything else is a 400 (request validation).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AdminContext, require_admin
from app.core.database import get_db_session
from app.core.errors import reported_as
from app.schemas.analytics import (
    AnalyticsPeriod,
    AnalyticsType,
    ErrorsReport,
    UsageReport,
    UsersReport,
)
from app.services.analytics import errors_report, usage_report, users_report

router = APIRouter(tags=["Admin: analytics"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Admin = Annotated[AdminContext, Depends(require_admin)]

_REPORTS = {
    "usage": usage_report,
    "users": users_report,
    "errors": errors_report,
}


@router.get(
    "/analytics",
    response_model=UsageReport | UsersReport | ErrorsReport,
    summary="Aggregated usage, user or error counts",
)
async def get_analytics(
    session: DbSession,
    _admin: Admin,
    period: AnalyticsPeriod = Query(default="24h"),
    report_type: AnalyticsType = Query(default="usage", alias="type"),
) -> UsageReport | UsersReport | ErrorsReport:
    async with reported_as("Failed to get analytics"):
        return await _REPORTS[report_type](session, period)
