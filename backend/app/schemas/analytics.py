"""
Pydantic v2 response schemas for GET /api/admin/analytics.

One response model per report type. Rows returned by Core select()
map directly thanks to from_attributes=True.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

AnalyticsPeriod = Literal["1h", "24h", "7d", "30d", "90d"]
AnalyticsType = Literal["usage", "users", "errors"]


class KeyTokensOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    tokens: int


class CredentialTokensOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tokens: int
    requests: int


class OwnerTokensOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owner_id: str
    tokens: int
    requests: int


class ErrorCountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    count: int


class UsageReport(BaseModel):
    period: AnalyticsPeriod
    type: Literal["usage"] = "usage"
    total_requests: int
    successful_requests: int
    total_tokens: int
    success_rate: float
    top_api_keys: list[KeyTokensOut]
    upstream_credentials: list[CredentialTokensOut]


class UsersReport(BaseModel):
    period: AnalyticsPeriod
    type: Literal["users"] = "users"
    active_users: int
    total_accounts: int
    keys_created: int
    top_users: list[OwnerTokensOut]


class ErrorsReport(BaseModel):
    period: AnalyticsPeriod
    type: Literal["errors"] = "errors"
    total_requests: int
    total_errors: int
    error_rate: float
    top_errors: list[ErrorCountOut]
