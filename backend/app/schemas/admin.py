"""
Pydantic v2 schemas for the admin endpoints (keys, credentials, tiers).

Request models use extra="forbid" so typos surface as 400s instead of
being silently dropped.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TierName = Literal["free", "pro", "payg"]


# ── API keys ────────────────────────────────────────────────
class APIKeyCreate(BaseModel):
    """POST /api/admin/keys. Quota 0 or omitted → tier default."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    user_id: str = Field(..., min_length=1, alias="userId")
    tier: TierName
    quota: int | None = Field(default=None, ge=0)


class APIKeyRevoke(BaseModel):
    """DELETE /api/admin/keys."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(..., min_length=1)


class APIKeyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    tier: str
    status: str
    owner_id: str
    monthly_quota: int
    usage_this_month: int
    linked_upstream_credentials: list[str]
    created_at: datetime


# ── Upstream credentials ────────────────────────────────────
class CredentialUpsert(BaseModel):
    """POST /api/admin/openrouter — creates or updates by id."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    env_name: str = Field(..., min_length=1, max_length=128)
    notes: str | None = None


class CredentialOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    env_name: str
    notes: str
    status: str
    last_checked_at: datetime
    current_status: str | None = None


# ── Tiers ───────────────────────────────────────────────────
class TierFields(BaseModel):
    """Tier fields without the name (PUT /api/admin/tiers/{name})."""

    model_config = ConfigDict(extra="forbid")

    default_model: str = Field(..., min_length=1, max_length=100)
    rate_limit_per_min: int = Field(..., gt=0)
    monthly_quota: int = Field(..., ge=0)
    price_per_token: Decimal = Field(..., ge=0)
    display_name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    price: Decimal = Field(..., ge=0)
    features: list[str] = Field(default_factory=list)


class TierUpsert(TierFields):
    """POST /api/admin/tiers."""

    name: TierName


class TierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    default_model: str
    rate_limit_per_min: int
    monthly_quota: int
    price_per_token: Decimal
    display_name: str
    description: str | None
    price: Decimal
    features: list[str]


class SuccessOut(BaseModel):
    success: bool = True
