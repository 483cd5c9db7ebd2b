"""Schemas for the upstream health sweep."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ProbeResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    env_name: str
    status: str
    message: str
    skipped: bool = False


class HealthSweepOut(BaseModel):
    success: bool
    timestamp: datetime
    keys_checked: int
    results: list[ProbeResultOut]
