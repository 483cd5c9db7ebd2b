"""
Key store: async engine, session factory and declarative base.

The key store is the durable side of the gateway (accounts, API keys,
tiers, upstream credentials, usage logs). Conventions:

  • All access goes through AsyncSession; one session per request via
    Depends(get_db_session). Routers and services commit explicitly.
  • Durable counters (usage_this_month, account usage, payg_due) move only
    through single UPDATE … SET col = col + n statements.
  • Timestamps are stored timezone-aware and compared in UTC.
"""

import datetime
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    # SQLite (tests, local dev) has no server connection to go stale.
    if make_url(url).get_backend_name() == "sqlite":
        return {"echo": settings.DEBUG}
    return {"echo": settings.DEBUG, "pool_pre_ping": True}


# ── Engine / sessions ───────────────────────────────────────
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# expire_on_commit=False: records stay readable after commit without a
# lazy load, which AsyncSession cannot do implicitly.
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every key store model."""


# ── Time ────────────────────────────────────────────────────
def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


# ── Dependency ──────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; closing rolls back anything uncommitted."""
    async with async_session_factory() as session:
        yield session
