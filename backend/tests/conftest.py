"""
Shared fixtures.

  • A throwaway SQLite key store per test (aiosqlite, file in tmp_path).
  • FakeRedis — an in-memory counter store with a manual clock, so window
    and flag expiry can be tested without sleeping.
  • UpstreamStub — an httpx.MockTransport handler standing in for OpenRouter.
  • `client` — the FastAPI app behind httpx's ASGI transport with all
    three infrastructure dependencies overridden.
"""

import math
import os

# Settings are read at import time; configure them before importing the app.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"

import datetime
from decimal import Decimal

import httpx
import jwt
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.counters import get_redis
from app.core.database import Base, get_db_session, utcnow
from app.core.http import get_http_client
from app.main import app
from app.models.account import ROLE_ADMIN, ROLE_USER, Account
from app.models.api_key import KEY_STATUS_ACTIVE, APIKey
from app.models.tier import Tier
from app.models.upstream_credential import HealthStatus, UpstreamCredential
from app.models.usage_log import UsageLog  # noqa: F401

JWT_SECRET = os.environ["AUTH_JWT_SECRET"]
CRON_SECRET = os.environ["CRON_SECRET"]


# ── Counter store double ────────────────────────────────────
class FakeRedis:
    """
    The subset of redis.asyncio.Redis the service uses, with
    decode_responses=True semantics (values come back as str).

    Set `fail = True` to make every command raise a connection error.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.fail = False
        self._data: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("counter store unavailable")

    def _alive(self, key: str) -> bool:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self.now:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self._data[key] if self._alive(key) else None

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._check()
        return [self._data[k] if self._alive(k) else None for k in keys]

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and self._alive(key):
            return None
        self._data[key] = str(value)
        if ex is not None:
            self._expires[key] = self.now + ex
        else:
            self._expires.pop(key, None)
        return True

    async def incrby(self, key: str, amount: int) -> int:
        self._check()
        value = int(self._data[key]) + amount if self._alive(key) else amount
        self._data[key] = str(value)
        return value

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def decr(self, key: str) -> int:
        return await self.incrby(key, -1)

    async def ttl(self, key: str) -> int:
        self._check()
        if not self._alive(key):
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return math.ceil(deadline - self.now)

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        if not self._alive(key):
            return False
        self._expires[key] = self.now + seconds
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return removed

    async def aclose(self) -> None:
        pass


# ── Upstream double ─────────────────────────────────────────
def completion_body(content: str = "Hello!", total_tokens: int = 42) -> dict:
    return {
        "id": "gen-123",
        "model": "openai/gpt-3.5-turbo",
        "created": 1_700_000_000,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": total_tokens - 10,
            "total_tokens": total_tokens,
        },
    }


def _ok(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=completion_body())


class UpstreamStub:
    """Records every outgoing request and answers with `handler`."""

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.handler = _ok

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


# ── Seeding ─────────────────────────────────────────────────
class Seeder:
    """Writes fixture rows in their own committed sessions."""

    def __init__(self, session_factory) -> None:
        self._factory = session_factory

    async def _save(self, obj):
        async with self._factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def tier(
        self,
        name: str = "free",
        rate_limit_per_min: int = 10,
        monthly_quota: int = 10_000,
        price_per_token: str = "0",
        default_model: str = "openai/gpt-3.5-turbo",
    ) -> Tier:
        return await self._save(
            Tier(
                name=name,
                default_model=default_model,
                rate_limit_per_min=rate_limit_per_min,
                monthly_quota=monthly_quota,
                price_per_token=Decimal(price_per_token),
                display_name=name.title(),
                description=None,
                price=Decimal("0"),
                features=[],
            )
        )

    async def account(self, account_id: str = "user-1", role: str = ROLE_USER) -> Account:
        return await self._save(Account(id=account_id, role=role))

    async def api_key(
        self,
        key: str = "ctrl-AAAAAAAAAAAAAAAA",
        tier: str = "free",
        owner_id: str = "user-1",
        monthly_quota: int = 10_000,
        usage_this_month: int = 0,
        status: str = KEY_STATUS_ACTIVE,
    ) -> APIKey:
        async with self._factory() as session:
            if await session.get(Account, owner_id) is None:
                session.add(Account(id=owner_id, role=ROLE_USER))
            await session.commit()
        return await self._save(
            APIKey(
                key=key,
                tier=tier,
                status=status,
                owner_id=owner_id,
                monthly_quota=monthly_quota,
                usage_this_month=usage_this_month,
                linked_upstream_credentials=[],
            )
        )

    async def credential(
        self,
        credential_id: str,
        env_name: str | None = None,
        status: HealthStatus = HealthStatus.HEALTHY,
        last_checked_at: datetime.datetime | None = None,
    ) -> UpstreamCredential:
        return await self._save(
            UpstreamCredential(
                id=credential_id,
                env_name=env_name or f"OR_KEY_{credential_id.upper()}",
                notes="",
                status=status.value,
                last_checked_at=last_checked_at or utcnow(),
            )
        )


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def admin_token(account_id: str) -> str:
    return jwt.encode({"sub": account_id}, JWT_SECRET, algorithm="HS256")


# ── Fixtures ────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest_asyncio.fixture
async def admin_headers(seed) -> dict[str, str]:
    await seed.account("admin-1", role=ROLE_ADMIN)
    return bearer(admin_token("admin-1"))


@pytest_asyncio.fixture
async def client(session_factory, redis, upstream):
    async def _session():
        async with session_factory() as session:
            yield session

    async def _http_client():
        async with upstream.client() as http_client:
            yield http_client

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_http_client] = _http_client

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
