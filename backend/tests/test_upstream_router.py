"""Credential selection over the healthy pool."""

from collections import Counter

import pytest
import pytest_asyncio
from redis.exceptions import RedisError

from app.core.counters import upstream_concurrent_key
from app.models.upstream_credential import HealthStatus
from app.services.upstream_health import read_flags, set_flag
from app.services.upstream_router import RoutingPolicy, select_credential


@pytest_asyncio.fixture
async def pool(seed):
    for credential_id in ("a", "b", "c"):
        await seed.credential(credential_id)


class TestRoundRobin:
    @pytest.mark.asyncio
    async def test_cycles_through_the_pool_in_order(self, session, redis, pool):
        picks = [
            (await select_credential(session, redis, RoutingPolicy.ROUND_ROBIN)).id
            for _ in range(6)
        ]
        assert picks == ["a", "b", "c", "a", "b", "c"]

    @pytest.mark.asyncio
    async def test_spreads_evenly(self, session, redis, pool):
        picks = [
            (await select_credential(session, redis, "round_robin")).id for _ in range(300)
        ]
        counts = Counter(picks)
        assert counts == {"a": 100, "b": 100, "c": 100}

    @pytest.mark.asyncio
    async def test_uneven_call_count_differs_by_at_most_one(self, session, redis, pool):
        picks = [(await select_credential(session, redis)).id for _ in range(7)]
        assert sorted(Counter(picks).values()) == [2, 2, 3]

    @pytest.mark.asyncio
    async def test_skips_unhealthy_and_rate_limited(self, session, redis, pool):
        await set_flag(redis, "a", HealthStatus.UNHEALTHY)
        await set_flag(redis, "c", HealthStatus.RATE_LIMITED)

        picks = {(await select_credential(session, redis)).id for _ in range(5)}
        assert picks == {"b"}

    @pytest.mark.asyncio
    async def test_negative_flags_expire_back_to_healthy(self, session, redis, pool):
        await set_flag(redis, "a", HealthStatus.UNHEALTHY)
        await set_flag(redis, "b", HealthStatus.UNHEALTHY)
        await set_flag(redis, "c", HealthStatus.RATE_LIMITED)
        assert await select_credential(session, redis) is None

        redis.advance(60)
        picks = {(await select_credential(session, redis)).id for _ in range(4)}
        assert picks == {"a", "b"}

        redis.advance(240)
        picks = {(await select_credential(session, redis)).id for _ in range(6)}
        assert picks == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_empty_pool_returns_none(self, session, redis):
        assert await select_credential(session, redis) is None


class TestLeastLoad:
    @pytest.mark.asyncio
    async def test_picks_fewest_in_flight(self, session, redis, pool):
        for credential_id, load in (("a", 5), ("b", 2), ("c", 8)):
            await redis.set(upstream_concurrent_key(credential_id), load)

        picked = await select_credential(session, redis, RoutingPolicy.LEAST_LOAD)
        assert picked.id == "b"

    @pytest.mark.asyncio
    async def test_ties_go_to_the_first_credential(self, session, redis, pool):
        await redis.set(upstream_concurrent_key("a"), 3)

        picked = await select_credential(session, redis, "least_load")
        assert picked.id == "b"

    @pytest.mark.asyncio
    async def test_ignores_unhealthy_even_if_idle(self, session, redis, pool):
        await redis.set(upstream_concurrent_key("a"), 4)
        await redis.set(upstream_concurrent_key("c"), 1)
        await set_flag(redis, "b", HealthStatus.UNHEALTHY)

        picked = await select_credential(session, redis, "least_load")
        assert picked.id == "c"


class TestFlags:
    @pytest.mark.asyncio
    async def test_unknown_flag_value_reads_as_unhealthy(self, redis):
        await redis.set("openrouter:status:x", "bogus")
        assert await read_flags(redis, ["x", "y"]) == [HealthStatus.UNHEALTHY, None]

    @pytest.mark.asyncio
    async def test_flag_lifetimes(self, redis):
        await set_flag(redis, "a", HealthStatus.HEALTHY)
        await set_flag(redis, "b", HealthStatus.UNHEALTHY)
        await set_flag(redis, "c", HealthStatus.RATE_LIMITED)

        assert await redis.ttl("openrouter:status:a") == -1
        assert await redis.ttl("openrouter:status:b") == 60
        assert await redis.ttl("openrouter:status:c") == 300

    @pytest.mark.asyncio
    async def test_selection_fails_closed_on_store_error(self, session, redis, pool):
        redis.fail = True
        with pytest.raises(RedisError):
            await select_credential(session, redis)
