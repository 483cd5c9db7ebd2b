"""Admin endpoints: identity, keys, upstream credentials and tiers."""

import jwt
import pytest

from app.auth.keys import is_well_formed
from app.core.counters import rate_limit_key, tier_key, token_usage_key
from conftest import admin_token, bearer

TIER_BODY = {
    "default_model": "openai/gpt-4",
    "rate_limit_per_min": 60,
    "monthly_quota": 1_000_000,
    "price_per_token": "0",
    "display_name": "Pro",
    "description": "For daily use",
    "price": "20.00",
    "features": ["60 requests / minute"],
}


class TestAdminIdentity:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client):
        response = await client.get("/api/admin/keys")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_garbage_token_is_401(self, client):
        response = await client.get("/api/admin/keys", headers=bearer("not-a-jwt"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_signed_with_another_secret_is_401(self, client, seed):
        await seed.account("admin-1", role="admin")
        token = jwt.encode({"sub": "admin-1"}, "some-other-secret", algorithm="HS256")

        response = await client.get("/api/admin/keys", headers=bearer(token))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_admin_is_403(self, client, seed):
        await seed.account("user-1")
        response = await client.get("/api/admin/keys", headers=bearer(admin_token("user-1")))
        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"

    @pytest.mark.asyncio
    async def test_unknown_account_is_403(self, client):
        response = await client.get("/api/admin/keys", headers=bearer(admin_token("ghost")))
        assert response.status_code == 403


class TestAdminKeys:
    @pytest.mark.asyncio
    async def test_create_list_and_revoke(self, client, seed, redis, admin_headers):
        await seed.tier("free", monthly_quota=10_000)
        await seed.account("user-1")

        created = await client.post(
            "/api/admin/keys",
            json={"userId": "user-1", "tier": "free"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        record = created.json()
        assert is_well_formed(record["key"])
        assert record["monthly_quota"] == 10_000
        assert record["status"] == "active"
        assert record["owner_id"] == "user-1"

        listed = await client.get("/api/admin/keys", headers=admin_headers)
        assert [k["key"] for k in listed.json()] == [record["key"]]

        await redis.set(rate_limit_key(record["key"]), 3, ex=60)
        await redis.set(token_usage_key(record["key"]), 500)
        revoked = await client.request(
            "DELETE",
            "/api/admin/keys",
            json={"key": record["key"]},
            headers=admin_headers,
        )
        assert revoked.status_code == 200
        assert revoked.json() == {"success": True}
        assert await redis.get(rate_limit_key(record["key"])) is None
        assert await redis.get(token_usage_key(record["key"])) is None

        listed = await client.get("/api/admin/keys", headers=admin_headers)
        assert listed.json()[0]["status"] == "revoked"

        proxied = await client.post("/api/ai", json={"api_key": record["key"], "prompt": "Hi"})
        assert proxied.status_code == 401

    @pytest.mark.asyncio
    async def test_explicit_quota_is_kept(self, client, seed, admin_headers):
        await seed.tier("free", monthly_quota=10_000)
        await seed.account("user-1")

        created = await client.post(
            "/api/admin/keys",
            json={"userId": "user-1", "tier": "free", "quota": 500},
            headers=admin_headers,
        )
        assert created.json()["monthly_quota"] == 500

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, client, seed, admin_headers):
        await seed.tier("free")
        response = await client.post(
            "/api/admin/keys",
            json={"userId": "nobody", "tier": "free"},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    @pytest.mark.asyncio
    async def test_unconfigured_tier_is_400(self, client, seed, admin_headers):
        await seed.account("user-1")
        response = await client.post(
            "/api/admin/keys",
            json={"userId": "user-1", "tier": "pro"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Tier is not configured"

    @pytest.mark.asyncio
    async def test_invalid_tier_name_is_400(self, client, admin_headers):
        response = await client.post(
            "/api/admin/keys",
            json={"userId": "user-1", "tier": "gold"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    @pytest.mark.asyncio
    async def test_revoke_malformed_key_is_400(self, client, admin_headers):
        response = await client.request(
            "DELETE", "/api/admin/keys", json={"key": "nope"}, headers=admin_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_revoke_unknown_key_is_404(self, client, admin_headers):
        response = await client.request(
            "DELETE",
            "/api/admin/keys",
            json={"key": "ctrl-ZZZZZZZZZZZZZZZZ"},
            headers=admin_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "API key not found"


class TestAdminCredentials:
    @pytest.mark.asyncio
    async def test_upsert_list_and_delete(self, client, redis, admin_headers):
        saved = await client.post(
            "/api/admin/openrouter",
            json={"id": "or-1", "env_name": "OPENROUTER_KEY_1", "notes": "primary"},
            headers=admin_headers,
        )
        assert saved.status_code == 200
        assert saved.json()["status"] == "healthy"
        assert await redis.get("openrouter:status:or-1") == "healthy"

        await redis.set("openrouter:status:or-1", "unhealthy", ex=60)
        listed = (await client.get("/api/admin/openrouter", headers=admin_headers)).json()
        assert len(listed) == 1
        assert listed[0]["env_name"] == "OPENROUTER_KEY_1"
        assert listed[0]["notes"] == "primary"
        assert listed[0]["current_status"] == "unhealthy"

        updated = await client.post(
            "/api/admin/openrouter",
            json={"id": "or-1", "env_name": "OPENROUTER_KEY_2"},
            headers=admin_headers,
        )
        assert updated.json()["env_name"] == "OPENROUTER_KEY_2"
        assert updated.json()["current_status"] == "healthy"

        deleted = await client.delete("/api/admin/openrouter?id=or-1", headers=admin_headers)
        assert deleted.json() == {"success": True}
        assert await redis.get("openrouter:status:or-1") is None
        assert (await client.get("/api/admin/openrouter", headers=admin_headers)).json() == []

    @pytest.mark.asyncio
    async def test_delete_without_id_is_400(self, client, admin_headers):
        response = await client.delete("/api/admin/openrouter", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Missing credential id"

    @pytest.mark.asyncio
    async def test_listing_survives_counter_store_outage(self, client, seed, redis, admin_headers):
        await seed.credential("or-1")
        redis.fail = True

        response = await client.get("/api/admin/openrouter", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()[0]["current_status"] == "healthy"


class TestAdminTiers:
    @pytest.mark.asyncio
    async def test_post_creates_and_caches(self, client, redis, admin_headers):
        response = await client.post(
            "/api/admin/tiers", json={"name": "pro", **TIER_BODY}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["rate_limit_per_min"] == 60
        assert await redis.get(tier_key("pro")) is not None

        fetched = await client.get("/api/admin/tiers/pro", headers=admin_headers)
        assert fetched.json()["display_name"] == "Pro"

        listed = await client.get("/api/admin/tiers", headers=admin_headers)
        assert [t["name"] for t in listed.json()] == ["pro"]

    @pytest.mark.asyncio
    async def test_put_updates_and_evicts(self, client, seed, redis, admin_headers):
        await seed.tier("pro", rate_limit_per_min=30)
        await redis.set(tier_key("pro"), "stale")

        response = await client.put(
            "/api/admin/tiers/pro", json=TIER_BODY, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["rate_limit_per_min"] == 60
        assert await redis.get(tier_key("pro")) is None

    @pytest.mark.asyncio
    async def test_delete_by_query_and_path(self, client, seed, admin_headers):
        await seed.tier("free")
        await seed.tier("pro")

        first = await client.delete("/api/admin/tiers?name=free", headers=admin_headers)
        second = await client.delete("/api/admin/tiers/pro", headers=admin_headers)
        assert first.json() == second.json() == {"success": True}

        listed = await client.get("/api/admin/tiers", headers=admin_headers)
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_delete_without_name_is_400(self, client, admin_headers):
        response = await client.delete("/api/admin/tiers", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Missing tier name"

    @pytest.mark.asyncio
    async def test_unknown_tier_is_404(self, client, admin_headers):
        response = await client.get("/api/admin/tiers/payg", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Tier not found"

    @pytest.mark.asyncio
    async def test_invalid_values_are_400(self, client, admin_headers):
        body = {**TIER_BODY, "rate_limit_per_min": 0}
        response = await client.put("/api/admin/tiers/pro", json=body, headers=admin_headers)
        assert response.status_code == 400
