"""
Dev seed script — tiers, one upstream credential, an admin and a sample key.

Usage:
    python -m scripts.seed_dev

This will:
  1. Upsert the free / pro / payg tier configs
  2. Register upstream credential "or-1" reading OPENROUTER_KEY_1
  3. Create the "dev-admin" account (role admin)
  4. Issue a free-tier API key for it and print it

Safe to re-run: existing tiers, credentials and accounts are left alone,
but every run issues a fresh key.
"""

import asyncio
import sys
from decimal import Decimal

# Ensure the project root is on the path
sys.path.insert(0, ".")

from app.auth.keys import generate_api_key
from app.core.database import async_session_factory, engine
from app.models.account import ROLE_ADMIN, Account
from app.models.api_key import APIKey
from app.models.tier import Tier
from app.models.upstream_credential import UpstreamCredential

DEV_ADMIN_ID = "dev-admin"

TIERS = [
    Tier(
        name="free",
        default_model="openai/gpt-3.5-turbo",
        rate_limit_per_min=10,
        monthly_quota=10_000,
        price_per_token=Decimal("0"),
        display_name="Free",
        description="For trying things out",
        price=Decimal("0"),
        features=["10 requests / minute", "10k tokens / month"],
    ),
    Tier(
        name="pro",
        default_model="openai/gpt-4",
        rate_limit_per_min=60,
        monthly_quota=1_000_000,
        price_per_token=Decimal("0"),
        display_name="Pro",
        description="For daily use",
        price=Decimal("20.00"),
        features=["60 requests / minute", "1M tokens / month"],
    ),
    Tier(
        name="payg",
        default_model="openai/gpt-4",
        rate_limit_per_min=60,
        monthly_quota=0,
        price_per_token=Decimal("0.00002"),
        display_name="Pay as you go",
        description="Billed per token, no monthly cap",
        price=Decimal("0"),
        features=["60 requests / minute", "No monthly cap"],
    ),
]


async def main() -> None:
    async with async_session_factory() as session:
        # ── Tiers ───────────────────────────────────────────
        for tier in TIERS:
            if await session.get(Tier, tier.name) is None:
                session.add(tier)

        # ── Upstream credential ─────────────────────────────
        if await session.get(UpstreamCredential, "or-1") is None:
            session.add(
                UpstreamCredential(
                    id="or-1",
                    env_name="OPENROUTER_KEY_1",
                    notes="Seeded for local development",
                )
            )

        # ── Admin account ───────────────────────────────────
        if await session.get(Account, DEV_ADMIN_ID) is None:
            session.add(Account(id=DEV_ADMIN_ID, email="admin@localhost", role=ROLE_ADMIN))
        await session.flush()

        # ── API key ─────────────────────────────────────────
        api_key = APIKey(
            key=generate_api_key(),
            tier="free",
            owner_id=DEV_ADMIN_ID,
            monthly_quota=10_000,
            usage_this_month=0,
            linked_upstream_credentials=["or-1"],
        )
        session.add(api_key)
        await session.commit()

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Seed Complete")
    print("=" * 60)
    print()
    print(f"  Admin account: {DEV_ADMIN_ID}")
    print("  Upstream:      or-1 (reads OPENROUTER_KEY_1)")
    print()
    print(f"  API Key:       {api_key.key}")
    print()
    print("  Sign an HS256 JWT with AUTH_JWT_SECRET and sub=dev-admin")
    print("  to call the /api/admin endpoints.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
