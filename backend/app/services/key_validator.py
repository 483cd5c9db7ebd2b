"""
Key validator — format check, then key-store lookup.

Malformed keys are rejected before touching the store. Unknown and
revoked keys raise the same error so callers cannot tell them apart.
Store errors propagate: key lookup fails closed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.keys import is_well_formed
from app.models.api_key import APIKey


class InvalidAPIKeyError(Exception):
    """The key is malformed, unknown, or not active."""


async def lookup_api_key(session: AsyncSession, api_key: str) -> APIKey:
    """Fetch a key record. Raises InvalidAPIKeyError if malformed or absent."""
    if not is_well_formed(api_key):
        raise InvalidAPIKeyError("malformed key")

    record = await session.get(APIKey, api_key)
    if record is None:
        raise InvalidAPIKeyError("unknown key")
    return record


async def authorize_api_key(session: AsyncSession, api_key: str) -> APIKey:
    """Like lookup_api_key, but inactive keys are rejected too."""
    record = await lookup_api_key(session, api_key)
    if not record.is_active:
        raise InvalidAPIKeyError("inactive key")
    return record
