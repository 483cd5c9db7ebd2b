"""HTTP client dependency for upstream calls."""

from collections.abc import AsyncGenerator

import httpx


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Yield an httpx client for one request.

    Timeouts are set per call (proxy vs. probe), not on the client.
    """
    async with httpx.AsyncClient() as client:
        yield client
