"""
FastAPI dependencies for caller identity.

Two callers besides API-key clients:

  • Admins — `Authorization: Bearer <JWT>` (HS256, AUTH_JWT_SECRET).
    The `sub` claim names an account; the caller is an admin iff that
    account's role is "admin".
      - missing / malformed / invalid token → 401
      - valid token, unknown or non-admin account → 403
  • The cron scheduler — `Authorization: Bearer <CRON_SECRET>`.

Responses are deliberately generic: the caller is never told which
check failed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

import jwt
from fastapi import Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db_session
from app.core.errors import APIError
from app.models.account import Account

logger = logging.getLogger(__name__)

_JWT_ALGORITHM = "HS256"


def _unauthorized() -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        "Unauthorized",
        message="Invalid or missing credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


@dataclass(frozen=True, slots=True)
class AdminContext:
    """The authenticated admin behind a request."""

    account_id: str


async def require_admin(
    authorization: str | None = Header(default=None, alias="Authorization"),
    session: AsyncSession = Depends(get_db_session),
) -> AdminContext:
    """
    Resolve the bearer identity token and require the admin role.

    Usage in routers:
        Admin = Annotated[AdminContext, Depends(require_admin)]
    """
    token = _bearer_token(authorization)
    if token is None or not settings.AUTH_JWT_SECRET:
        raise _unauthorized()

    try:
        claims = jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=[_JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected admin token: %s", exc)
        raise _unauthorized() from exc

    account_id = claims.get("sub")
    if not account_id:
        raise _unauthorized()

    account = await session.get(Account, account_id)
    if account is None or not account.is_admin:
        raise APIError(status.HTTP_403_FORBIDDEN, "Admin access required")

    return AdminContext(account_id=account.id)


async def require_cron_secret(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Only the scheduler holding CRON_SECRET may trigger the health sweep."""
    token = _bearer_token(authorization)
    if (
        token is None
        or not settings.CRON_SECRET
        or not secrets.compare_digest(token.encode(), settings.CRON_SECRET.encode())
    ):
        raise _unauthorized()
