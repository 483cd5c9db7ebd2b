"""
JSON error rendering.

Every error leaves the service as `{"error": ..., "message"?: ..., "details"?: ...}`.
Handlers are registered on the app in main.py:

  • APIError                → its own status / body / headers
  • RequestValidationError  → 400 with pydantic error details
  • anything else           → 500, logged with traceback
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error with a client-facing status code and JSON body."""

    def __init__(
        self,
        status_code: int,
        error: str,
        *,
        message: str | None = None,
        details: Any = None,
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.details = details
        self.headers = headers
        self.extra = extra or {}

    def body(self) -> dict[str, Any]:
        content: dict[str, Any] = {"error": self.error}
        if self.message is not None:
            content["message"] = self.message
        if self.details is not None:
            content["details"] = self.details
        content.update(self.extra)
        return content


async def _api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.body()),
        headers=exc.headers,
    )


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request body",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred",
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, _api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)


@asynccontextmanager
async def reported_as(
    error: str,
    session: AsyncSession | None = None,
) -> AsyncIterator[None]:
    """
    Turn unexpected failures inside an admin handler into a 500 APIError.

    Admins get the underlying exception text in `message`. APIErrors
    raised inside the block pass through untouched.
    """
    try:
        yield
    except APIError:
        raise
    except Exception as exc:
        if session is not None:
            await session.rollback()
        logger.exception(error)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error,
            message=str(exc) or exc.__class__.__name__,
        ) from exc
