"""
Infrastructure failure policy.

When the key store or counter store is unreachable, each concern either
fails OPEN (proceed as if the check passed) or fails CLOSED (reject).
Throttling favours availability; authorization and routing favour
correctness.
"""

from __future__ import annotations

import enum

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError


class FailureMode(str, enum.Enum):
    OPEN = "fail_open"
    CLOSED = "fail_closed"


class TierNotFoundError(LookupError):
    """Raised when a key references a tier with no stored config."""


# Errors treated as "the store is unavailable" rather than a logic bug.
INFRASTRUCTURE_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    SQLAlchemyError,
    OSError,
    TierNotFoundError,
)

FAILURE_POLICY: dict[str, FailureMode] = {
    "rate_limit": FailureMode.OPEN,
    "token_quota": FailureMode.OPEN,
    "key_lookup": FailureMode.CLOSED,
    "credential_selection": FailureMode.CLOSED,
}


def fails_open(concern: str) -> bool:
    """True if `concern` should be treated as passing on infrastructure error."""
    return FAILURE_POLICY[concern] is FailureMode.OPEN
