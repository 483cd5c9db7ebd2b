"""
API key format and generation.

Format: `ctrl-` followed by exactly 16 characters from [A-Za-z0-9]
(case-sensitive). The format check is pure and runs before any store
access so malformed keys never cost a lookup.
"""

import re
import secrets
import string

KEY_PREFIX = "ctrl-"
_KEY_BODY_LENGTH = 16
_KEY_ALPHABET = string.ascii_letters + string.digits
_KEY_PATTERN = re.compile(r"ctrl-[A-Za-z0-9]{16}")


def is_well_formed(api_key: object) -> bool:
    """True iff `api_key` is a string matching ^ctrl-[A-Za-z0-9]{16}$."""
    if not isinstance(api_key, str):
        return False
    return _KEY_PATTERN.fullmatch(api_key) is not None


def generate_api_key() -> str:
    """Generate a new random key in the canonical format."""
    body = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(_KEY_BODY_LENGTH))
    return f"{KEY_PREFIX}{body}"


def redact(api_key: str) -> str:
    """Loggable form of a key: the prefix and first four characters."""
    return f"{api_key[:9]}…"
