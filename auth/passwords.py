"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The work factor comes from Settings.bcrypt_rounds (tests lower it to 4).
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

_settings = get_settings()


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext secret.

    Current bcrypt releases reject secrets longer than 72 bytes. The API
    layer caps password length well below that.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load. Verify against it whenever there is no real
# hash to compare, so response time does not reveal whether an email exists.
DUMMY_HASH: str = hash_password("budgetkeeper_timing_dummy")
