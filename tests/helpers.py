"""
tests/helpers.py -- Constants and builders shared by test modules.

Importable as `helpers` because pytest puts tests/ on sys.path (rootdir
conftest, default prepend import mode).
"""

from __future__ import annotations

import uuid

from auth.models import LOCAL_SOURCE, DeviceFingerprint, RawProfile

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
ACCESS_TTL = 3600
REFRESH_TTL = 7 * 86400

DEVICE = DeviceFingerprint(browser_family="Chrome", platform_family="Mac OS X", version_string="120.0.0")

CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36"
)


def memory_db_url(prefix: str) -> str:
    """Named shared-memory SQLite URI, unique per call."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_local_profile(email: str = "alice@example.com", password: str = "s3cret!pw", **extra) -> RawProfile:
    claims = {"email": email, "password": password, "name": "Alice"}
    claims.update(extra)
    return RawProfile(source=LOCAL_SOURCE, claims=claims)
