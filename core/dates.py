"""
core/dates.py -- Date helpers for cookie expirations.

Only the HTTP boundary uses these; token lifetimes are computed inside
auth/tokens.py from the issuer's own clock.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_from_now(hours: int) -> datetime:
    """Return an aware UTC datetime `hours` hours in the future."""
    return utcnow() + timedelta(hours=hours)


def days_from_now(days: int) -> datetime:
    """Return an aware UTC datetime `days` days in the future."""
    return utcnow() + timedelta(days=days)


def now_iso() -> str:
    return utcnow().isoformat()
