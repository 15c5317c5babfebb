"""
auth/tokens.py -- JWT issuing and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (account id), typ, iat, exp and jti. Verification returns None on
       any failure -- callers turn that into UnauthorizedError.

  typ: "access", "refresh" or "verify_email". decode() checks it when the
       caller names an expected type, so a refresh token can never be
       presented as an access token or the other way around.

  jti: a random id per token. Two tokens for the same subject issued within
       the same second would otherwise be byte-identical.

  Refresh tokens are only half of the check. The session orchestrator also
  compares the presented token with the one stored in the session cache, so
  deleting the cache entry revokes a token that has not expired yet.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import Settings, get_settings

logger = logging.getLogger("budgetkeeper.auth.tokens")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"
VERIFY_EMAIL = "verify_email"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mint and verify signed tokens with per-type lifetimes.

    Usage:
        issuer = TokenIssuer.from_settings()
        token = issuer.issue_access(account.id)
        claims = issuer.decode(token, expected_type="access")  # dict or None
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        verify_ttl_seconds: int = 24 * 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self.verify_ttl_seconds = verify_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TokenIssuer":
        cfg = settings or get_settings()
        return cls(
            secret_key=cfg.secret_key,
            access_ttl_seconds=cfg.access_token_ttl_seconds,
            refresh_ttl_seconds=cfg.refresh_token_ttl_seconds,
            verify_ttl_seconds=cfg.verify_token_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access(self, account_id: str) -> str:
        return self._encode(account_id, ACCESS, self.access_ttl_seconds)

    def issue_refresh(self, account_id: str) -> str:
        return self._encode(account_id, REFRESH, self.refresh_ttl_seconds)

    def issue_verification(self, account_id: str) -> str:
        """Token mailed after registration; exchanged for a login by verify_email()."""
        return self._encode(account_id, VERIFY_EMAIL, self.verify_ttl_seconds)

    def _encode(self, subject: str, token_type: str, ttl_seconds: int) -> str:
        issued_at = self._clock()
        payload = {
            "sub": str(subject),
            "typ": token_type,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=ttl_seconds),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def decode(self, token: str | None, expected_type: str | None = None) -> dict | None:
        """Verify signature, expiry and (optionally) type.

        Returns {"subject", "type", "expires_at"} or None on any failure.
        Returning None (rather than raising) keeps callers simple: any invalid
        token means "session invalid".
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        subject = payload.get("sub")
        token_type = payload.get("typ")
        if not subject or not token_type:
            return None
        if expected_type is not None and token_type != expected_type:
            logger.debug("Rejected %s token presented as %s", token_type, expected_type)
            return None
        return {
            "subject": subject,
            "type": token_type,
            "expires_at": datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        }
