"""
auth/service.py -- Session orchestrator: login, refresh, logout, check_password.

State machine (per account session):

  ANONYMOUS -> AUTHENTICATING -> ACTIVE            login()
  ACTIVE -> REFRESHING -> ACTIVE                   refresh() succeeded
  ACTIVE -> REFRESHING -> ANONYMOUS                refresh() rejected
  ACTIVE -> TERMINATED                             logout()

login() does not authenticate anybody. The caller (password login, provider
callback, email verification) must have resolved the account id first.

Refresh check, in order:
  1. token decodes as a refresh token (signature + expiry + typ)
  2. a session record exists for its subject (logout/eviction revokes)
  3. the stored refresh token equals the presented one (a newer login or a
     rotation supersedes older tokens)
  4. the account is still live
  5. when bind_sessions_to_device is on, ip and device match the record
Any other exception on the refresh path is re-raised as UnauthorizedError,
so the caller can always clear client tokens and force a re-login.

Rotation: off by default. The refresh token stays valid until it expires or
the session is deleted. With rotate_refresh_tokens on, each refresh issues a
new refresh token and overwrites the session record.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import hmac
import logging
from typing import NoReturn

from auth.credentials import validate_credentials
from auth.errors import UnauthorizedError
from auth.models import Account, DeviceFingerprint, LoginResult, RefreshResult, RefreshSession, SessionState
from auth.passwords import DUMMY_HASH, verify_password
from auth.sessions import SessionStore
from auth.store import AccountStore
from auth.tokens import REFRESH, TokenIssuer

logger = logging.getLogger("budgetkeeper.auth")


class AuthService:
    """Compose the token issuer, session store and account store into the auth protocol."""

    def __init__(
        self,
        store: AccountStore,
        sessions: SessionStore,
        tokens: TokenIssuer,
        session_ttl_seconds: int,
        rotate_refresh_tokens: bool = False,
        bind_sessions_to_device: bool = False,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.tokens = tokens
        self.session_ttl_seconds = session_ttl_seconds
        self.rotate_refresh_tokens = rotate_refresh_tokens
        self.bind_sessions_to_device = bind_sessions_to_device

    # ------------------------------------------------------------------
    # Authentication entry points
    # ------------------------------------------------------------------

    def authenticate(self, email: str, secret: str) -> Account:
        """Check an email/password pair. Raises NotFoundError on any mismatch."""
        return validate_credentials(self.store, email, secret)

    def login(self, account_id: str, ip: str, device: DeviceFingerprint) -> LoginResult:
        """Issue an access/refresh pair and store the refresh session."""
        _transition(account_id, SessionState.AUTHENTICATING, SessionState.ACTIVE)
        access_token = self.tokens.issue_access(account_id)
        refresh_token = self.tokens.issue_refresh(account_id)
        self.sessions.put(
            account_id,
            RefreshSession(refresh_token=refresh_token, ip=ip, device=device),
            self.session_ttl_seconds,
        )
        logger.info("Login account=%s ip=%s browser=%s", account_id, ip, device.browser_family)
        return LoginResult(access_token=access_token, refresh_token=refresh_token)

    def refresh(self, refresh_token: str | None, ip: str, device: DeviceFingerprint) -> RefreshResult:
        """Exchange a refresh token for a new access token.

        Raises UnauthorizedError for every failure, including dependency
        errors (cache down, store down).
        """
        try:
            return self._refresh(refresh_token, ip, device)
        except UnauthorizedError:
            raise
        except Exception as exc:
            logger.warning("Refresh aborted by %s", type(exc).__name__)
            raise UnauthorizedError("Session is no longer valid.") from exc

    def _refresh(self, refresh_token: str | None, ip: str, device: DeviceFingerprint) -> RefreshResult:
        claims = self.tokens.decode(refresh_token, expected_type=REFRESH)
        if claims is None:
            self._reject(None, "invalid refresh token")
        account_id = claims["subject"]
        _transition(account_id, SessionState.ACTIVE, SessionState.REFRESHING)

        session = self.sessions.get(account_id)
        if session is None:
            self._reject(account_id, "no session")
        if not hmac.compare_digest(session.refresh_token, refresh_token):
            self._reject(account_id, "superseded refresh token")
        if self.store.find_by_id(account_id) is None:
            self._reject(account_id, "account gone")
        if self.bind_sessions_to_device and (session.ip != ip or session.device != device):
            self._reject(account_id, "client fingerprint mismatch")

        access_token = self.tokens.issue_access(account_id)
        new_refresh_token = None
        if self.rotate_refresh_tokens:
            new_refresh_token = self.tokens.issue_refresh(account_id)
            self.sessions.put(
                account_id,
                RefreshSession(refresh_token=new_refresh_token, ip=ip, device=device),
                self.session_ttl_seconds,
            )
        _transition(account_id, SessionState.REFRESHING, SessionState.ACTIVE)
        return RefreshResult(access_token=access_token, refresh_token=new_refresh_token)

    def _reject(self, account_id: str | None, reason: str) -> NoReturn:
        _transition(account_id, SessionState.REFRESHING, SessionState.ANONYMOUS)
        logger.warning("Refresh rejected account=%s reason=%s", account_id or "-", reason)
        raise UnauthorizedError("Session is no longer valid.")

    def logout(self, account_id: str) -> None:
        """Delete the refresh session. Idempotent."""
        self.sessions.delete(account_id)
        _transition(account_id, SessionState.ACTIVE, SessionState.TERMINATED)
        logger.info("Logout account=%s", account_id)

    def check_password(self, account_id: str, candidate: str) -> None:
        """Re-confirm identity for a sensitive in-session action.

        Returns None on success; UnauthorizedError otherwise. Accounts without
        a local password (provider-created) always fail.
        """
        hashed = self.store.find_secret_hash_by_id(account_id)
        if hashed is None:
            verify_password(candidate, DUMMY_HASH)
            raise UnauthorizedError("Password does not match.")
        if not verify_password(candidate, hashed):
            raise UnauthorizedError("Password does not match.")


def _transition(account_id: str | None, source: SessionState, target: SessionState) -> None:
    logger.debug("Session account=%s %s -> %s", account_id or "-", source.value, target.value)
