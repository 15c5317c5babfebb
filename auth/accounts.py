"""
auth/accounts.py -- Account lifecycle: registration, email verification,
provider sign-in, profile update, deletion.

Registration sends a signed verification token through the injected
send_verification(email, token) callable. Delivering it (templating, SMTP)
is outside this package; the default sender only logs that a message is due.

Deleting an account is a soft delete followed by logout(), so the refresh
session dies with the account instead of lingering until its TTL.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError, NotFoundError, UnauthorizedError
from auth.identity import resolve_identity
from auth.models import LOCAL_SOURCE, Account, DeviceFingerprint, LoginResult, RawProfile
from auth.service import AuthService
from auth.tokens import VERIFY_EMAIL

logger = logging.getLogger("budgetkeeper.auth.accounts")

VerificationSender = Callable[[str, str], None]


def log_verification_sender(email: str, token: str) -> None:
    logger.info("Verification message due for %s", email)


class AccountService:
    def __init__(self, auth: AuthService, send_verification: VerificationSender = log_verification_sender) -> None:
        self.auth = auth
        self.store = auth.store
        self._send_verification = send_verification

    def register(self, profile: RawProfile) -> Account:
        """Create (or resurrect) a local-password account.

        Raises ConflictError when a live account already uses the email.
        """
        if profile.source != LOCAL_SOURCE:
            raise ValueError("register() takes local profiles; use sign_in_with_provider()")
        account = resolve_identity(self.store, profile)
        self._send_verification(account.email, self.auth.tokens.issue_verification(account.id))
        logger.info("Registered account %s", account.id)
        return account

    def sign_in_with_provider(self, profile: RawProfile) -> Account:
        """Resolve a Google/Kakao profile to an account (created or restored on first use)."""
        if profile.source == LOCAL_SOURCE:
            raise ValueError("sign_in_with_provider() takes provider profiles")
        return resolve_identity(self.store, profile)

    def verify_email(self, token: str, ip: str, device: DeviceFingerprint) -> LoginResult:
        """Exchange a verification token for a logged-in session."""
        claims = self.auth.tokens.decode(token, expected_type=VERIFY_EMAIL)
        if claims is None:
            raise UnauthorizedError("Verification link is invalid or expired.")
        account = self.store.find_by_id(claims["subject"])
        if account is None:
            raise NotFoundError("Account not found.")
        return self.auth.login(account.id, ip, device)

    def update_profile(
        self,
        account_id: str,
        display_name: str | None = None,
        nickname: str | None = None,
    ) -> Account:
        """Change display name and/or nickname. Fields left as None are untouched.

        Raises ConflictError when another account holds the nickname.
        """
        account = self.store.find_by_id(account_id)
        if account is None:
            raise NotFoundError("Account not found.")
        fields = {}
        if display_name is not None:
            fields["display_name"] = display_name
        if nickname is not None:
            if self.store.nickname_taken(nickname, exclude_id=account_id):
                raise ConflictError("That nickname is already taken.")
            fields["nickname"] = nickname
        if not fields:
            return account
        try:
            updated = self.store.update(account_id, fields)
        except IntegrityError as exc:
            raise ConflictError("That nickname is already taken.") from exc
        if updated is None:
            raise NotFoundError("Account not found.")
        return updated

    def delete_account(self, account_id: str) -> None:
        """Soft-delete the account and revoke its refresh session."""
        if not self.store.soft_delete(account_id):
            raise NotFoundError("Account not found.")
        self.auth.logout(account_id)
        logger.info("Deleted account %s", account_id)
