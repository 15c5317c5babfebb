"""
auth/credentials.py -- Email/password verification against the account store.

Every failure branch (unknown email, provider-only account, wrong password)
raises the same NotFoundError with the same message. Callers cannot tell which
check failed, and neither can a client. bcrypt runs on every branch so timing
does not tell either [C1].
"""

from __future__ import annotations

from auth.errors import NotFoundError
from auth.identity import normalize_email
from auth.models import Account
from auth.passwords import DUMMY_HASH, verify_password
from auth.store import AccountStore

_INVALID = "Invalid email or password."


def validate_credentials(store: AccountStore, email: str, secret: str) -> Account:
    """Return the live account whose email and password match.

    Raises NotFoundError on any mismatch. Do NOT inline find_by_email() +
    verify_password() at call sites -- that re-introduces the timing leak.
    """
    account = store.find_by_email(normalize_email(email))
    if account is None or not account.has_local_password:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(secret, DUMMY_HASH)
        raise NotFoundError(_INVALID)
    if not verify_password(secret, account.secret_hash):
        raise NotFoundError(_INVALID)
    return account
