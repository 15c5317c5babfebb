"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the core raises on purpose is an AuthError subclass. Each class
carries a stable machine-readable `code`; mapping codes to HTTP status codes
is the API layer's job (api/main.py), not the core's.

  NotFoundError      -- email/account absent (also: bad credentials, see
                        auth/credentials.py)
  UnauthorizedError  -- bad secret, invalid/expired/mismatched token, failed
                        check_password, missing refresh session
  ConflictError      -- duplicate registration of a live account
  InternalError      -- dependency failure or malformed provider profile
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for failures raised by the auth core."""

    code: str = "auth_error"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(AuthError):
    code = "not_found"


class UnauthorizedError(AuthError):
    code = "unauthorized"


class ConflictError(AuthError):
    code = "conflict"


class InternalError(AuthError):
    code = "internal_error"
