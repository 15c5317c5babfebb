"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two access-token sources are checked in priority order:
  1. "access_token" cookie -- set by the login/refresh endpoints.
  2. Authorization: Bearer <token> header -- API clients.

Only the access token is examined here. Refresh tokens are accepted by
POST /auth/refresh alone, and decode(expected_type="access") rejects a
refresh token presented in either place.

try_get_current_account_id() is the soft variant (returns None on failure).
get_current_account_id() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/ or cache/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.tokens import ACCESS, TokenIssuer

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def try_get_current_account_id(request: Request) -> str | None:
    """Return the account id of a valid access token, or None. Never raises."""
    tokens: TokenIssuer = request.app.state.tokens

    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    claims = tokens.decode(token, expected_type=ACCESS)
    if claims is None:
        return None
    return claims["subject"]


def get_current_account_id(request: Request) -> str:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account_id: str = Depends(get_current_account_id)): ...

    Access tokens are stateless: a token stays valid until it expires even if
    the session was logged out. Routes that must see a live account look it
    up themselves.
    """
    account_id = try_get_current_account_id(request)
    if account_id is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return account_id
