"""
api/routes/v1/auth.py -- Authentication endpoints.

Routes:
  POST /api/v1/auth/login                -- password login; sets both cookies
  POST /api/v1/auth/refresh              -- new access token from the refresh cookie
  POST /api/v1/auth/logout               -- delete the refresh session; clear cookies
  POST /api/v1/auth/check-password       -- re-confirm password (requires auth)
  GET  /api/v1/auth/status               -- 200 if the access token is valid
  GET  /api/v1/auth/providers            -- list enabled OAuth providers (public)
  GET  /api/v1/auth/oauth/{provider}     -- redirect to the provider
  GET  /api/v1/auth/callback/{provider}  -- provider callback; sets both cookies

Security:
  [C1] Password login goes through AuthService.authenticate(), which equalizes
       timing. Its NotFoundError is answered with 401 bad_credentials, the same
       response for unknown email and wrong password.
  [R1] Any refresh failure clears both cookies, whatever the cause, so the
       client falls back to a full login.
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.cookies import clear_session_cookies, client_fingerprint, set_access_cookie, set_refresh_cookie
from api.models import CheckPasswordRequest, LoginRequest, OAuthProviderInfo, StatusResponse, TokenResponse
from auth.accounts import AccountService
from auth.dependencies import REFRESH_COOKIE, get_current_account_id
from auth.errors import NotFoundError, UnauthorizedError
from auth.models import LoginResult
from auth.oauth import fetch_provider_profile, get_enabled_providers
from auth.service import AuthService

logger = logging.getLogger("budgetkeeper.api.auth")

# Auth policy:
# - POST /auth/login, /auth/refresh:          public -- they establish a session
# - GET  /auth/providers, /auth/oauth/*, /auth/callback/*: public -- login page handshake
# - POST /auth/logout, /auth/check-password:  requires auth (get_current_account_id)
# - GET  /auth/status:                        requires auth (get_current_account_id)
router = APIRouter()


def login_response(result: LoginResult, status_code: int = 200) -> JSONResponse:
    """Return both tokens in the body and as cookies."""
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(access_token=result.access_token, refresh_token=result.refresh_token).model_dump(),
    )
    set_access_cookie(resp, result.access_token)
    set_refresh_cookie(resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; issue an access/refresh pair."""
    auth: AuthService = request.app.state.auth
    try:
        account = auth.authenticate(body.email, body.password)  # [C1]
    except NotFoundError:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    ip, device = client_fingerprint(request)
    return login_response(auth.login(account.id, ip, device))


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request) -> JSONResponse:
    """Issue a new access token for the refresh_token cookie.

    The refresh token and its session are reused unless rotation is enabled,
    in which case a new refresh cookie is set as well.
    """
    auth: AuthService = request.app.state.auth
    ip, device = client_fingerprint(request)
    try:
        result = auth.refresh(request.cookies.get(REFRESH_COOKIE), ip, device)
    except UnauthorizedError:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "session_expired", "message": "Please log in again."}},
        )
        clear_session_cookies(resp)  # [R1]
        return resp

    resp = JSONResponse(
        content=TokenResponse(access_token=result.access_token, refresh_token=result.refresh_token).model_dump()
    )
    set_access_cookie(resp, result.access_token)
    if result.refresh_token:
        set_refresh_cookie(resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty if no OAuth env vars are set."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/oauth/{provider}")
async def oauth_redirect(request: Request, provider: str):
    """Redirect the browser to the provider's authorization page.

    The provider name is checked against the enabled list first, so a
    crafted name cannot select an unregistered client.
    """
    if provider not in {p["name"] for p in get_enabled_providers()}:
        raise UnauthorizedError("Unknown or disabled OAuth provider.")
    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/callback/{provider}", response_model=TokenResponse, name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> JSONResponse:
    """Finish the provider handshake and log the resolved account in.

    Flow:
      1. Exchange the authorization code for a token (authlib checks state).
      2. Turn the provider response into a RawProfile [H1: verified email only].
      3. Find, restore or create the account by email.
      4. Issue tokens and the refresh session; set cookies.
    """
    if provider not in {p["name"] for p in get_enabled_providers()}:
        raise UnauthorizedError("Unknown or disabled OAuth provider.")

    client = request.app.state.oauth.create_client(provider)
    try:
        token = await client.authorize_access_token(request)
    except OAuthError as exc:
        logger.warning("OAuth token exchange failed for provider %r: %s", provider, exc.error)
        raise UnauthorizedError("OAuth authentication failed.") from exc

    profile = await fetch_provider_profile(client, provider, token)
    accounts: AccountService = request.app.state.accounts
    account = accounts.sign_in_with_provider(profile)

    ip, device = client_fingerprint(request)
    return login_response(accounts.auth.login(account.id, ip, device))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", status_code=204)
def logout(request: Request, account_id: str = Depends(get_current_account_id)) -> Response:
    """Delete the refresh session and clear both cookies."""
    auth: AuthService = request.app.state.auth
    auth.logout(account_id)
    resp = Response(status_code=204)
    clear_session_cookies(resp)
    return resp


@router.post("/auth/check-password", status_code=204)
def check_password(
    request: Request,
    body: CheckPasswordRequest,
    account_id: str = Depends(get_current_account_id),
) -> Response:
    """Re-confirm the current password before a sensitive action. 204 or 401."""
    auth: AuthService = request.app.state.auth
    auth.check_password(account_id, body.password)
    return Response(status_code=204)


@router.get("/auth/status", response_model=StatusResponse)
async def status(account_id: str = Depends(get_current_account_id)) -> StatusResponse:
    return StatusResponse(authenticated=True, account_id=account_id)
