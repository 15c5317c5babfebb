"""
auth/oauth.py -- Authlib OAuth provider configuration and profile extraction.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered.

Security notes:
  [H1] Email verification is mandatory. fetch_provider_profile() raises
       UnauthorizedError if the provider does not confirm the email is
       verified. An unverified email could belong to somebody else, and the
       identity normalizer links accounts by email.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware.

Supported providers:
  google -- Authorization code flow; OIDC discovery.
  kakao  -- Authorization code flow; static endpoints, profile from /v2/user/me.

The profile is returned as a RawProfile tagged with the provider name; the
identity normalizer (auth/identity.py) owns the claim mapping.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.errors import InternalError, UnauthorizedError
from auth.models import RawProfile
from core.config import get_settings

logger = logging.getLogger("budgetkeeper.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# Google -- OIDC discovery
if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")

# Kakao -- static endpoints (no OIDC discovery without the OpenID add-on)
if _cfg.kakao_client_id and _cfg.kakao_client_secret:
    oauth.register(
        name="kakao",
        client_id=_cfg.kakao_client_id,
        client_secret=_cfg.kakao_client_secret,
        access_token_url="https://kauth.kakao.com/oauth/token",  # noqa: S106 -- URL, not a password
        authorize_url="https://kauth.kakao.com/oauth/authorize",
        api_base_url="https://kapi.kakao.com/",
        client_kwargs={
            "scope": "account_email profile_nickname",
            "token_endpoint_auth_method": "client_secret_post",
        },
    )
    logger.info("Kakao OAuth provider registered")


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------

_LABELS = {"google": "Google", "kakao": "Kakao"}


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label"} for every configured provider.

    Used by GET /api/v1/auth/providers and to validate the {provider} path
    parameter before redirecting.
    """
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": _LABELS["google"]})
    if cfg.kakao_client_id and cfg.kakao_client_secret:
        providers.append({"name": "kakao", "label": _LABELS["kakao"]})
    return providers


# ---------------------------------------------------------------------------
# Profile extraction [H1]
# ---------------------------------------------------------------------------


async def fetch_provider_profile(client, provider: str, token: dict) -> RawProfile:
    """Turn the token response of a finished handshake into a tagged RawProfile.

    Args:
        client:   The authlib OAuth client for this provider.
        provider: "google" or "kakao".
        token:    The token dict returned by authlib after code exchange.

    Raises:
        UnauthorizedError: the provider did not confirm the email [H1].
        InternalError:     unknown provider or unusable response.
    """
    if provider == "google":
        return _google_profile(token)
    if provider == "kakao":
        return await _kakao_profile(client, token)
    raise InternalError(f"Unknown OAuth provider: {provider!r}")


def _google_profile(token: dict) -> RawProfile:
    """Google returns verified claims in the id_token, parsed by authlib into token["userinfo"]."""
    userinfo = token.get("userinfo")
    if not userinfo:
        raise InternalError("google OAuth: no userinfo in token response")
    if userinfo.get("email") and not userinfo.get("email_verified", False):
        raise UnauthorizedError("google OAuth: email is not verified.")
    return RawProfile(source="google", claims=dict(userinfo))


async def _kakao_profile(client, token: dict) -> RawProfile:
    """Kakao needs one API call: GET /v2/user/me.

    kakao_account.email is only present when the account_email scope was
    granted; is_email_verified must be true for it to be accepted [H1].
    """
    resp = await client.get("v2/user/me", token=token)
    resp.raise_for_status()
    profile = resp.json()
    account = profile.get("kakao_account") or {}
    if account.get("email") and not (account.get("is_email_valid", True) and account.get("is_email_verified")):
        raise UnauthorizedError("kakao OAuth: email is not verified.")
    return RawProfile(source="kakao", claims=profile)
