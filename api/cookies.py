"""
api/cookies.py -- Session cookie helpers and client fingerprinting.

httponly=True: JS cannot read the cookies (XSS mitigation).
samesite="strict": cookies are never sent on cross-site requests.
secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
expires: matches each token's lifetime, computed with core.dates so cookie
    and token expire together.
"""

from __future__ import annotations

from fastapi import Request, Response

from auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE
from auth.device import fingerprint_from_user_agent
from auth.models import DeviceFingerprint
from core.config import get_settings
from core.dates import days_from_now, hours_from_now


def set_access_cookie(response: Response, token: str) -> None:
    cfg = get_settings()
    response.set_cookie(
        ACCESS_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=cfg.secure_cookies,
        expires=hours_from_now(cfg.access_token_expire_hours),
    )


def set_refresh_cookie(response: Response, token: str) -> None:
    cfg = get_settings()
    response.set_cookie(
        REFRESH_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=cfg.secure_cookies,
        expires=days_from_now(cfg.refresh_token_expire_days),
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, httponly=True, samesite="strict")
    response.delete_cookie(REFRESH_COOKIE, httponly=True, samesite="strict")


def client_fingerprint(request: Request) -> tuple[str, DeviceFingerprint]:
    """Return (ip, device) for the connection behind this request."""
    ip = request.client.host if request.client else "unknown"
    return ip, fingerprint_from_user_agent(request.headers.get("user-agent"))
