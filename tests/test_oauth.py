"""
tests/test_oauth.py -- Provider profile extraction (auth/oauth.py).

The authlib client is replaced with a MagicMock whose get() is an
AsyncMock, so no request leaves the process. Coroutines are driven with
asyncio.run().
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from auth.errors import InternalError, UnauthorizedError
from auth.oauth import fetch_provider_profile, get_enabled_providers


def kakao_client(body: dict) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = body
    client = MagicMock()
    client.get = AsyncMock(return_value=resp)
    return client


class TestGoogleProfile:
    def test_verified_userinfo_becomes_profile(self) -> None:
        token = {"userinfo": {"sub": "g-1", "email": "a@gmail.com", "email_verified": True, "name": "A"}}
        profile = asyncio.run(fetch_provider_profile(MagicMock(), "google", token))
        assert profile.source == "google"
        assert profile.claims["sub"] == "g-1"

    def test_unverified_email_is_refused(self) -> None:
        token = {"userinfo": {"sub": "g-1", "email": "a@gmail.com", "email_verified": False}}
        with pytest.raises(UnauthorizedError):
            asyncio.run(fetch_provider_profile(MagicMock(), "google", token))

    def test_missing_userinfo_is_internal_error(self) -> None:
        with pytest.raises(InternalError):
            asyncio.run(fetch_provider_profile(MagicMock(), "google", {}))


class TestKakaoProfile:
    def test_profile_fetched_from_user_me(self) -> None:
        """Kakao needs a GET /v2/user/me with the access token."""
        body = {
            "id": 4242,
            "kakao_account": {"email": "k@kakao.com", "is_email_valid": True, "is_email_verified": True},
        }
        client = kakao_client(body)
        token = {"access_token": "at"}
        profile = asyncio.run(fetch_provider_profile(client, "kakao", token))
        client.get.assert_awaited_once_with("v2/user/me", token=token)
        assert profile.source == "kakao"
        assert profile.claims["id"] == 4242

    def test_unverified_email_is_refused(self) -> None:
        body = {"id": 1, "kakao_account": {"email": "k@kakao.com", "is_email_verified": False}}
        with pytest.raises(UnauthorizedError):
            asyncio.run(fetch_provider_profile(kakao_client(body), "kakao", {}))


class TestProviders:
    def test_unknown_provider_is_internal_error(self) -> None:
        with pytest.raises(InternalError):
            asyncio.run(fetch_provider_profile(MagicMock(), "myspace", {}))

    def test_no_providers_without_credentials(self) -> None:
        """The test environment configures no OAuth client ids."""
        assert get_enabled_providers() == []
