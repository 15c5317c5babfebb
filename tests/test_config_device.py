"""
tests/test_config_device.py -- Settings validation and User-Agent fingerprinting.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from auth.device import fingerprint_from_user_agent
from core.config import Settings
from helpers import CHROME_UA

VALID_KEY = "k" * 40


class TestSettings:
    def test_debug_generates_secret_key(self) -> None:
        """DEBUG without SECRET_KEY gets a random key of at least 32 characters."""
        settings = Settings(debug=True, secret_key="")
        assert len(settings.secret_key) >= 32

    def test_production_requires_secret_key(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=False, secret_key="")

    def test_short_secret_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=True, secret_key="short")

    def test_session_ttl_defaults_to_refresh_lifetime(self) -> None:
        settings = Settings(secret_key=VALID_KEY, refresh_token_expire_days=7, session_ttl_seconds=0)
        assert settings.effective_session_ttl_seconds == 7 * 86400

    def test_session_ttl_below_refresh_lifetime_rejected(self) -> None:
        """A session TTL shorter than the refresh token fails at startup."""
        with pytest.raises(ValidationError):
            Settings(secret_key=VALID_KEY, refresh_token_expire_days=7, session_ttl_seconds=3600)

    def test_longer_session_ttl_accepted(self) -> None:
        settings = Settings(secret_key=VALID_KEY, refresh_token_expire_days=1, session_ttl_seconds=2 * 86400)
        assert settings.effective_session_ttl_seconds == 2 * 86400

    def test_access_must_be_shorter_than_refresh(self) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_key=VALID_KEY, access_token_expire_hours=48, refresh_token_expire_days=1)

    def test_bcrypt_rounds_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_key=VALID_KEY, bcrypt_rounds=3)


class TestDeviceFingerprint:
    def test_chrome_on_mac(self) -> None:
        """Browser family, OS family and a major.minor.patch version."""
        device = fingerprint_from_user_agent(CHROME_UA)
        assert device.browser_family == "Chrome"
        assert device.platform_family == "Mac OS X"
        assert device.version_string == "120.0.6099"

    def test_missing_user_agent(self) -> None:
        device = fingerprint_from_user_agent(None)
        assert device.browser_family == "Other"
        assert device.platform_family == "Other"
        assert device.version_string == ""

    def test_fingerprint_round_trips_through_dict(self) -> None:
        device = fingerprint_from_user_agent(CHROME_UA)
        assert type(device).from_dict(device.to_dict()) == device
