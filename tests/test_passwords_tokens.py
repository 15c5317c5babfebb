"""
tests/test_passwords_tokens.py -- Unit tests for bcrypt hashing and JWT issue/decode.

Coverage:
  - hash_password/verify_password round trip; malformed hash -> False
  - access, refresh and verification tokens carry their own typ claim
  - decode() rejects tampered, expired and wrong-type tokens
  - two tokens for the same subject issued back to back differ (jti)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.tokens import ACCESS, REFRESH, VERIFY_EMAIL, TokenIssuer

from helpers import TEST_SECRET


class TestPasswords:
    def test_hash_then_verify(self) -> None:
        """A password verifies against its own hash and not against another."""
        hashed = hash_password("s3cret!pw")
        assert hashed != "s3cret!pw"
        assert verify_password("s3cret!pw", hashed) is True
        assert verify_password("wrong!pw1", hashed) is False

    def test_malformed_hash_returns_false(self) -> None:
        """verify_password never raises on a garbage hash."""
        assert verify_password("s3cret!pw", "not-a-bcrypt-hash") is False

    def test_dummy_hash_is_a_bcrypt_hash(self) -> None:
        """DUMMY_HASH is usable for timing equalization."""
        assert DUMMY_HASH.startswith("$2")
        assert verify_password("anything", DUMMY_HASH) is False


class TestTokenIssuer:
    def test_access_token_round_trip(self, tokens: TokenIssuer) -> None:
        """issue_access(id) then decode -> subject == id, type access."""
        claims = tokens.decode(tokens.issue_access("acct-1"))
        assert claims is not None
        assert claims["subject"] == "acct-1"
        assert claims["type"] == ACCESS

    def test_expected_type_mismatch_is_rejected(self, tokens: TokenIssuer) -> None:
        """A refresh token is not accepted where an access token is expected."""
        refresh = tokens.issue_refresh("acct-1")
        assert tokens.decode(refresh, expected_type=ACCESS) is None
        assert tokens.decode(refresh, expected_type=REFRESH)["subject"] == "acct-1"

    def test_verification_token_type(self, tokens: TokenIssuer) -> None:
        claims = tokens.decode(tokens.issue_verification("acct-1"), expected_type=VERIFY_EMAIL)
        assert claims is not None
        assert claims["subject"] == "acct-1"

    def test_expired_token_decodes_to_none(self) -> None:
        """A token whose exp lies in the past is invalid."""
        past = datetime.now(timezone.utc) - timedelta(days=30)
        issuer = TokenIssuer(TEST_SECRET, access_ttl_seconds=60, refresh_ttl_seconds=120, clock=lambda: past)
        assert issuer.decode(issuer.issue_access("acct-1")) is None

    def test_wrong_signature_is_rejected(self, tokens: TokenIssuer) -> None:
        """A token signed with another key must not decode."""
        other = TokenIssuer("x" * 40, access_ttl_seconds=60, refresh_ttl_seconds=120)
        assert tokens.decode(other.issue_access("acct-1")) is None

    def test_missing_subject_is_rejected(self, tokens: TokenIssuer) -> None:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
        forged = jwt.encode({"typ": ACCESS, "exp": exp}, TEST_SECRET, algorithm="HS256")
        assert tokens.decode(forged) is None

    def test_empty_and_garbage_tokens(self, tokens: TokenIssuer) -> None:
        assert tokens.decode(None) is None
        assert tokens.decode("") is None
        assert tokens.decode("not.a.jwt") is None

    def test_back_to_back_tokens_differ(self, tokens: TokenIssuer) -> None:
        """jti keeps tokens for the same subject unique within one second."""
        assert tokens.issue_refresh("acct-1") != tokens.issue_refresh("acct-1")
