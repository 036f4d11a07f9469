"""
tests/test_tokens.py -- Unit tests for auth/tokens.py (TokenIssuer).

Covers:
  - access/refresh pair carries userId, email, role; expires_in is the access TTL
  - every failure mode returns None: absent, tampered, wrong secret, expired,
    wrong token type, garbage
  - verification tokens are single-purpose
"""

from __future__ import annotations

import pytest

from auth.models import Role, User
from auth.tokens import REFRESH, TokenIssuer

SECRET = "x" * 48


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(SECRET, access_ttl=900, refresh_ttl=7 * 24 * 3600)


@pytest.fixture
def user() -> User:
    return User(id=42, email="ranger@example.org", password_hash="unused", role=Role.expert.value)


class TestIssue:
    def test_pair_round_trip(self, issuer: TokenIssuer, user: User) -> None:
        pair = issuer.issue_pair(user)
        assert pair.expires_in == 900
        claims = issuer.verify(pair.access_token)
        assert claims is not None
        assert (claims.user_id, claims.email, claims.role) == (42, "ranger@example.org", "expert")
        assert claims.expires_at - claims.issued_at == 900

    def test_refresh_token_lives_seven_days(self, issuer: TokenIssuer, user: User) -> None:
        pair = issuer.issue_pair(user)
        claims = issuer.verify(pair.refresh_token, expected_type=REFRESH)
        assert claims is not None
        assert claims.expires_at - claims.issued_at == 7 * 24 * 3600

    def test_unsaved_user_rejected(self, issuer: TokenIssuer) -> None:
        with pytest.raises(ValueError):
            issuer.issue_pair(User(email="new@example.org", password_hash="unused"))

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenIssuer("")

    def test_claims_are_a_snapshot(self, issuer: TokenIssuer, user: User) -> None:
        """Changing the user's role afterwards does not change an issued token."""
        pair = issuer.issue_pair(user)
        user.role = Role.admin.value
        assert issuer.verify(pair.access_token).role == "expert"


class TestVerifyFailures:
    @pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
    def test_absent_or_malformed(self, issuer: TokenIssuer, token) -> None:
        assert issuer.verify(token) is None

    def test_tampered_signature(self, issuer: TokenIssuer, user: User) -> None:
        token = issuer.issue_pair(user).access_token
        head, body, sig = token.split(".")
        flipped = ("A" if sig[0] != "A" else "B") + sig[1:]
        assert issuer.verify(f"{head}.{body}.{flipped}") is None

    def test_other_secret(self, issuer: TokenIssuer, user: User) -> None:
        foreign = TokenIssuer("y" * 48).issue_pair(user).access_token
        assert issuer.verify(foreign) is None

    def test_expired(self, user: User) -> None:
        expired = TokenIssuer(SECRET, access_ttl=-60)
        token = expired.issue_pair(user).access_token
        assert expired.verify(token) is None

    def test_refresh_token_is_not_an_access_token(self, issuer: TokenIssuer, user: User) -> None:
        pair = issuer.issue_pair(user)
        assert issuer.verify(pair.refresh_token) is None
        assert issuer.verify(pair.access_token, expected_type=REFRESH) is None


class TestVerificationTokens:
    def test_round_trip_lowercases_email(self, issuer: TokenIssuer) -> None:
        token = issuer.issue_verification_token("Ranger@Example.org")
        assert issuer.verify_verification_token(token) == "ranger@example.org"

    def test_not_usable_as_access_token(self, issuer: TokenIssuer) -> None:
        token = issuer.issue_verification_token("ranger@example.org")
        assert issuer.verify(token) is None

    def test_access_token_is_not_a_verification_token(self, issuer: TokenIssuer, user: User) -> None:
        assert issuer.verify_verification_token(issuer.issue_pair(user).access_token) is None

    def test_expired_verification_token(self) -> None:
        short = TokenIssuer(SECRET, verification_ttl=-1)
        assert short.verify_verification_token(short.issue_verification_token("a@b.com")) is None


class TestResetTokens:
    def test_round_trip(self, issuer: TokenIssuer) -> None:
        token = issuer.issue_reset_token("Ranger@Example.org")
        assert issuer.verify_reset_token(token) == "ranger@example.org"

    def test_lives_one_hour_by_default(self, issuer: TokenIssuer) -> None:
        assert issuer.reset_ttl == 3600

    def test_not_interchangeable_with_other_types(self, issuer: TokenIssuer, user: User) -> None:
        reset = issuer.issue_reset_token("ranger@example.org")
        assert issuer.verify(reset) is None
        assert issuer.verify_verification_token(reset) is None
        assert issuer.verify_reset_token(issuer.issue_verification_token("ranger@example.org")) is None
        assert issuer.verify_reset_token(issuer.issue_pair(user).access_token) is None

    def test_expired(self) -> None:
        short = TokenIssuer(SECRET, reset_ttl=-1)
        assert short.verify_reset_token(short.issue_reset_token("a@b.com")) is None
