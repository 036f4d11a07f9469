"""
auth/provider.py -- Pluggable identity provider.

Routes talk to an IdentityProvider, never to the token issuer or password
hashing directly. One implementation exists (JWTIdentityProvider: local
bcrypt credentials + self-issued JWTs); build_identity_provider() is the
composition root that picks it from Settings.identity_provider.

The provider is built once in the app lifespan and stored on app.state.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import TokenClaims, TokenPair, User
from auth.passwords import DUMMY_HASH, verify_password
from auth.store import UserStore
from auth.tokens import REFRESH, TokenIssuer

logger = logging.getLogger("speciesguard.auth.provider")


class IdentityProvider(Protocol):
    """Protocol for identity providers -- allows swappable implementations."""

    def authenticate(self, email: str, password: str) -> User | None:
        """Return the account whose password matches, else None.

        Inactive accounts are returned too; the caller decides how to refuse them.
        """
        ...

    def issue_session(self, user: User) -> TokenPair:
        """Mint the tokens that represent a signed-in session for user."""
        ...

    def resolve(self, token: str | None) -> TokenClaims | None:
        """Verify an access token and return its claims, or None."""
        ...

    def refresh(self, refresh_token: str | None) -> tuple[User, TokenPair] | None:
        """Exchange a refresh token for a new pair, or None if it is not acceptable."""
        ...


class JWTIdentityProvider:
    """Local credentials in UserStore, sessions as stateless HS256 token pairs."""

    name = "jwt"

    def __init__(self, store: UserStore, issuer: TokenIssuer) -> None:
        self.store = store
        self.issuer = issuer

    def authenticate(self, email: str, password: str) -> User | None:
        """Check credentials with timing equalization.

        bcrypt runs whether or not the email exists: unknown emails are checked
        against DUMMY_HASH so response time does not reveal which accounts exist.
        """
        user = self.store.get_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    def issue_session(self, user: User) -> TokenPair:
        return self.issuer.issue_pair(user)

    def resolve(self, token: str | None) -> TokenClaims | None:
        return self.issuer.verify(token)

    def refresh(self, refresh_token: str | None) -> tuple[User, TokenPair] | None:
        """Re-read the account so the new pair carries its current role.

        A refresh token for a deleted or deactivated account is refused.
        """
        claims = self.issuer.verify(refresh_token, expected_type=REFRESH)
        if claims is None:
            return None
        user = self.store.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            logger.info("Refresh refused for user_id=%s (missing or inactive)", claims.user_id)
            return None
        return user, self.issuer.issue_pair(user)


def build_identity_provider(name: str, store: UserStore, issuer: TokenIssuer) -> IdentityProvider:
    """Construct the configured provider. Unknown names fail at startup."""
    if name == JWTIdentityProvider.name:
        logger.info("Identity provider: %s", name)
        return JWTIdentityProvider(store, issuer)
    raise ValueError(f"Unknown identity provider: {name!r}")
