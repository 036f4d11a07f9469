"""
auth/tokens.py -- Signed access, refresh, email-verification, and password-reset tokens.

Security design decisions:
  JWT: python-jose with HS256. Every token carries a "type" claim so a refresh
       token can never be presented as an access token (and vice versa).
       Verification returns None on any failure -- the route layer turns that
       into a 401. Nothing here raises across the request boundary.

  Stateless: there is no server-side session table and no revocation list.
       A token is valid until its exp claim passes. Logout only clears
       cookies; a copied token keeps working until expiry.

  Claims are a snapshot: role is captured at issue time. A role change by an
       admin takes effect on the next issue (login or refresh), not on tokens
       already handed out.

  TokenIssuer is constructed explicitly (once, in the app lifespan) with the
       secret and lifetimes from Settings. There is no module-level signer.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from auth.models import TokenClaims, TokenPair, User

logger = logging.getLogger("speciesguard.auth.tokens")

ACCESS = "access"
REFRESH = "refresh"
VERIFICATION = "verification"
RESET = "reset"


class TokenIssuer:
    """Issues and verifies HS256 tokens for one signing secret.

    Usage:
        issuer = TokenIssuer(secret_key, access_ttl=900, refresh_ttl=604800)
        pair = issuer.issue_pair(user)
        claims = issuer.verify(pair.access_token)
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: int = 15 * 60,
        refresh_ttl: int = 7 * 24 * 60 * 60,
        verification_ttl: int = 24 * 60 * 60,
        reset_ttl: int = 60 * 60,
        algorithm: str = "HS256",
    ) -> None:
        if not secret_key:
            raise ValueError("TokenIssuer requires a non-empty secret key")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_pair(self, user: User) -> TokenPair:
        """Sign an access token and a refresh token for the user's current identity."""
        if user.id is None:
            raise ValueError("Cannot issue tokens for an unsaved user")
        access = self._encode(
            {"userId": user.id, "email": user.email, "role": user.role}, ACCESS, self.access_ttl
        )
        refresh = self._encode(
            {"userId": user.id, "email": user.email, "role": user.role}, REFRESH, self.refresh_ttl
        )
        return TokenPair(access_token=access, refresh_token=refresh, expires_in=self.access_ttl)

    def issue_verification_token(self, email: str) -> str:
        """Sign a single-purpose token that proves control of an email address."""
        return self._encode({"email": email.lower()}, VERIFICATION, self.verification_ttl)

    def issue_reset_token(self, email: str) -> str:
        """Sign a short-lived password-reset token for email. Reusable until it expires."""
        return self._encode({"email": email.lower()}, RESET, self.reset_ttl)

    def _encode(self, claims: dict[str, Any], token_type: str, ttl: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "type": token_type,
            "iat": now,
            "exp": now + timedelta(seconds=ttl),
        }
        if "userId" in claims:
            payload["sub"] = str(claims["userId"])
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str | None, expected_type: str = ACCESS) -> TokenClaims | None:
        """Decode and verify a token. Returns the claims or None on any failure.

        Absent, tampered, expired, wrong-type, and structurally incomplete
        tokens all return None. A token is trusted whole or not at all.
        """
        payload = self._decode(token)
        if payload is None or payload.get("type") != expected_type:
            return None
        try:
            return TokenClaims(
                user_id=int(payload["userId"]),
                email=str(payload["email"]),
                role=str(payload["role"]),
                token_type=expected_type,
                issued_at=payload.get("iat"),
                expires_at=payload.get("exp"),
            )
        except (KeyError, TypeError, ValueError):
            logger.info("Rejected %s token with incomplete claims", expected_type)
            return None

    def verify_verification_token(self, token: str | None) -> str | None:
        """Return the email a verification token was issued for, or None."""
        return self._email_claim(token, VERIFICATION)

    def verify_reset_token(self, token: str | None) -> str | None:
        """Return the email a password-reset token was issued for, or None."""
        return self._email_claim(token, RESET)

    def _email_claim(self, token: str | None, token_type: str) -> str | None:
        payload = self._decode(token)
        if payload is None or payload.get("type") != token_type:
            return None
        email = payload.get("email")
        return email if isinstance(email, str) and email else None

    def _decode(self, token: str | None) -> dict | None:
        if not token:
            return None
        try:
            return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None
