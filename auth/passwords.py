"""
auth/passwords.py -- Password hashing and strength policy.

bcrypt is used directly (no passlib wrapper). Cost factor is fixed at 12; the
salt and cost are embedded in the hash string, so verify_password() needs no
other state.

Strength policy is ordered: length, uppercase, lowercase, digit, then the
72-byte bcrypt ceiling. Only the first failing rule is reported. Callers
must not assume every violation is listed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt

BCRYPT_ROUNDS = 12

PASSWORD_MIN_LEN = 8
# bcrypt reads only the first 72 bytes of its input. Longer passwords are
# refused outright rather than truncated, so two distinct passwords can never
# share a hash.
PASSWORD_MAX_BYTES = 72
# Transport cap on request bodies; anything past PASSWORD_MAX_BYTES is
# rejected by the policy or can never verify.
PASSWORD_MAX_LEN = 128

_STRENGTH_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
)

TOO_LONG_REASON = f"Password must be at most {PASSWORD_MAX_BYTES} bytes long"


@dataclass(frozen=True)
class PasswordCheck:
    valid: bool
    reason: str | None = None


def exceeds_bcrypt_limit(plain: str) -> bool:
    return len(plain.encode("utf-8")) > PASSWORD_MAX_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over PASSWORD_MAX_BYTES when UTF-8 encoded.
    """
    if exceeds_bcrypt_limit(plain):
        raise ValueError(TOO_LONG_REASON)
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed or empty hash is a mismatch, not an error. A password over
    PASSWORD_MAX_BYTES never matches, but still costs one bcrypt check.
    """
    pw_bytes = plain.encode("utf-8")
    try:
        matched = bcrypt.checkpw(pw_bytes[:PASSWORD_MAX_BYTES], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False
    return matched and len(pw_bytes) <= PASSWORD_MAX_BYTES


def validate_password_strength(plain: str) -> PasswordCheck:
    """Check a candidate password against the policy; report the first failure."""
    if len(plain) < PASSWORD_MIN_LEN:
        return PasswordCheck(False, f"Password must be at least {PASSWORD_MIN_LEN} characters long")
    for pattern, reason in _STRENGTH_RULES:
        if not pattern.search(plain):
            return PasswordCheck(False, reason)
    if exceeds_bcrypt_limit(plain):
        return PasswordCheck(False, TOO_LONG_REASON)
    return PasswordCheck(True)


# Timing equalization dummy hash. Computed once at import so the first login
# against an unknown email costs the same bcrypt work as every other attempt.
DUMMY_HASH: str = hash_password("speciesguard_timing_dummy")
