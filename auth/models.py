"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    user = "user"
    expert = "expert"
    admin = "admin"


@dataclass
class User:
    """A registered account on the conservation site.

    email is stored lowercase and is the unique login identifier.
    password_hash is a bcrypt string and must never leave the server.
    Accounts are never physically deleted; is_active=False is how an admin
    takes an account out of service.
    """

    email: str
    password_hash: str
    role: str = Role.user.value
    id: int | None = None
    full_name: str | None = None
    email_verified: bool = False
    is_active: bool = True
    last_login: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Identity reconstructed from a verified token. Never persisted.

    role is the role at issuance time; later role changes are not reflected
    until a new token is issued.
    """

    user_id: int
    email: str
    role: str
    token_type: str = "access"
    issued_at: int | None = None
    expires_at: int | None = None


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh tokens issued together. expires_in is the access TTL in seconds."""

    access_token: str
    refresh_token: str
    expires_in: int


@dataclass
class AuditEntry:
    """One append-only audit record. user_id is None for anonymous actions."""

    action: str  # "user.login", "user.logout", "user.register", "user.update"
    user_id: int | None = None
    entity_type: str | None = None
    entity_id: int | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    id: int | None = None
    created_at: str | None = None
