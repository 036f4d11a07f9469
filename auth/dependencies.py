"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Token sources, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. access_token cookie -- set by register/login for the browser.

Only the access token is read here. refresh_token and user_session belong to
the auth routes.

verify_auth() is the soft variant (returns None on failure).
require_auth() wraps it and raises HTTP 401 if unauthenticated.
require_role() wraps require_auth() and raises HTTP 403 if the role is not allowed.

The claims returned are the token's snapshot, not a fresh DB read. Routes that
need current flags (e.g. /me) re-read the account from the store.

Layer rule: auth/dependencies.py may import from fastapi (Depends, HTTPException,
Request) because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import Role, TokenClaims
from auth.provider import IdentityProvider

ACCESS_COOKIE = "access_token"


def extract_token(request: Request) -> str | None:
    """Return the raw access token from the Bearer header or the cookie, if any."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def verify_auth(request: Request) -> TokenClaims | None:
    """Resolve the caller's identity. Never raises -- returns None when unauthenticated."""
    provider: IdentityProvider = request.app.state.identity_provider
    return provider.resolve(extract_token(request))


def optional_auth(request: Request) -> TokenClaims | None:
    """Dependency form of verify_auth() for routes where auth is optional."""
    return verify_auth(request)


def require_auth(request: Request) -> TokenClaims:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(require_auth)): ...
    """
    claims = verify_auth(request)
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


def require_role(*roles: Role) -> Callable[..., TokenClaims]:
    """Build a dependency that admits only the given roles.

    401 when unauthenticated, 403 when the token's role is not listed:
        @router.get("/admin-only")
        def route(claims: TokenClaims = Depends(require_role(Role.admin))): ...
    """
    allowed = {r.value for r in roles}

    def _dependency(claims: TokenClaims = Depends(require_auth)) -> TokenClaims:
        if claims.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "Insufficient permissions"},
            )
        return claims

    return _dependency


require_admin = require_role(Role.admin)
