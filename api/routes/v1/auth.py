"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/auth/register         -- create account; sets session cookies; 201
  POST /api/auth/login            -- password login; sets session cookies
  POST /api/auth/logout           -- clears session cookies; always 200
  GET  /api/auth/me               -- fresh account data (requires auth)
  POST /api/auth/refresh          -- exchange refresh token for a new pair
  POST /api/auth/verify-email     -- consume an email-verification token
  POST /api/auth/change-password  -- rotate own password (requires auth)
  POST /api/auth/reset-password   -- set a new password with a reset token

Handlers are plain `def` so FastAPI runs them in its threadpool: bcrypt and
the SQLAlchemy store are blocking, and the event loop must stay free.

Security:
  Login returns one generic INVALID_CREDENTIALS body for unknown email and
  wrong password alike, and runs bcrypt in both cases (see
  JWTIdentityProvider.authenticate). Do NOT inline get_by_email() +
  verify_password() here.
  Login and register are rate-limited per IP.
  Cache-Control: no-store on every response that carries tokens.

Known gap: register checks for an existing email, then inserts, as two
separate statements. Two concurrent registrations for the same email can both
pass the check; the loser hits the UNIQUE constraint and gets an opaque 500
INTERNAL_ERROR rather than 409. IntegrityError is deliberately not caught.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    MessageData,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SuccessResponse,
    TokensData,
    TokensOut,
    UserData,
    UserOut,
    VerifyEmailRequest,
)
from auth.audit import AuditLog, entry_for_request
from auth.dependencies import ACCESS_COOKIE, require_auth, verify_auth
from auth.models import Role, TokenClaims, TokenPair, User
from auth.passwords import hash_password, validate_password_strength, verify_password
from auth.provider import IdentityProvider
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("speciesguard.api.auth")

router = APIRouter()

_settings = get_settings()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REFRESH_COOKIE = "refresh_token"
SESSION_COOKIE = "user_session"
SESSION_COOKIES = (ACCESS_COOKIE, REFRESH_COOKIE, SESSION_COOKIE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, headers: Optional[dict] = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message}, headers=headers)


def _ok(data, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=SuccessResponse(data=data).model_dump(by_alias=True),
    )


def _set_session_cookies(response: JSONResponse, request: Request, user: User, pair: TokenPair) -> None:
    """Write access, refresh, and session-marker cookies.

    httponly: JS cannot read any of them (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: HTTPS-only when APP_ENV=production.
    max_age matches each token's exp so cookie and token expire together.
    """
    issuer = request.app.state.token_issuer
    common = {"httponly": True, "samesite": "lax", "secure": _settings.secure_cookies, "path": "/"}
    response.set_cookie(ACCESS_COOKIE, pair.access_token, max_age=pair.expires_in, **common)
    response.set_cookie(REFRESH_COOKIE, pair.refresh_token, max_age=issuer.refresh_ttl, **common)
    marker = json.dumps({"userId": user.id, "email": user.email, "role": user.role}, separators=(",", ":"))
    response.set_cookie(
        SESSION_COOKIE,
        base64.urlsafe_b64encode(marker.encode("utf-8")).decode("ascii"),
        max_age=issuer.refresh_ttl,
        **common,
    )
    response.headers["Cache-Control"] = "no-store"


def _clear_session_cookies(response: JSONResponse) -> None:
    for name in SESSION_COOKIES:
        response.delete_cookie(
            name, path="/", httponly=True, samesite="lax", secure=_settings.secure_cookies
        )


def _session_response(request: Request, user: User, pair: TokenPair, status_code: int) -> JSONResponse:
    resp = _ok(AuthData(user=UserOut.from_user(user), tokens=TokensOut.from_pair(pair)), status_code)
    _set_session_cookies(resp, request, user, pair)
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router so FastAPI introspects the undecorated function
@router.post("/auth/register", response_model=SuccessResponse[AuthData], status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account with role=user, then sign it in.

    Validation order: presence, email shape, password strength (first failing
    rule only), duplicate email.
    """
    store: UserStore = request.app.state.user_store
    provider: IdentityProvider = request.app.state.identity_provider

    email = (body.email or "").strip()
    if not email or not body.password:
        raise _error(400, "VALIDATION_ERROR", "Email and password are required")
    if not EMAIL_PATTERN.match(email):
        raise _error(400, "VALIDATION_ERROR", "Invalid email format")
    strength = validate_password_strength(body.password)
    if not strength.valid:
        raise _error(400, "VALIDATION_ERROR", strength.reason or "Password does not meet strength requirements")

    email = email.lower()
    if store.get_by_email(email) is not None:
        logger.info("Registration refused: email already registered")
        raise _error(409, "ALREADY_EXISTS", "User with this email already exists")

    user_id = store.create_user(
        User(
            email=email,
            password_hash=hash_password(body.password),
            full_name=(body.full_name or "").strip() or None,
            role=Role.user.value,
            email_verified=False,
            is_active=True,
        )
    )
    user = store.get_by_id(user_id)
    if user is None:
        raise RuntimeError(f"user {user_id} missing immediately after insert")

    request.app.state.audit_log.record(entry_for_request(request, "user.register", user.id))
    logger.info("Registered user_id=%s", user.id)
    return _session_response(request, user, provider.issue_session(user), 201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=SuccessResponse[AuthData])
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set session cookies.

    Unknown email and wrong password share one response body. An inactive
    account is only reported as disabled after its password has been proven.
    """
    store: UserStore = request.app.state.user_store
    provider: IdentityProvider = request.app.state.identity_provider

    email = (body.email or "").strip()
    if not email or not body.password:
        raise _error(400, "VALIDATION_ERROR", "Email and password are required")

    user = provider.authenticate(email.lower(), body.password)
    if user is None:
        logger.info("Login failed: invalid credentials")
        raise _error(
            401, "INVALID_CREDENTIALS", "Invalid email or password", headers={"Cache-Control": "no-store"}
        )
    if not user.is_active:
        logger.info("Login refused: account disabled user_id=%s", user.id)
        raise _error(
            403, "ACCOUNT_DISABLED", "Your account has been disabled", headers={"Cache-Control": "no-store"}
        )

    store.update_last_login(user.id)
    request.app.state.audit_log.record(entry_for_request(request, "user.login", user.id))
    refreshed = store.get_by_id(user.id) or user
    return _session_response(request, refreshed, provider.issue_session(refreshed), 200)


@router.post("/auth/logout", response_model=SuccessResponse[MessageData])
def logout(request: Request) -> JSONResponse:
    """Clear all session cookies. Succeeds with or without a valid token.

    When the caller is identifiable the logout is audited; any failure while
    building or writing the audit entry is logged and does not affect the
    response. Issued tokens stay valid until they expire.
    """
    claims = verify_auth(request)
    if claims is not None:
        audit_log: AuditLog = request.app.state.audit_log
        try:
            audit_log.record(entry_for_request(request, "user.logout", claims.user_id))
        except Exception:  # noqa: BLE001 -- audit is best-effort on logout
            logger.warning("Logout audit write failed for user_id=%s", claims.user_id, exc_info=True)

    resp = _ok(MessageData(message="Logged out successfully"))
    _clear_session_cookies(resp)
    return resp


@router.post("/auth/refresh", response_model=SuccessResponse[TokensData])
def refresh(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange a refresh token for a new token pair.

    The refresh_token cookie is tried first, then the body token, so a stale
    cookie does not shadow a valid body token. The account is re-read, so the
    new access token carries the current role.
    """
    provider: IdentityProvider = request.app.state.identity_provider
    candidates = [request.cookies.get(REFRESH_COOKIE), body.refresh_token if body else None]
    result = None
    for token in candidates:
        if token:
            result = provider.refresh(token)
            if result is not None:
                break
    if result is None:
        raise _error(401, "UNAUTHORIZED", "Invalid or expired refresh token")
    user, pair = result
    resp = _ok(TokensData(tokens=TokensOut.from_pair(pair)))
    _set_session_cookies(resp, request, user, pair)
    return resp


@router.post("/auth/verify-email", response_model=SuccessResponse[MessageData])
def verify_email(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    """Mark an account's email verified using a signed verification token.

    Token delivery (mail) is outside this service; tokens come from
    TokenIssuer.issue_verification_token().
    """
    store: UserStore = request.app.state.user_store
    email = request.app.state.token_issuer.verify_verification_token(body.token)
    if email is None:
        raise _error(400, "VALIDATION_ERROR", "Invalid or expired verification token")
    if not store.mark_email_verified(email):
        raise _error(404, "NOT_FOUND", "User not found")
    return _ok(MessageData(message="Email verified"))


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/reset-password", response_model=SuccessResponse[MessageData])
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password using a signed reset token.

    Token delivery (mail) is outside this service; tokens come from
    TokenIssuer.issue_reset_token(). Outstanding session tokens are not revoked.
    """
    store: UserStore = request.app.state.user_store

    if not body.token or not body.new_password:
        raise _error(400, "VALIDATION_ERROR", "Token and new password are required")
    email = request.app.state.token_issuer.verify_reset_token(body.token)
    if email is None:
        raise _error(400, "VALIDATION_ERROR", "Invalid or expired reset token")
    strength = validate_password_strength(body.new_password)
    if not strength.valid:
        raise _error(400, "VALIDATION_ERROR", strength.reason or "Password does not meet strength requirements")
    user = store.get_by_email(email)
    if user is None:
        raise _error(404, "NOT_FOUND", "User not found")
    if not user.is_active:
        raise _error(403, "ACCOUNT_DISABLED", "Your account has been disabled")

    store.update_user(user.id, password_hash=hash_password(body.new_password))
    request.app.state.audit_log.record(entry_for_request(request, "user.password_reset", user.id))
    logger.info("Password reset for user_id=%s", user.id)
    return _ok(MessageData(message="Password has been reset"))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=SuccessResponse[UserData])
def me(request: Request, claims: TokenClaims = Depends(require_auth)) -> JSONResponse:
    """Return the caller's account, read fresh from the store rather than from token claims."""
    store: UserStore = request.app.state.user_store
    user = store.get_by_id(claims.user_id)
    if user is None:
        logger.info("Token for user_id=%s no longer resolves to an account", claims.user_id)
        raise _error(404, "NOT_FOUND", "User not found")
    return _ok(UserData(user=UserOut.from_user(user)))


@router.post("/auth/change-password", response_model=SuccessResponse[MessageData])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    claims: TokenClaims = Depends(require_auth),
) -> JSONResponse:
    """Rotate the caller's password. Existing tokens are not revoked."""
    store: UserStore = request.app.state.user_store

    if not body.current_password or not body.new_password:
        raise _error(400, "VALIDATION_ERROR", "Current and new password are required")
    user = store.get_by_id(claims.user_id)
    if user is None:
        raise _error(404, "NOT_FOUND", "User not found")
    if not verify_password(body.current_password, user.password_hash):
        raise _error(401, "INVALID_CREDENTIALS", "Current password is incorrect")
    strength = validate_password_strength(body.new_password)
    if not strength.valid:
        raise _error(400, "VALIDATION_ERROR", strength.reason or "Password does not meet strength requirements")
    if body.new_password == body.current_password:
        raise _error(400, "VALIDATION_ERROR", "New password must differ from the current password")

    store.update_user(user.id, password_hash=hash_password(body.new_password))
    request.app.state.audit_log.record(entry_for_request(request, "user.password_change", user.id))
    return _ok(MessageData(message="Password updated"))
