"""
api/main.py -- FastAPI application entry point for SpeciesGuard.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for the browser client origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. log_requests       -- method, path, status, latency, client host

Lifespan is the composition root: it constructs the credential store, audit
log, token issuer, and identity provider once and stores them on app.state.
Handlers and dependencies read them from request.app.state; nothing is a
module-level singleton.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.audit import AuditLog
from auth.provider import build_identity_provider
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("speciesguard.api")

_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "ALREADY_EXISTS",
}


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Construct shared services on startup and dispose of them on shutdown.

    Startup order: store (owns the engine), audit log (shares the engine),
    token issuer (needs only settings), identity provider (needs both).
    """
    settings = get_settings()
    logger.info("SpeciesGuard API starting up (environment=%s)", settings.environment)
    app.state.user_store = UserStore(settings.database_url)
    app.state.audit_log = AuditLog(app.state.user_store.engine)
    app.state.token_issuer = TokenIssuer(
        settings.secret_key,
        access_ttl=settings.access_token_expire_seconds,
        refresh_ttl=settings.refresh_token_expire_seconds,
        verification_ttl=settings.verification_token_expire_seconds,
        reset_ttl=settings.reset_token_expire_seconds,
    )
    app.state.identity_provider = build_identity_provider(
        settings.identity_provider, app.state.user_store, app.state.token_issuer
    )
    logger.info("Auth initialized")

    yield

    app.state.user_store.close()
    logger.info("SpeciesGuard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SpeciesGuard API",
    description="Accounts and sessions for the endangered-species conservation site.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly: {"success": false, "error": {"code", "message"}}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
        headers=headers,
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error_response(429, "RATE_LIMITED", "Too many requests", headers={"Retry-After": str(retry_after)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies (wrong types, over-long fields, non-JSON) become 400 VALIDATION_ERROR."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    # ValueErrors raised by model validators carry a client-safe reason.
    reason = first.get("ctx", {}).get("error") if first.get("type") == "value_error" else None
    if reason is not None:
        message = str(reason)
    else:
        message = f"Invalid value for {field}" if field else "Request validation failed"
    return _error_response(400, "VALIDATION_ERROR", message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap HTTPException in the envelope.

    Route code raises HTTPException(detail={"code", "message"}); plain-string
    details (e.g. Starlette's own 404/405) get a code derived from the status.
    Headers (WWW-Authenticate, Cache-Control) are preserved.
    """
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        code, message = str(exc.detail["code"]), str(exc.detail.get("message", ""))
    else:
        code = _STATUS_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
        message = str(exc.detail)
    return _error_response(exc.status_code, code, message, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception is logged server-side only; the client gets a generic
    INTERNAL_ERROR with no internals.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable. No rate limit --
# load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    try:
        db_status = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        db_status = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": db_status})
