"""
api/main.py -- FastAPI application entry point for Gatekeep.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. request_context       -- request id + access log line
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for the frontend origin(s)
  4. SlowAPIMiddleware     -- installs the limiter; route windows are checked by @limiter decorators
  5. SessionMiddleware     -- carries the OAuth state value between redirect and callback

Lifespan handles startup (store, mailer, auth service) and shutdown (wait for
in-flight emails, close the store) symmetrically.
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.oauth import router as oauth_router
from auth.errors import AuthError, ValidationFailed
from auth.mailer import Mailer
from auth.oauth import oauth as oauth_client
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatekeep.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and wire the service on startup; drain and close on shutdown.

    Shutdown drains background email tasks before the store closes
    so a send that is already under way is not cut off mid-flight.
    """
    logger.info("Gatekeep API starting up")
    store = UserStore(db_url=_settings.database_url)
    await store.init()
    app.state.user_store = store
    mailer = Mailer(_settings)
    app.state.auth_service = AuthService(store, mailer)
    app.state.oauth = oauth_client
    logger.info(
        "Auth initialized (email=%s, google_oauth=%s)",
        "configured" if mailer.configured else "not configured",
        "configured" if _settings.google_oauth_enabled else "not configured",
    )

    yield

    await app.state.auth_service.drain()
    await app.state.user_store.close()
    logger.info("Gatekeep API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatekeep API",
    description="Registration, login, password reset and Google sign-in with stateless bearer tokens.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the LAST registered middleware
# is the outermost. Register innermost first.
# ---------------------------------------------------------------------------

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. It never holds
# identity -- sessions are the bearer JWT's job.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.session_secret,
    same_site="lax",
    https_only=not _settings.debug,
    max_age=600,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=0 if _settings.debug else 86400,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request id + access log middleware
#
# Every request gets an id -- the caller's X-Request-ID if present, a fresh
# UUID4 otherwise. It is echoed back as X-Request-ID, included in every error
# body, and written on the access log line so operators can cross-reference.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s %d %.1fms %s [%s]",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        request_id,
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(oauth_router, prefix="/api/v1", tags=["OAuth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves as {"error": {code, message, requestId, ...}} whatever
# raised it, so clients parse one shape.
# ---------------------------------------------------------------------------


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def _error(status_code: int, detail: ErrorDetail, request: Request) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(by_alias=True, exclude_none=True),
    )
    resp.headers["X-Request-ID"] = _request_id(request)
    return resp


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate any domain error into its fixed status, code and message."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s [%s]", exc.code, request.method, request.url.path, _request_id(request))
    errors = exc.errors if isinstance(exc, ValidationFailed) else None
    return _error(
        exc.status_code,
        ErrorDetail(code=exc.code, message=exc.message, errors=errors, request_id=_request_id(request)),
        request,
    )


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a generic message when a fixed window is exhausted.

    Raised by the @limiter decorators on the auth routes. Kept a plain (sync)
    function because SlowAPIMiddleware calls it without awaiting when it
    enforces application-wide limits itself.
    """
    # Seconds in the exhausted fixed window.
    retry_after = exc.limit.limit.get_expiry() if getattr(exc, "limit", None) is not None else 60
    resp = _error(
        429,
        ErrorDetail(
            code="RATE_LIMITED",
            message="Too many requests. Please try again later.",
            request_id=_request_id(request),
        ),
        request,
    )
    resp.headers["Retry-After"] = str(retry_after)
    return resp


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the body is not JSON or a field exceeds its size cap."""
    errors = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid')}" for e in exc.errors()]
    return _error(
        400,
        ErrorDetail(code="VALIDATION_ERROR", message="Validation failed", errors=errors, request_id=_request_id(request)),
        request,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    return _error(
        exc.status_code,
        ErrorDetail(code=f"HTTP_{exc.status_code}", message=str(exc.detail), request_id=_request_id(request)),
        request,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The full traceback goes to the log with the request id. The client gets a
    generic message; the exception text and stack trace are only added in
    DEBUG mode.
    """
    logger.exception("Unhandled exception on %s %s [%s]", request.method, request.url.path, _request_id(request))
    debug = get_settings().debug
    return _error(
        500,
        ErrorDetail(
            code="INTERNAL_ERROR",
            message=str(exc) if debug and str(exc) else "Internal server error",
            request_id=_request_id(request),
            stack="".join(traceback.format_exception(exc)) if debug else None,
        ),
        request,
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Lives on the app, outside the auth routers, and carries no rate limit.
# 503 when the database does not answer SELECT 1.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> JSONResponse:
    """Return API liveness, version and database reachability."""
    db_ok = await request.app.state.user_store.ping()
    body = HealthResponse(
        status="ok" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=body.model_dump())
