"""
api/routes/v1/auth.py -- Credential lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; 201 {message, user, token}
  POST /api/v1/auth/login            -- password login; 200 {message, user, token}
  POST /api/v1/auth/forgot-password  -- start reset; 200 {message} (always generic)
  POST /api/v1/auth/reset-password   -- finish reset; 200 {message, user, token}
  GET  /api/v1/auth/me               -- current user (bearer token required)

Handlers are thin: validate the body with auth/validation.py, call one
AuthService operation, shape the response. Every failure is an AuthError
raised out of the handler; api/main.py turns it into the error envelope.

Security:
  [H2] register/login share the AUTH_RATE_LIMIT window; forgot/reset share
       PASSWORD_RESET_RATE_LIMIT. Both keyed per client IP.
  [C1] AuthService.login() provides timing equalization -- use it, never
       inline a lookup + verify here.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_limit, limiter, password_reset_limit
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import require_session
from auth.models import AuthResult, TokenClaims
from auth.service import AuthService
from auth.validation import (
    ensure_valid,
    validate_forgot_password,
    validate_login,
    validate_register,
    validate_reset_password,
)

# Auth policy:
# - POST /api/v1/auth/register:         public, AUTH_RATE_LIMIT
# - POST /api/v1/auth/login:            public, AUTH_RATE_LIMIT
# - POST /api/v1/auth/forgot-password:  public, PASSWORD_RESET_RATE_LIMIT
# - POST /api/v1/auth/reset-password:   public, PASSWORD_RESET_RATE_LIMIT
# - GET  /api/v1/auth/me:               requires bearer token (require_session)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _auth_response(result: AuthResult, message: str, status_code: int = 200) -> JSONResponse:
    body = AuthResponse(message=message, user=UserResponse.from_public(result.user), token=result.token)
    resp = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.shared_limit(auth_limit, scope="auth")  # [H2] must be BELOW @router
async def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a password account and return a session token.

    An already-registered email gets the same generic RegistrationFailed as
    any other store conflict -- the response never confirms the email exists.
    """
    ensure_valid(validate_register(body.name, body.email, body.password))
    result = await _service(request).register(body.name, body.email, body.password)
    return _auth_response(result, "User registered successfully", status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.shared_limit(auth_limit, scope="auth")  # [H2]
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email, wrong password and Google-only accounts all return the
    identical 401 body to avoid leaking account existence.
    """
    ensure_valid(validate_login(body.email, body.password))
    result = await _service(request).login(body.email, body.password)
    return _auth_response(result, "Login successful")


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.shared_limit(password_reset_limit, scope="password_reset")  # [H2]
async def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Start a password reset. The response is the same whether or not the account exists.

    The reset email is sent in the background; delivery failures are logged
    server-side and never change this response.
    """
    ensure_valid(validate_forgot_password(body.email))
    message = await _service(request).forgot_password(body.email)
    return JSONResponse(content=MessageResponse(message=message).model_dump())


@router.post("/auth/reset-password", response_model=AuthResponse)
@limiter.shared_limit(password_reset_limit, scope="password_reset")  # [H2]
async def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Consume a reset token, set the new password, and return a fresh session token."""
    ensure_valid(validate_reset_password(body.token, body.password))
    result = await _service(request).reset_password(body.token, body.password)
    return _auth_response(result, "Password reset successful")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(request: Request, claims: TokenClaims = Depends(require_session)) -> MeResponse:
    """Return the public record of the token's user.

    The session gate accepted the token without a store lookup; this handler
    does the lookup because it needs the name, and 404s if the record is gone.
    """
    user = await _service(request).get_user(claims.user_id)
    return MeResponse(user=UserResponse.from_public(user))
