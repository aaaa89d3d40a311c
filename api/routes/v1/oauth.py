"""
api/routes/v1/oauth.py -- Google sign-in redirect and callback.

Routes:
  GET /api/v1/auth/google           -- redirect the browser to Google
  GET /api/v1/auth/google/callback  -- exchange the code, sign in, redirect to the frontend

The callback ends the flow with a redirect either way:
  success -> {FRONTEND_URL}/auth/callback?token=<jwt>
  failure -> {FRONTEND_URL}/login?error=google_auth_failed
The frontend stores the token exactly as it would after a password login, so
OAuth and password users share one stateless session model.

Both routes answer 501 OAUTH_NOT_CONFIGURED when Google credentials are not
set, so a frontend can hide the button without guessing.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import AuthError, DuplicateKeyError
from auth.oauth import get_google_user_info, google_enabled
from core.config import get_settings

logger = logging.getLogger("gatekeep.api.oauth")

router = APIRouter()


def _not_configured() -> JSONResponse:
    return JSONResponse(
        status_code=501,
        content=ErrorResponse(
            error=ErrorDetail(code="OAUTH_NOT_CONFIGURED", message="Google OAuth is not configured")
        ).model_dump(by_alias=True, exclude_none=True),
    )


def _frontend(path: str, **params: str) -> RedirectResponse:
    base = get_settings().frontend_url.rstrip("/")
    url = f"{base}{path}?{urlencode(params)}" if params else f"{base}{path}"
    resp = RedirectResponse(url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/google", include_in_schema=True)
async def google_login(request: Request):
    """Redirect the browser to Google's authorization page."""
    if not google_enabled():
        return _not_configured()
    client = request.app.state.oauth.create_client("google")
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request):
    """Handle Google's callback and hand a session token to the frontend.

    Flow:
      1. Exchange authorization code for token (authlib checks state via session).
      2. Extract (google_id, email, name) -- raises ValueError if unverified [H1].
      3. find_or_create_oauth_user: match by google id or email, link or create.
      4. Redirect to the frontend with the JWT.
    """
    if not google_enabled():
        return _not_configured()

    client = request.app.state.oauth.create_client("google")
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _frontend("/login", error="google_auth_failed")

    try:
        google_id, email, name = get_google_user_info(token)
    except ValueError:
        logger.warning("Google login rejected: unverified or missing email")
        return _frontend("/login", error="google_auth_failed")

    try:
        result = await request.app.state.auth_service.find_or_create_oauth_user(google_id, email, name)
    except (AuthError, DuplicateKeyError):
        logger.exception("Google sign-in could not be completed")
        return _frontend("/login", error="google_auth_failed")
    return _frontend("/auth/callback", token=result.token)
