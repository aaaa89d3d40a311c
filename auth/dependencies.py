"""
auth/dependencies.py -- Session gate: FastAPI Depends() helper for bearer auth.

require_session() is the only way a route becomes protected. It reads the
Authorization header, verifies the JWT with auth.tokens.verify_token(), and
attaches the decoded TokenClaims to request.state.user for downstream code.

Stateless by construction: the gate never consults the UserStore. A token for
an account that changed or disappeared after issuance is still accepted
until it expires -- handlers that need the live record (e.g. GET /auth/me)
load it themselves.

Errors are raised as AuthError subclasses (NoToken, InvalidTokenFormat,
TokenExpired, InvalidToken, TokenVerificationError); api/main.py's handler
turns them into 401 responses with the matching code.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidTokenFormat, NoToken
from auth.models import TokenClaims
from auth.tokens import verify_token

_SCHEME = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an 'Authorization: Bearer <token>' header value.

    Raises NoToken if the header is absent or uses another scheme, and
    InvalidTokenFormat if nothing but whitespace follows the scheme.
    """
    if not authorization or not authorization.startswith(_SCHEME):
        raise NoToken()
    token = authorization[len(_SCHEME) :].strip()
    if not token:
        raise InvalidTokenFormat()
    return token


def require_session(request: Request) -> TokenClaims:
    """Require a valid bearer token. Raises a TokenError subclass otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(require_session)): ...
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    claims = verify_token(token)
    request.state.user = claims
    return claims
