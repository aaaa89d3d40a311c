"""
auth/tokens.py -- Session token issue and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), email, iat and exp. Nothing else -- no roles, no
       profile data -- so a token never goes stale with respect to anything
       but its own expiry.

  Stateless: verify_token() never touches the store. A token stays valid
       until exp even if the account changes underneath it. There is no
       server-side revocation list; logout is the client dropping the token.

  Errors: unlike a soft "return None" API, verification raises one of three
       typed errors so the session gate can report TOKEN_EXPIRED separately
       from INVALID_TOKEN. Both map to 401.

  SECRET_KEY and the lifetime (JWT_EXPIRES_IN) come from
       core.config.get_settings(); see the [M6]/[M7] notes there.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is
the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWTError

from auth.errors import InvalidToken, TokenExpired, TokenGenerationError, TokenVerificationError
from auth.models import TokenClaims
from core.config import get_settings

logger = logging.getLogger("gatekeep.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

ALGORITHM = "HS256"


def issue_token(user_id: str, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and configurable expiry.

    Args:
        user_id:        Opaque user id, stored as the sub claim.
        email:          Normalized email address.
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (JWT_EXPIRES_IN).

    Raises:
        TokenGenerationError: the signing primitive failed.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    try:
        return jwt.encode(payload, _settings.secret_key, algorithm=ALGORITHM)
    except (JOSEError, TypeError, ValueError) as exc:
        logger.error("Token signing failed: %s", type(exc).__name__)
        raise TokenGenerationError() from exc


def verify_token(token: str) -> TokenClaims:
    """Verify signature and expiry, returning the decoded claims.

    Raises:
        TokenExpired:           exp is in the past.
        InvalidToken:           bad signature, malformed token, or sub/email missing.
        TokenVerificationError: anything else.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise InvalidToken() from exc
    except Exception as exc:
        logger.warning("Unexpected token verification failure: %s", type(exc).__name__)
        raise TokenVerificationError() from exc

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise InvalidToken("Invalid token payload")

    try:
        issued_at = datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise InvalidToken("Invalid token payload") from exc

    return TokenClaims(user_id=user_id, email=email, issued_at=issued_at, expires_at=expires_at)
