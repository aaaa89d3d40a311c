"""
auth/oauth.py -- Authlib Google OAuth/OIDC configuration.

Reads configuration from core.config.get_settings() at module load. Google is
registered only when both GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are set;
otherwise the /auth/google routes answer 501.

Security notes:
  [H1] Email verification is mandatory. get_google_user_info() raises
       ValueError unless the id_token says email_verified. New accounts
       created from a Google sign-in are marked is_email_verified=True on the
       strength of that claim, so it must actually be checked.

  OAuth state parameter (CSRF protection) is handled by authlib via Starlette
  SessionMiddleware. The session cookie only holds the state between the
  authorization redirect and the callback -- identity is carried by the
  bearer JWT, never by the session.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("gatekeep.auth.oauth")

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# Google -- OIDC discovery
if _cfg.google_oauth_enabled:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")
else:
    logger.debug("Google OAuth not configured (optional)")


def google_enabled() -> bool:
    return get_settings().google_oauth_enabled


# ---------------------------------------------------------------------------
# Identity extraction [H1]
# ---------------------------------------------------------------------------


def get_google_user_info(token: dict) -> tuple[str, str, str]:
    """Extract (google_id, email, name) from a Google token response.

    Google returns an id_token whose claims authlib parses into
    token["userinfo"]: sub (stable subject id), email, email_verified, name.

    Raises:
        ValueError: userinfo missing, email unverified, or sub/email absent.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            "google OAuth: email is not verified. "
            "The provider must confirm email ownership before login is allowed."
        )

    google_id = userinfo.get("sub")
    email = userinfo.get("email")
    if not google_id or not email:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return str(google_id), email, userinfo.get("name") or ""
