"""
tests/test_oauth.py -- Google sign-in: identity extraction and the redirect routes.

Covers:
  - get_google_user_info: verified userinfo -> (sub, email, name) [H1];
    unverified / missing userinfo / missing claims -> ValueError
  - Both routes answer 501 OAUTH_NOT_CONFIGURED without Google credentials
  - /auth/google redirects to the provider with our callback URL
  - Callback success: redirect to {FRONTEND_URL}/auth/callback?token=<jwt>
  - Callback failures (token exchange error, unverified email) redirect to
    {FRONTEND_URL}/login?error=google_auth_failed

The authlib client is a mock; no test reaches Google.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.responses import RedirectResponse

from auth.oauth import get_google_user_info
from auth.tokens import verify_token
from conftest import unique_email
from core.config import get_settings

GOOGLE = "/api/v1/auth/google"
CALLBACK = "/api/v1/auth/google/callback"


def _userinfo(email: str, verified: bool = True, sub: str = "g-123", name: str = "Gina") -> dict:
    return {"userinfo": {"sub": sub, "email": email, "email_verified": verified, "name": name}}


class TestGoogleUserInfo:
    def test_verified(self) -> None:
        assert get_google_user_info(_userinfo("g@x.com")) == ("g-123", "g@x.com", "Gina")

    def test_unverified_rejected(self) -> None:
        with pytest.raises(ValueError, match="not verified"):
            get_google_user_info(_userinfo("g@x.com", verified=False))

    def test_missing_userinfo(self) -> None:
        with pytest.raises(ValueError):
            get_google_user_info({})

    def test_missing_sub(self) -> None:
        with pytest.raises(ValueError):
            get_google_user_info(_userinfo("g@x.com", sub=""))

    def test_missing_name_is_empty(self) -> None:
        token = _userinfo("g@x.com")
        del token["userinfo"]["name"]
        assert get_google_user_info(token)[2] == ""


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@pytest.fixture
def google_client(api_client):
    """Pretend Google is configured and hand back the mocked authlib client."""
    client, _ = api_client
    mock = MagicMock()
    client.app.state.oauth.create_client.return_value = mock
    with patch("api.routes.v1.oauth.google_enabled", return_value=True):
        yield mock


def test_routes_501_when_not_configured(api_client):
    client, _ = api_client
    for path in (GOOGLE, CALLBACK):
        resp = client.get(path, follow_redirects=False)
        assert resp.status_code == 501
        assert resp.json()["error"]["code"] == "OAUTH_NOT_CONFIGURED"


def test_login_redirects_to_google(api_client, google_client):
    client, _ = api_client
    google_client.authorize_redirect = AsyncMock(
        return_value=RedirectResponse("https://accounts.google.com/o/oauth2/v2/auth?state=s", status_code=302)
    )
    resp = client.get(GOOGLE, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("https://accounts.google.com/")
    redirect_uri = google_client.authorize_redirect.await_args.args[1]
    assert redirect_uri.endswith(CALLBACK)


def test_callback_success_redirects_with_token(api_client, google_client):
    client, _ = api_client
    email = unique_email("google")
    google_client.authorize_access_token = AsyncMock(return_value=_userinfo(email, sub=f"g-{email}"))

    resp = client.get(CALLBACK, follow_redirects=False)

    assert resp.status_code == 302
    location = urlparse(resp.headers["location"])
    frontend = urlparse(get_settings().frontend_url)
    assert location.netloc == frontend.netloc
    assert location.path.endswith("/auth/callback")
    token = parse_qs(location.query)["token"][0]
    assert verify_token(token).email == email
    assert resp.headers["Cache-Control"] == "no-store"

    # The new account is verified and can read /me with the token.
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["isEmailVerified"] is True


def test_callback_unverified_email(api_client, google_client):
    client, _ = api_client
    google_client.authorize_access_token = AsyncMock(return_value=_userinfo(unique_email(), verified=False))
    resp = client.get(CALLBACK, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].endswith("/login?error=google_auth_failed")


def test_callback_token_exchange_failure(api_client, google_client):
    client, _ = api_client
    google_client.authorize_access_token = AsyncMock(side_effect=OAuthError(error="mismatching_state"))
    resp = client.get(CALLBACK, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].endswith("/login?error=google_auth_failed")
