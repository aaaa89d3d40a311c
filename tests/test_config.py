"""
tests/test_config.py -- Tests for core/config.py Settings validation.

Covers:
  - parse_duration for every unit and rejection of malformed values
  - Malformed JWT_EXPIRES_IN falls back to 7d instead of failing
  - SECRET_KEY policy [M6][M7]: required in production, generated in DEBUG,
    rejected when shorter than 32 characters
  - Derived values: session_secret / email_from fallbacks, cors_origins,
    google_oauth_enabled, email_enabled
"""

from __future__ import annotations

import pytest

from core.config import Settings, parse_duration

KEY = "k" * 32


def _settings(**overrides) -> Settings:
    fields = {"secret_key": KEY, "debug": False}
    fields.update(overrides)
    return Settings(_env_file=None, **fields)


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,seconds", [("30s", 30), ("15m", 900), ("12h", 43200), ("7d", 604800), (" 1d ", 86400)]
    )
    def test_units(self, value: str, seconds: int) -> None:
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["", "7", "d7", "7w", "1.5h", "-1d"])
    def test_malformed(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_malformed_expires_in_falls_back(self) -> None:
        cfg = _settings(jwt_expires_in="forever")
        assert cfg.jwt_expires_in == "7d"
        assert cfg.token_expire_seconds == 604800


class TestSecretKey:
    def test_missing_key_in_production_refuses_to_start(self) -> None:
        with pytest.raises(ValueError, match="SECRET_KEY is required"):
            _settings(secret_key="", debug=False)

    def test_missing_key_in_debug_is_generated(self) -> None:
        cfg = _settings(secret_key="", debug=True)
        assert len(cfg.secret_key) >= 32

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least 32"):
            _settings(secret_key="too-short")

    def test_session_secret_defaults_to_secret_key(self) -> None:
        assert _settings().session_secret == KEY
        assert _settings(session_secret="s" * 40).session_secret == "s" * 40


class TestRanges:
    def test_bcrypt_rounds_bounds(self) -> None:
        with pytest.raises(ValueError):
            _settings(bcrypt_rounds=3)
        assert _settings(bcrypt_rounds=12).bcrypt_rounds == 12

    def test_bad_email_port_falls_back(self) -> None:
        assert _settings(email_port=70000).email_port == 587


class TestDerived:
    def test_google_requires_both_values(self) -> None:
        assert not _settings(google_client_id="id").google_oauth_enabled
        assert _settings(google_client_id="id", google_client_secret="secret").google_oauth_enabled

    def test_email_requires_user_and_pass(self) -> None:
        assert not _settings(email_user="me@x.com").email_enabled
        assert _settings(email_user="me@x.com", email_pass="pw").email_enabled

    def test_email_from_fallbacks(self) -> None:
        assert _settings(email_user="me@x.com").email_from == "me@x.com"
        assert _settings().email_from == "noreply@gatekeep.local"
        assert _settings(email_from=" team@x.com ").email_from == "team@x.com"

    def test_cors_origins_include_frontend(self) -> None:
        cfg = _settings(frontend_url="https://app.example.com", allowed_origins=["https://admin.example.com"])
        assert cfg.cors_origins == ["https://app.example.com", "https://admin.example.com"]
