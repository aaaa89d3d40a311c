"""
core/config.py -- Gatekeep settings, read once from the environment.

Every environment variable Gatekeep understands is a field on Settings below.
Modules ask get_settings() for values; none of them read os.environ.

How it is put together:
  get_settings() is wrapped in lru_cache, so the first caller builds the
      Settings object and everyone after that shares it. FastAPI's own docs
      use the same shape for settings dependencies.

  Settings subclasses pydantic-settings' BaseSettings: each field is filled
      from the upper-cased environment variable of the same name, or from a
      .env file in the working directory, and coerced to the field's type.

  validate_secret_key (a model_validator in "after" mode) sees the fully
      resolved object, so it can apply rules that span several fields:
      signing-key policy and the session_secret / email_from fallbacks.

Security notes:
  [M6] A SECRET_KEY under 32 characters is refused. HS256 tokens are only as
       strong as the key that signs them.

  [M7] Outside DEBUG, a missing SECRET_KEY stops startup. Generating one on
       the fly would silently log every user out on each restart.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeep.config")

_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{Path(__file__).parent.parent / 'auth' / 'gatekeep_auth.db'}"

_DEFAULT_EXPIRES_IN = "7d"
_EXPIRES_IN_RE = re.compile(r"^(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Convert a compact duration ("30s", "15m", "12h", "7d") to seconds.

    Raises ValueError for anything that does not match ^\\d+[smhd]$.
    """
    match = _EXPIRES_IN_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


class Settings(BaseSettings):
    """Every knob Gatekeep reads from its environment.

    Each field defaults to something usable so tests can build Settings()
    with no .env present. Field name maps to variable name by upper-casing:
    jwt_expires_in reads JWT_EXPIRES_IN, email_pass reads EMAIL_PASS.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    # Signs the OAuth state cookie only. Falls back to secret_key.
    session_secret: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    jwt_expires_in: str = _DEFAULT_EXPIRES_IN
    bcrypt_rounds: int = 10
    reset_token_ttl_seconds: int = 3600

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = []
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Google OAuth (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Email (optional -- user and pass both required to send)
    # ------------------------------------------------------------------

    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: str = ""
    email_pass: str = ""
    email_from: str = ""
    email_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "5 per 15 minutes"
    password_reset_rate_limit: str = "3 per hour"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator(
        "google_client_id",
        "google_client_secret",
        "email_host",
        "email_user",
        "email_pass",
        "email_from",
        "frontend_url",
    )
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        return value.strip()

    @field_validator("jwt_expires_in")
    @classmethod
    def validate_expires_in(cls, value: str) -> str:
        """Fall back to 7d (with a warning) when the duration is malformed."""
        if not _EXPIRES_IN_RE.match(value.strip()):
            logger.warning("Invalid JWT_EXPIRES_IN format: %r. Using default: %s", value, _DEFAULT_EXPIRES_IN)
            return _DEFAULT_EXPIRES_IN
        return value.strip()

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return value

    @field_validator("email_port")
    @classmethod
    def validate_email_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            logger.warning("Invalid EMAIL_PORT value: %d. Using default: 587", value)
            return 587
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the signing-key rules [M6][M7] and fill derived defaults.

        DEBUG=true with no key: generate one and warn (tokens die on restart).
        DEBUG off with no key: refuse to build.
        Any key under 32 characters: refuse to build.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError("SECRET_KEY is required when DEBUG is off. Set it in the environment or .env.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.session_secret:
            self.session_secret = self.secret_key
        if not self.email_from:
            self.email_from = self.email_user or "noreply@gatekeep.local"
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def token_expire_seconds(self) -> int:
        return parse_duration(self.jwt_expires_in)

    @property
    def google_oauth_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_user and self.email_pass)

    @property
    def cors_origins(self) -> list[str]:
        return [o for o in [self.frontend_url, *self.allowed_origins] if o]


@lru_cache
def get_settings() -> Settings:
    """Return the shared Settings, building it on first use.

    auth/tokens.py and auth/oauth.py read it at import time, so tests set
    their environment before importing anything from auth/ or api/.
    """
    return Settings()
