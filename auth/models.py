"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store, the orchestrator and the routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered identity.

    email is stored trimmed and lowercased; the store normalizes it on every
    write and lookup so uniqueness is case-insensitive.

    password_hash is None for Google-only accounts, and is also None on
    records read without include_password=True -- the store never loads the
    hash unless a caller explicitly asks for it.

    reset_token_hash / reset_token_expires_at hold the SHA-256 digest of the
    single outstanding reset token and its UTC ISO 8601 expiry. Both are None
    when no reset is pending.
    """

    name: str
    email: str
    id: str | None = None
    password_hash: str | None = None
    google_id: str | None = None
    is_email_verified: bool = False
    reset_token_hash: str | None = None
    reset_token_expires_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_public(self) -> PublicUser:
        return PublicUser(
            id=self.id or "",
            name=self.name,
            email=self.email,
            is_email_verified=self.is_email_verified,
        )


@dataclass(frozen=True)
class PublicUser:
    """The only user projection that ever leaves the service."""

    id: str
    name: str
    email: str
    is_email_verified: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "isEmailVerified": self.is_email_verified,
        }


@dataclass(frozen=True)
class TokenClaims:
    """Decoded session token claims. Never persisted."""

    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Successful register / login / reset / OAuth outcome."""

    user: PublicUser
    token: str
