"""
auth/reset_tokens.py -- Single-use, time-boxed password reset tokens.

Security design:
  secrets.token_hex(32) gives 256 bits of entropy. The plaintext is returned
  exactly once -- to be emailed -- and never persisted. The store keeps only
  SHA-256(token) and an expiry (RESET_TOKEN_TTL_SECONDS, default one hour).

  A plain SHA-256 digest (not bcrypt, not HMAC) is enough here: the input is
  a long random value, so there is nothing to brute-force, and a
  deterministic digest lets the store find the record with an indexed
  equality lookup instead of scanning every pending reset.

  Consumption is a single conditional update in the store. No match and an
  expired match produce the same InvalidOrExpiredToken -- the caller cannot
  tell which one happened, and neither branch does extra work the other does
  not.

  Issuing a new token overwrites the previous digest, so at most one token is
  live per user.

The clock is injectable (now=...) so expiry can be tested without sleeping.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidOrExpiredToken
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore, to_iso
from core.config import get_settings


def generate_reset_token() -> tuple[str, str]:
    """Return (plaintext, digest) for a fresh reset token."""
    token = secrets.token_hex(32)
    return token, digest_reset_token(token)


def digest_reset_token(token: str) -> str:
    """Return the hex SHA-256 digest stored in place of the plaintext token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def issue_reset_token(store: UserStore, user: User, now: datetime | None = None) -> str:
    """Generate a reset token for user, persist its digest and expiry, return the plaintext."""
    now = now or datetime.now(timezone.utc)
    token, digest = generate_reset_token()
    expires_at = now + timedelta(seconds=get_settings().reset_token_ttl_seconds)
    await store.set_reset_token(user.id, digest, expires_at)
    user.reset_token_hash = digest
    user.reset_token_expires_at = to_iso(expires_at)
    return token


async def consume_reset_token(store: UserStore, token: str, new_password: str, now: datetime | None = None) -> User:
    """Set a new password for the holder of a live reset token and burn the token.

    Raises:
        InvalidOrExpiredToken: no user holds this token, or it has expired,
            or a concurrent request consumed it first.
    """
    now = now or datetime.now(timezone.utc)
    digest = digest_reset_token(token)
    new_hash = await asyncio.to_thread(hash_password, new_password)
    user = await store.consume_reset_token(digest, new_hash, now)
    if user is None:
        raise InvalidOrExpiredToken()
    return user
