"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt only reads the first 72 bytes of its input, and bcrypt 5 raises
ValueError on anything longer instead of truncating. _secret() cuts the
UTF-8 encoding to 72 bytes for both hashing and verification, so a long
passphrase (the API accepts up to 128 characters) hashes and verifies the
same way on every bcrypt release.

The cost factor comes from Settings.bcrypt_rounds (BCRYPT_ROUNDS, default 10)
so it can be tuned without touching code. Existing hashes keep their own cost
embedded in the hash string and still verify after the setting changes.

The plaintext never leaves the request that carries it: callers hash or
verify and drop it. Nothing in this module logs.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

BCRYPT_MAX_BYTES = 72

_settings = get_settings()


def _secret(plain: str) -> bytes:
    return plain.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(_secret(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash is a
    mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(_secret(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Login always runs verify_password(), against
# this hash when the account does not exist or has no password, so response
# time does not reveal which emails are registered.
DUMMY_HASH: str = hash_password("gatekeep_timing_dummy")
