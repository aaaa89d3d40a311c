"""
auth/store.py -- Async SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. The orchestrator and
route code never touch SQL directly.

Async: every query goes through an AsyncEngine (aiosqlite by default), so a
request waiting on the database suspends its own task without blocking the
event loop for other requests.

Security:
  All queries use bound parameters. No f-strings in SQL.

  password_hash is excluded from default reads. Only find_by_email(...,
  include_password=True) loads it, which keeps the hash out of any generic
  serialization path that happens to receive a User.

  Uniqueness of email and google_id is enforced by UNIQUE indexes, not by a
  check-then-insert in code. Concurrent registrations race at the database;
  the loser gets DuplicateKeyError. SQLite treats NULLs as distinct in UNIQUE
  constraints, which is exactly the "unique when present" rule google_id
  needs.

  consume_reset_token() is a conditional UPDATE keyed on the token digest and
  expiry, so two racing consumers of the same reset token cannot both win.

Timestamps are UTC ISO 8601 strings with fixed microsecond precision so that
string comparison in SQL orders them correctly.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, event, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from auth.errors import DuplicateKeyError
from auth.models import User

_DEFAULT_DB_URL = f"sqlite+aiosqlite:///{Path(__file__).parent / 'gatekeep_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # trimmed + lowercased
    Column("password_hash", Text),  # NULL for Google-only users
    Column("google_id", String(255), unique=True),
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("reset_token_hash", String(64), index=True),  # SHA-256 hex
    Column("reset_token_expires_at", String(40)),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

# Every column except password_hash. Default reads select these only.
_PUBLIC_COLUMNS = [c for c in _users.c if c.name != "password_hash"]


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        await store.init()
        user = await store.create(User(name="Alice", email="a@x.com", password_hash=...))
        same = await store.find_by_email("A@X.com ")
        await store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: AsyncEngine = create_async_engine(db_url)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine.sync_engine, "connect", _set_wal_mode)

    async def init(self) -> None:
        """Create tables if they do not exist. Idempotent; call once at startup."""
        async with self.engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_email(self, email: str, include_password: bool = False) -> User | None:
        """Look up a user by email (case-insensitive, whitespace-trimmed).

        The password hash is only loaded when include_password=True.
        """
        columns = list(_users.c) if include_password else _PUBLIC_COLUMNS
        return await self._fetch_one(select(*columns).where(_users.c.email == normalize_email(email)))

    async def find_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return await self._fetch_one(select(*_PUBLIC_COLUMNS).where(_users.c.id == user_id))

    async def find_by_google_id(self, google_id: str) -> User | None:
        return await self._fetch_one(select(*_PUBLIC_COLUMNS).where(_users.c.google_id == google_id))

    async def find_by_google_id_or_email(self, google_id: str, email: str) -> User | None:
        """Match a Google sign-in to an existing record.

        A record already linked to google_id wins over one that merely shares
        the email address.
        """
        user = await self.find_by_google_id(google_id)
        if user is not None:
            return user
        return await self.find_by_email(email)

    async def _fetch_one(self, stmt) -> User | None:
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises DuplicateKeyError if the email or google_id is already taken.
        """
        now = _now_iso()
        user.id = user.id or uuid.uuid4().hex
        user.email = normalize_email(user.email)
        user.name = user.name.strip()
        user.created_at = now
        user.updated_at = now
        try:
            async with self.engine.connect() as conn:
                await conn.execute(
                    _users.insert().values(
                        id=user.id,
                        name=user.name,
                        email=user.email,
                        password_hash=user.password_hash,
                        google_id=user.google_id,
                        is_email_verified=user.is_email_verified,
                        reset_token_hash=user.reset_token_hash,
                        reset_token_expires_at=user.reset_token_expires_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        return user

    async def save(self, user: User) -> User:
        """Persist the mutable fields of an existing user and bump updated_at.

        password_hash is only written when it is set on the object: a User read
        without include_password=True carries None there, and saving it must
        not erase the stored hash.

        Raises DuplicateKeyError if the new email or google_id collides.
        Raises LookupError if the user does not exist.
        """
        user.email = normalize_email(user.email)
        user.updated_at = _now_iso()
        values = {
            "name": user.name,
            "email": user.email,
            "google_id": user.google_id,
            "is_email_verified": user.is_email_verified,
            "reset_token_hash": user.reset_token_hash,
            "reset_token_expires_at": user.reset_token_expires_at,
            "updated_at": user.updated_at,
        }
        if user.password_hash is not None:
            values["password_hash"] = user.password_hash
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
                await conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        if result.rowcount == 0:
            raise LookupError(f"User {user.id!r} does not exist")
        return user

    async def link_google_id(self, user_id: str, google_id: str) -> None:
        """Associate a Google account with an existing user record.

        Raises DuplicateKeyError if google_id already belongs to another user.
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(
                    _users.update().where(_users.c.id == user_id).values(google_id=google_id, updated_at=_now_iso())
                )
                await conn.commit()
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    async def set_reset_token(self, user_id: str, token_hash: str, expires_at: datetime) -> None:
        """Store the digest and expiry of a newly issued reset token.

        Overwrites whatever was there: at most one reset token is live per user.
        """
        async with self.engine.connect() as conn:
            await conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(reset_token_hash=token_hash, reset_token_expires_at=to_iso(expires_at), updated_at=_now_iso())
            )
            await conn.commit()

    async def consume_reset_token(self, token_hash: str, new_password_hash: str, now: datetime) -> User | None:
        """Atomically swap in a new password for the holder of a live reset token.

        One UPDATE ... RETURNING, conditioned on the digest still matching and
        the expiry still being in the future, clears both fields in the same
        statement. If two requests race with the same token, only one of them
        gets a row back; the other gets None, just like an unknown or expired
        token.
        """
        now_iso = to_iso(now)
        stmt = (
            _users.update()
            .where((_users.c.reset_token_hash == token_hash) & (_users.c.reset_token_expires_at > now_iso))
            .values(
                password_hash=new_password_hash,
                reset_token_hash=None,
                reset_token_expires_at=None,
                updated_at=_now_iso(),
            )
            .returning(_users.c.id)
        )
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).fetchone()
            await conn.commit()
        if row is None:
            return None
        return await self.find_by_id(row.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    # password_hash is absent from rows selected with _PUBLIC_COLUMNS.
    mapping = row._mapping
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=mapping.get("password_hash"),
        google_id=row.google_id,
        is_email_verified=bool(row.is_email_verified),
        reset_token_hash=row.reset_token_hash,
        reset_token_expires_at=row.reset_token_expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
