"""
auth/service.py -- Auth orchestrator: register, login, password reset, OAuth.

AuthService composes the store, the password hasher, the token service, the
reset-token manager and the mailer into the operations the HTTP layer
exposes. Each operation either completes or raises an AuthError; no caller
ever sees a half-finished state.

Enumeration resistance:
  register        -- an existing email fails with the same RegistrationFailed
                     as a duplicate-key race, never "email taken".
  login           -- unknown email, Google-only account and wrong password all
                     raise the same InvalidCredentials, and all three run one
                     bcrypt verification [C1].
  forgot_password -- always returns the same message.

Side effects: welcome and reset emails run as detached asyncio tasks. The
response does not wait for them; a failure is logged and dropped, never
retried (at-most-once). Task references are kept in a set until they finish
so the event loop cannot garbage-collect a pending send; drain() waits for
whatever is still in flight (shutdown, tests).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from datetime import datetime
from typing import Any

from auth.errors import DuplicateKeyError, InvalidCredentials, RegistrationFailed, UserNotFound
from auth.mailer import Mailer
from auth.models import AuthResult, PublicUser, User
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.reset_tokens import consume_reset_token, issue_reset_token
from auth.store import UserStore
from auth.tokens import issue_token

logger = logging.getLogger("gatekeep.auth")

FORGOT_PASSWORD_MESSAGE = "If an account exists, a password reset email has been sent"


class AuthService:
    """Credential lifecycle operations over a UserStore.

    Usage:
        service = AuthService(store, Mailer())
        result = await service.register("Alice", "a@x.com", "Aa1!aaaa")
        result.token, result.user.to_dict()
    """

    def __init__(self, store: UserStore, mailer: Mailer) -> None:
        self.store = store
        self.mailer = mailer
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str) -> AuthResult:
        if await self.store.find_by_email(email) is not None:
            raise RegistrationFailed()

        password_hash = await asyncio.to_thread(hash_password, password)
        try:
            user = await self.store.create(
                User(name=name, email=email, password_hash=password_hash, is_email_verified=False)
            )
        except DuplicateKeyError as exc:
            # Lost a concurrent registration race for the same email.
            raise RegistrationFailed() from exc

        logger.info("User registered: %s", user.id)
        self._spawn(self.mailer.send_welcome_email(user.email, user.name), "welcome email")
        return self._result(user)

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self.store.find_by_email(email, include_password=True)
        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            await asyncio.to_thread(verify_password, password, DUMMY_HASH)
            raise InvalidCredentials()
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            raise InvalidCredentials()
        return self._result(user)

    async def forgot_password(self, email: str) -> str:
        user = await self.store.find_by_email(email)
        if user is None:
            return FORGOT_PASSWORD_MESSAGE

        token = await issue_reset_token(self.store, user)
        self._spawn(self.mailer.send_password_reset_email(user.email, token), "password reset email")
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, new_password: str, now: datetime | None = None) -> AuthResult:
        user = await consume_reset_token(self.store, token, new_password, now=now)
        logger.info("Password reset completed: %s", user.id)
        return self._result(user)

    async def find_or_create_oauth_user(self, google_id: str, email: str, name: str) -> AuthResult:
        """Sign in with a Google identity, linking or creating the account.

        An account found by email but not yet linked gets google_id attached.
        A brand-new account trusts the provider's email verification and has
        no password.
        """
        user = await self.store.find_by_google_id_or_email(google_id, email)
        if user is not None:
            if not user.google_id:
                await self.store.link_google_id(user.id, google_id)
                user.google_id = google_id
                logger.info("Google account linked: %s", user.id)
            return self._result(user)

        try:
            user = await self.store.create(
                User(name=name or email.split("@")[0], email=email, google_id=google_id, is_email_verified=True)
            )
        except DuplicateKeyError:
            # A concurrent callback for the same identity created it first.
            user = await self.store.find_by_google_id_or_email(google_id, email)
            if user is None:
                raise
        logger.info("User created via Google: %s", user.id)
        return self._result(user)

    async def get_user(self, user_id: str) -> PublicUser:
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user.to_public()

    # ------------------------------------------------------------------
    # Background side effects
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(lambda t: self._finish(t, what))

    def _finish(self, task: asyncio.Task, what: str) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.warning("Background %s cancelled", what)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to send %s", what, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight background send to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _result(user: User) -> AuthResult:
        return AuthResult(user=user.to_public(), token=issue_token(user.id, user.email))
