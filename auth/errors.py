"""
auth/errors.py -- Domain error taxonomy for the credential lifecycle.

Every error the orchestrator or the session gate raises is an AuthError
carrying an HTTP status and a machine-readable code. api/main.py has a single
exception handler that turns any AuthError into the standard error envelope,
so route handlers never build error responses by hand.

Messages are deliberately generic where they sit on an enumeration boundary:
InvalidCredentials covers "no such user", "wrong password" and "OAuth-only
account"; RegistrationFailed covers "email already taken".

DuplicateKeyError is NOT an AuthError: it is the store's signal that a unique
index rejected a write. The orchestrator converts it to RegistrationFailed.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors with a fixed HTTP mapping."""

    status_code: int = 500
    code: str = "AUTH_ERROR"
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(AuthError):
    """One or more request fields are invalid. errors lists every problem."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, errors: list[str], message: str | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors)


class AuthenticationError(AuthError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"
    default_message = "Authentication failed."


class InvalidCredentials(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class RegistrationFailed(AuthError):
    status_code = 400
    code = "REGISTRATION_FAILED"
    default_message = "Registration failed. Please try again."


class UserNotFound(AuthError):
    status_code = 404
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class InvalidOrExpiredToken(AuthError):
    """A password-reset token did not match a live record."""

    status_code = 400
    code = "INVALID_RESET_TOKEN"
    default_message = "Invalid or expired reset token"


# ---------------------------------------------------------------------------
# Session token errors
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    status_code = 401
    code = "TOKEN_ERROR"
    default_message = "Invalid or expired token. Please authenticate again."


class NoToken(TokenError):
    code = "NO_TOKEN"
    default_message = "No token provided. Please authenticate."


class InvalidTokenFormat(TokenError):
    code = "INVALID_TOKEN_FORMAT"
    default_message = "Invalid token format. Please authenticate again."


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidToken(TokenError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenVerificationError(TokenError):
    code = "TOKEN_VERIFICATION_ERROR"
    default_message = "Token verification failed"


class TokenGenerationError(TokenError):
    status_code = 500
    code = "TOKEN_GENERATION_ERROR"
    default_message = "Failed to generate token"


# ---------------------------------------------------------------------------
# Collaborator errors (never mapped to a response directly)
# ---------------------------------------------------------------------------


class DuplicateKeyError(Exception):
    """Raised by UserStore.create() when a unique index rejects the insert."""


class EmailDeliveryError(Exception):
    """Raised by Mailer when the SMTP transport fails."""
