"""
auth/validation.py -- Field rules shared by every credential endpoint.

This is the server half of a contract the frontend enforces too: the same
password policy, the same email shape, the same messages. Each validator
returns the full list of problems (never just the first) so a client can show
every unmet rule at once. An empty list means valid.

Password policy: at least 8 characters; once long enough, also at least one
lowercase letter, one uppercase letter, one digit and one non-alphanumeric
character. A too-short password reports only the length rule.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re

from auth.errors import ValidationFailed

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PASSWORD_LENGTH = 8
MIN_NAME_LENGTH = 2

_EMAIL_MSG = "Please provide a valid email address"
_PASSWORD_REQUIRED_MSG = "Password is required"


def password_problems(password: str | None) -> list[str]:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return [f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"]
    problems: list[str] = []
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        problems.append("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        problems.append("Password must contain at least one special character")
    return problems


def is_valid_email(email: str | None) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def validate_register(name: str | None, email: str | None, password: str | None) -> list[str]:
    errors: list[str] = []
    if not name or len(name.strip()) < MIN_NAME_LENGTH:
        errors.append(f"Name must be at least {MIN_NAME_LENGTH} characters long")
    if not is_valid_email(email):
        errors.append(_EMAIL_MSG)
    if password:
        errors.extend(password_problems(password))
    else:
        errors.append(_PASSWORD_REQUIRED_MSG)
    return errors


def validate_login(email: str | None, password: str | None) -> list[str]:
    errors: list[str] = []
    if not is_valid_email(email):
        errors.append(_EMAIL_MSG)
    if not password:
        errors.append(_PASSWORD_REQUIRED_MSG)
    return errors


def validate_forgot_password(email: str | None) -> list[str]:
    return [] if is_valid_email(email) else [_EMAIL_MSG]


def validate_reset_password(token: str | None, password: str | None) -> list[str]:
    errors: list[str] = []
    if not token:
        errors.append("Reset token is required")
    if password:
        errors.extend(password_problems(password))
    else:
        errors.append(_PASSWORD_REQUIRED_MSG)
    return errors


def ensure_valid(errors: list[str]) -> None:
    """Raise ValidationFailed carrying every problem, if there are any."""
    if errors:
        raise ValidationFailed(errors)
