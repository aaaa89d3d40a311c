"""
tests/test_validation.py -- Unit tests for auth/validation.py field rules.

Covers:
  - Password policy enumerates every unmet rule once the length is met
  - A too-short password reports only the length rule
  - Email shape check (local@domain.tld, no whitespace)
  - Register / login / forgot / reset validators collect all problems
  - ensure_valid raises ValidationFailed carrying the full list
"""

from __future__ import annotations

import pytest

from auth.errors import ValidationFailed
from auth.validation import (
    ensure_valid,
    is_valid_email,
    password_problems,
    validate_forgot_password,
    validate_login,
    validate_register,
    validate_reset_password,
)


class TestPasswordPolicy:
    def test_strong_password_has_no_problems(self) -> None:
        assert password_problems("Aa1!aaaa") == []

    def test_short_password_reports_length_only(self) -> None:
        """A 3-char all-lowercase password is reported for length, not for every class."""
        assert password_problems("abc") == ["Password must be at least 8 characters long"]

    def test_every_missing_class_is_listed(self) -> None:
        problems = password_problems("aaaaaaaa")
        assert "Password must contain at least one uppercase letter" in problems
        assert "Password must contain at least one number" in problems
        assert "Password must contain at least one special character" in problems
        assert len(problems) == 3

    def test_missing_lowercase(self) -> None:
        assert password_problems("AAAA1111!") == ["Password must contain at least one lowercase letter"]

    def test_space_counts_as_special_character(self) -> None:
        assert password_problems("Aa1 aaaa") == []


class TestEmailShape:
    @pytest.mark.parametrize("email", ["a@x.com", "first.last+tag@sub.example.org", "  a@x.com  "])
    def test_valid(self, email: str) -> None:
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["", None, "a@x", "ax.com", "a b@x.com", "a@@x.com"])
    def test_invalid(self, email) -> None:
        assert not is_valid_email(email)


class TestRequestValidators:
    def test_register_collects_all_problems(self) -> None:
        errors = validate_register("A", "not-an-email", None)
        assert errors == [
            "Name must be at least 2 characters long",
            "Please provide a valid email address",
            "Password is required",
        ]

    def test_register_valid(self) -> None:
        assert validate_register("Alice", "a@x.com", "Aa1!aaaa") == []

    def test_login_does_not_apply_password_policy(self) -> None:
        """Login only checks presence -- a weak legacy password must still be able to log in."""
        assert validate_login("a@x.com", "weak") == []
        assert validate_login("a@x.com", "") == ["Password is required"]

    def test_forgot_password_requires_email(self) -> None:
        assert validate_forgot_password(None) == ["Please provide a valid email address"]
        assert validate_forgot_password("a@x.com") == []

    def test_reset_requires_token_and_strong_password(self) -> None:
        errors = validate_reset_password("", "short")
        assert errors == ["Reset token is required", "Password must be at least 8 characters long"]

    def test_ensure_valid_raises_with_every_error(self) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            ensure_valid(["one", "two"])
        assert exc_info.value.errors == ["one", "two"]
        assert exc_info.value.status_code == 400

    def test_ensure_valid_passes_empty(self) -> None:
        ensure_valid([])
