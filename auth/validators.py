"""Input validation for user and role fields.

Each check returns a Result so services can hand the failure straight back.
Values are not normalized: usernames are case-sensitive and stored exactly as
given.
"""

from __future__ import annotations

import re

from auth.models import EMAIL_MAX_LEN, ROLE_DESCRIPTION_MAX_LEN, ROLE_NAME_MAX_LEN, USERNAME_MAX_LEN
from auth.results import AuthError, FailureKind, Result

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")


def _invalid(message: str) -> Result[None]:
    return Result.fail(FailureKind.VALIDATION, AuthError.INVALID_INPUT, message)


def validate_username(username: str) -> Result[None]:
    if not username or not username.strip():
        return _invalid("Username is required.")
    if len(username) > USERNAME_MAX_LEN:
        return _invalid(f"Username must not exceed {USERNAME_MAX_LEN} characters.")
    return Result.success()


def validate_email(email: str) -> Result[None]:
    if not email or not _EMAIL_RE.match(email):
        return _invalid("Invalid email format.")
    if len(email) > EMAIL_MAX_LEN:
        return _invalid(f"Email must not exceed {EMAIL_MAX_LEN} characters.")
    return Result.success()


def validate_password(password: str) -> Result[None]:
    if not password:
        return _invalid("Password is required.")
    return Result.success()


def validate_role(name: str, description: str | None) -> Result[None]:
    if not name or not name.strip():
        return _invalid("Role name is required.")
    if len(name) > ROLE_NAME_MAX_LEN:
        return _invalid(f"Role name must not exceed {ROLE_NAME_MAX_LEN} characters.")
    if description is not None and len(description) > ROLE_DESCRIPTION_MAX_LEN:
        return _invalid(f"Role description must not exceed {ROLE_DESCRIPTION_MAX_LEN} characters.")
    return Result.success()


def first_failure(*results: Result[None]) -> Result[None]:
    """Return the first failed result, or success if all passed."""
    for result in results:
        if not result.ok:
            return result
    return Result.success()
