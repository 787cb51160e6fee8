"""
auth/results.py -- Tagged results returned by every core operation.

Pattern: Result object. A Result carries either a value or a Failure. The
Failure has a kind (which family of problem: validation, conflict, policy, ...)
and a code (which exact problem: duplicate_email, last_admin, expired, ...).
The HTTP layer maps kinds to status codes; codes are machine-readable and safe
to return to clients.

Failure.reason is internal metadata for logs. It lets login distinguish
"no such user" from "wrong password" for observability while both surface with
the single public code invalid_credentials.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    POLICY_VIOLATION = "policy_violation"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    TOKEN = "token"


class TokenError(str, Enum):
    """Why a token was rejected. Checked in this order; the first failure wins."""

    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    ISSUER_MISMATCH = "issuer_mismatch"
    AUDIENCE_MISMATCH = "audience_mismatch"


class AuthError(str, Enum):
    DUPLICATE_USERNAME = "duplicate_username"
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    SETUP_COMPLETE = "setup_complete"
    INVALID_INPUT = "invalid_input"


class PolicyError(str, Enum):
    SYSTEM_ROLE = "system_role"
    LAST_ADMIN = "last_admin"
    DUPLICATE_ROLE_NAME = "duplicate_role_name"
    ROLE_HAS_MEMBERS = "role_has_members"
    ROLE_NOT_FOUND = "role_not_found"
    ROLE_NOT_HELD = "role_not_held"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    code: str
    message: str
    reason: str | None = None  # internal only, never serialized to clients


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value (failure is None) or a Failure.

    Usage:
        result = service.login("alice", "pw1")
        if not result.ok:
            log(result.failure.reason)
            return 401
        session = result.value
    """

    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, code: str, message: str, reason: str | None = None) -> Result[T]:
        return cls(failure=Failure(kind=kind, code=str(getattr(code, "value", code)), message=message, reason=reason))

    @classmethod
    def from_failure(cls, failure: Failure) -> Result[T]:
        """Re-type a failure from another operation without rewrapping it."""
        return cls(failure=failure)
