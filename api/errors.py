"""
api/errors.py -- Translate core Failure results into HTTP errors.

The core never knows about status codes. Route handlers call
raise_for_failure() on any failed Result; the HTTPException handler in
api/main.py then renders the shared {"error": {...}} envelope.

Failure.reason is deliberately dropped here: it may say "user_not_found"
where the client must only ever see invalid_credentials.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException

from auth.results import Failure, FailureKind

_STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.VALIDATION: 422,
    FailureKind.CONFLICT: 409,
    FailureKind.POLICY_VIOLATION: 400,
    FailureKind.NOT_FOUND: 404,
    FailureKind.AUTHENTICATION: 401,
    FailureKind.TOKEN: 401,
}


def status_for(failure: Failure) -> int:
    return _STATUS_BY_KIND.get(failure.kind, 400)


def raise_for_failure(failure: Failure) -> NoReturn:
    raise HTTPException(
        status_code=status_for(failure),
        detail={"code": failure.code, "message": failure.message},
    )
