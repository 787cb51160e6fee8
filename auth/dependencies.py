"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients.

A token must validate (signature, expiry, issuer, audience) AND its uid must
name an existing user whose username still equals sub. A deleted or renamed
user's unexpired token is rejected, and so is an old token presented after
someone re-registers the freed username.

try_get_principal() is the soft variant (returns None on failure).
get_principal() wraps it and raises HTTP 401 if unauthenticated.
require_role() / require_admin / require_self_or_admin() raise HTTP 403 when
auth.policy says no. Role decisions use the token's role claims.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from auth.models import ADMIN_ROLE, TokenClaims, User
from auth.policy import authorize, authorize_self_or_admin
from auth.service import AuthService

logger = logging.getLogger("rolegate.auth")

ACCESS_TOKEN_COOKIE = "access_token"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: the validated token claims plus the current user record."""

    claims: TokenClaims
    user: User


def extract_token(request: Request) -> str | None:
    token: str | None = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_principal(request: Request) -> Principal | None:
    """Authenticate the request. Returns None on any failure; never raises."""
    token = extract_token(request)
    if not token:
        return None
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.decode_token(token)
    if not result.ok:
        logger.info("Rejected token on %s: %s", request.url.path, result.failure.code)
        return None
    claims = result.value
    if claims.user_id is None:
        logger.info("Rejected token without uid for %r", claims.subject)
        return None
    # The username alone is reusable after a rename; the account is the uid.
    user = request.app.state.store.find_user_by_id(claims.user_id)
    if user is None or user.username != claims.subject:
        logger.info("Rejected token for vanished or renamed user %r", claims.subject)
        return None
    return Principal(claims=claims, user=user)


def get_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_role(role_name: str):
    """Build a dependency that requires the caller's token to carry role_name."""

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not authorize(principal.claims, role_name):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{role_name} role required."},
            )
        return principal

    return dependency


require_admin = require_role(ADMIN_ROLE)


def require_self_or_admin(user_id: str, principal: Principal = Depends(get_principal)) -> Principal:
    """Allow administrators, or callers acting on their own record (path param user_id)."""
    if not authorize_self_or_admin(principal.claims, user_id, principal.user.id):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You may only access your own account."},
        )
    return principal
