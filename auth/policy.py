"""
auth/policy.py -- Authorization decisions.

All "may this principal do that" questions are answered here, from the role
claims in a validated token. FastAPI dependencies in auth/dependencies.py call
these functions; route handlers never compare role strings themselves.
"""

from __future__ import annotations

from auth.models import ADMIN_ROLE, TokenClaims


def authorize(claims: TokenClaims, required_role: str) -> bool:
    """True iff the principal's token carries required_role."""
    return required_role in claims.roles


def authorize_self_or_admin(claims: TokenClaims, target_user_id: str, principal_user_id: str) -> bool:
    """True for administrators, or when the principal is acting on their own record."""
    return authorize(claims, ADMIN_ROLE) or principal_user_id == target_user_id
