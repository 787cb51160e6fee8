"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, guard, and services do the work.

User.roles and Role.member_count are both read-side views of the single
membership relation kept by auth/store.py. Neither is written back: to change
membership, call add_membership() / remove_membership() on the store.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

ADMIN_ROLE = "Admin"
USER_ROLE = "User"
SYSTEM_ROLES = frozenset({ADMIN_ROLE, USER_ROLE})
DEFAULT_ROLE = USER_ROLE

USERNAME_MAX_LEN = 50
EMAIL_MAX_LEN = 100
ROLE_NAME_MAX_LEN = 50
ROLE_DESCRIPTION_MAX_LEN = 200


@dataclass
class User:
    """An identity that can log in.

    password_hash is the bcrypt modular-crypt string, never the plaintext.
    roles holds role names; order is not meaningful and duplicates never occur
    because the membership table has a composite primary key.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    password_hash: str
    id: str | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    last_login_at: str | None = None
    roles: list[str] = field(default_factory=list)

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles


@dataclass
class Role:
    """A named group of users. Admin and User are system roles and are seeded by the store."""

    name: str
    description: str | None = None
    id: str | None = None
    member_count: int = 0  # derived from the membership table on read

    @property
    def is_system_role(self) -> bool:
        return self.name in SYSTEM_ROLES


@dataclass(frozen=True)
class TokenClaims:
    """Decoded claims of a validated access token."""

    subject: str
    roles: tuple[str, ...]
    token_id: str
    issued_at: datetime
    expires_at: datetime
    issuer: str
    audience: str
    user_id: str | None = None  # uid claim; absent on tokens minted without an account


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedSession:
    """What register() and login() hand back to the caller."""

    user_id: str
    username: str
    token: str
    roles: list[str]
    expires_at: datetime
