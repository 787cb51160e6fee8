"""
API request and response models for RoleGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Length limits here mirror auth/models.py so oversized input is rejected with a
422 before it reaches a service. Email format is checked by the service, which
applies the same rule to the CLI.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import (
    EMAIL_MAX_LEN,
    ROLE_DESCRIPTION_MAX_LEN,
    ROLE_NAME_MAX_LEN,
    USERNAME_MAX_LEN,
    IssuedSession,
    Role,
    User,
)

# bcrypt reads at most 72 bytes; the cap keeps inputs well clear of abuse.
PASSWORD_MAX_LEN = 128

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register and POST /api/v1/auth/setup."""

    username: str = Field(min_length=1, max_length=USERNAME_MAX_LEN)
    email: str = Field(min_length=3, max_length=EMAIL_MAX_LEN)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=USERNAME_MAX_LEN)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LEN)


class TokenValidationRequest(BaseModel):
    token: str = Field(max_length=8192)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Both fields are replaced."""

    username: str = Field(min_length=1, max_length=USERNAME_MAX_LEN)
    email: str = Field(min_length=3, max_length=EMAIL_MAX_LEN)


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=ROLE_NAME_MAX_LEN)
    description: Optional[str] = Field(default=None, max_length=ROLE_DESCRIPTION_MAX_LEN)


class RoleUpdate(RoleCreate):
    pass


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Returned by register, login, and setup. The token is also set as a cookie on login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user_id: str
    username: str
    roles: list[str]

    @classmethod
    def from_session(cls, session: IssuedSession) -> "SessionResponse":
        return cls(
            access_token=session.token,
            expires_at=session.expires_at,
            user_id=session.user_id,
            username=session.username,
            roles=session.roles,
        )


class ValidateTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class UserResponse(BaseModel):
    """Public view of a user. password_hash is never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    created_at: str
    last_login_at: Optional[str]
    roles: list[str]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            created_at=user.created_at or "",
            last_login_at=user.last_login_at,
            roles=sorted(user.roles),
        )


class MeResponse(UserResponse):
    """GET /auth/me: the user record plus the role claims the current token carries."""

    token_roles: list[str]
    token_expires_at: datetime


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    is_system_role: bool
    member_count: int

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            is_system_role=role.is_system_role,
            member_count=role.member_count,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
