"""
api/routes/v1/users.py -- User management endpoints.

Routes:
  GET    /api/v1/users                             -- list users (admin)
  GET    /api/v1/users/username/{username}         -- look up by username (admin)
  GET    /api/v1/users/{user_id}                   -- one user (self or admin)
  PUT    /api/v1/users/{user_id}                   -- replace username/email (self or admin)
  DELETE /api/v1/users/{user_id}                   -- delete user (admin; never the last Admin)
  GET    /api/v1/users/{user_id}/roles             -- role names (self or admin)
  POST   /api/v1/users/{user_id}/roles/{role_name} -- grant role (admin; idempotent)
  DELETE /api/v1/users/{user_id}/roles/{role_name} -- revoke role (admin; never from the last Admin)

Authorization is decided by auth.policy through the require_* dependencies.
Data invariants (uniqueness, last admin) are enforced by UserService.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.errors import raise_for_failure
from api.models import UserResponse, UserUpdate
from auth.dependencies import Principal, require_admin, require_self_or_admin
from auth.users import UserService

router = APIRouter()


def _users(request: Request) -> UserService:
    return request.app.state.user_service


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, principal: Principal = Depends(require_admin)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _users(request).list_users()]


@router.get("/users/username/{username}", response_model=UserResponse)
def get_user_by_username(
    request: Request,
    username: str,
    principal: Principal = Depends(require_admin),
) -> UserResponse:
    result = _users(request).get_user_by_username(username)
    if not result.ok:
        raise_for_failure(result.failure)
    return UserResponse.from_user(result.value)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    principal: Principal = Depends(require_self_or_admin),
) -> UserResponse:
    result = _users(request).get_user(user_id)
    if not result.ok:
        raise_for_failure(result.failure)
    return UserResponse.from_user(result.value)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    principal: Principal = Depends(require_self_or_admin),
) -> UserResponse:
    """Replace a user's username and email.

    Renaming yourself invalidates the subject of your current token: log in
    again with the new username to keep using the API.
    """
    result = _users(request).update_user(user_id, body.username, body.email)
    if not result.ok:
        raise_for_failure(result.failure)
    return UserResponse.from_user(result.value)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: str, principal: Principal = Depends(require_admin)) -> Response:
    result = _users(request).delete_user(user_id)
    if not result.ok:
        raise_for_failure(result.failure)
    return Response(status_code=204)


@router.get("/users/{user_id}/roles", response_model=list[str])
def get_user_roles(
    request: Request,
    user_id: str,
    principal: Principal = Depends(require_self_or_admin),
) -> list[str]:
    result = _users(request).get_user_roles(user_id)
    if not result.ok:
        raise_for_failure(result.failure)
    return result.value


@router.post("/users/{user_id}/roles/{role_name}", status_code=204)
def assign_role(
    request: Request,
    user_id: str,
    role_name: str,
    principal: Principal = Depends(require_admin),
) -> Response:
    """Grant a role. Granting a role the user already holds is a no-op 204.

    The user's existing tokens keep their old role claims until they expire;
    the new role appears in tokens issued from the next login.
    """
    result = _users(request).assign_role(user_id, role_name)
    if not result.ok:
        raise_for_failure(result.failure)
    return Response(status_code=204)


@router.delete("/users/{user_id}/roles/{role_name}", status_code=204)
def remove_role(
    request: Request,
    user_id: str,
    role_name: str,
    principal: Principal = Depends(require_admin),
) -> Response:
    result = _users(request).remove_role(user_id, role_name)
    if not result.ok:
        raise_for_failure(result.failure)
    return Response(status_code=204)
