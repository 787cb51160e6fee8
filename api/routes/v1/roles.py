"""
api/routes/v1/roles.py -- Role administration endpoints. Every route requires Admin.

Routes:
  GET    /api/v1/roles                    -- list roles with member counts
  POST   /api/v1/roles                    -- create role
  GET    /api/v1/roles/name/{name}        -- look up by name
  GET    /api/v1/roles/{role_name}/users  -- members of a role
  GET    /api/v1/roles/{role_id}          -- one role
  PUT    /api/v1/roles/{role_id}          -- rename / re-describe (never a system role)
  DELETE /api/v1/roles/{role_id}          -- delete (never a system role, never with members)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.errors import raise_for_failure
from api.models import RoleCreate, RoleResponse, RoleUpdate, UserResponse
from auth.dependencies import require_admin
from auth.roles import RoleService

# Router-level dependency: the Admin gate applies to every route here.
router = APIRouter(dependencies=[Depends(require_admin)])


def _roles(request: Request) -> RoleService:
    return request.app.state.role_service


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(request: Request) -> list[RoleResponse]:
    return [RoleResponse.from_role(r) for r in _roles(request).list_roles()]


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(request: Request, body: RoleCreate) -> RoleResponse:
    result = _roles(request).create_role(body.name, body.description)
    if not result.ok:
        raise_for_failure(result.failure)
    return RoleResponse.from_role(result.value)


@router.get("/roles/name/{name}", response_model=RoleResponse)
def get_role_by_name(request: Request, name: str) -> RoleResponse:
    result = _roles(request).get_role_by_name(name)
    if not result.ok:
        raise_for_failure(result.failure)
    return RoleResponse.from_role(result.value)


@router.get("/roles/{role_name}/users", response_model=list[UserResponse])
def users_in_role(request: Request, role_name: str) -> list[UserResponse]:
    result = _roles(request).users_in_role(role_name)
    if not result.ok:
        raise_for_failure(result.failure)
    return [UserResponse.from_user(u) for u in result.value]


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(request: Request, role_id: str) -> RoleResponse:
    result = _roles(request).get_role(role_id)
    if not result.ok:
        raise_for_failure(result.failure)
    return RoleResponse.from_role(result.value)


@router.put("/roles/{role_id}", response_model=RoleResponse)
def update_role(request: Request, role_id: str, body: RoleUpdate) -> RoleResponse:
    result = _roles(request).update_role(role_id, body.name, body.description)
    if not result.ok:
        raise_for_failure(result.failure)
    return RoleResponse.from_role(result.value)


@router.delete("/roles/{role_id}", status_code=204)
def delete_role(request: Request, role_id: str) -> Response:
    result = _roles(request).delete_role(role_id)
    if not result.ok:
        raise_for_failure(result.failure)
    return Response(status_code=204)
