"""
auth/guard.py -- Protected-role and last-admin rules.

Every role-mutating service call asks this module before writing. The checks
are pure functions over data the caller has already loaded (inside the same
transaction as the write), so they are trivially testable and hold no state.

Rules:
  - Admin and User are system roles: never renamed, re-described, or deleted.
  - A role with members cannot be deleted.
  - The last user holding Admin can neither lose Admin nor be deleted.
  - Granting a role the user already holds is a no-op, not an error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from auth.models import ADMIN_ROLE, SYSTEM_ROLES, Role, User
from auth.results import FailureKind, PolicyError, Result


def is_system_role(name: str) -> bool:
    return name in SYSTEM_ROLES


def check_delete_role(role: Role) -> Result[None]:
    """Refuse system roles first, then roles that still have members."""
    if role.is_system_role:
        return Result.fail(
            FailureKind.POLICY_VIOLATION,
            PolicyError.SYSTEM_ROLE,
            f"System role '{role.name}' cannot be deleted.",
        )
    if role.member_count > 0:
        return Result.fail(
            FailureKind.CONFLICT,
            PolicyError.ROLE_HAS_MEMBERS,
            f"Role '{role.name}' still has {role.member_count} member(s). Remove them first.",
        )
    return Result.success()


def can_delete_role(role: Role) -> bool:
    return check_delete_role(role).ok


def can_rename_or_describe(role: Role, new_name: str, name_owner: Role | None) -> Result[None]:
    """Check an update to a role's name or description.

    name_owner is whichever role currently holds new_name (None if free).
    Keeping the role's own name is not a collision.
    """
    if role.is_system_role:
        return Result.fail(
            FailureKind.POLICY_VIOLATION,
            PolicyError.SYSTEM_ROLE,
            f"System role '{role.name}' cannot be modified.",
        )
    if name_owner is not None and name_owner.id != role.id:
        return Result.fail(
            FailureKind.CONFLICT,
            PolicyError.DUPLICATE_ROLE_NAME,
            f"A role named '{new_name}' already exists.",
        )
    return Result.success()


def can_remove_role(user: User, role_name: str, admin_count: int) -> Result[None]:
    """Refuse to strip Admin from the only user who holds it.

    admin_count is the number of distinct users holding Admin, read in the
    same transaction as the removal.
    """
    if role_name == ADMIN_ROLE and admin_count == 1 and user.has_role(ADMIN_ROLE):
        return Result.fail(
            FailureKind.POLICY_VIOLATION,
            PolicyError.LAST_ADMIN,
            "Cannot remove the Admin role from the last administrator.",
        )
    return Result.success()


def can_assign_role(user: User, role: Role) -> bool:
    """False means the user already holds the role and there is nothing to write."""
    return not user.has_role(role.name)


def can_delete_user(user: User, admin_count: int) -> Result[None]:
    """Deleting the last Admin would leave the system without an administrator."""
    if user.has_role(ADMIN_ROLE) and admin_count <= 1:
        return Result.fail(
            FailureKind.POLICY_VIOLATION,
            PolicyError.LAST_ADMIN,
            "Cannot delete the last administrator.",
        )
    return Result.success()
