"""
auth/roles.py -- Role administration.

Only administrators reach these methods (the HTTP layer checks with
auth.policy.authorize). The system-role and non-empty-role rules are applied
by auth.guard inside the same transaction as the write.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.guard import can_rename_or_describe, check_delete_role
from auth.models import Role, User
from auth.results import FailureKind, PolicyError, Result
from auth.store import UserRoleStore
from auth.validators import validate_role

logger = logging.getLogger("rolegate.auth")


def _role_not_found(what: str) -> Result:
    return Result.fail(FailureKind.NOT_FOUND, PolicyError.ROLE_NOT_FOUND, f"Role {what} not found.")


def _duplicate_name(name: str) -> Result:
    return Result.fail(FailureKind.CONFLICT, PolicyError.DUPLICATE_ROLE_NAME, f"A role named '{name}' already exists.")


class RoleService:
    def __init__(self, store: UserRoleStore) -> None:
        self._store = store

    def list_roles(self) -> list[Role]:
        return self._store.list_roles()

    def get_role(self, role_id: str) -> Result[Role]:
        role = self._store.find_role_by_id(role_id)
        return Result.success(role) if role is not None else _role_not_found(repr(role_id))

    def get_role_by_name(self, name: str) -> Result[Role]:
        role = self._store.find_role_by_name(name)
        return Result.success(role) if role is not None else _role_not_found(repr(name))

    def users_in_role(self, role_name: str) -> Result[list[User]]:
        if self._store.find_role_by_name(role_name) is None:
            return _role_not_found(repr(role_name))
        return Result.success(self._store.users_in_role(role_name))

    def create_role(self, name: str, description: str | None = None) -> Result[Role]:
        invalid = validate_role(name, description)
        if not invalid.ok:
            return Result.from_failure(invalid.failure)
        try:
            with self._store.transaction():
                if self._store.find_role_by_name(name) is not None:
                    return _duplicate_name(name)
                role_id = self._store.create_role(Role(name=name, description=description))
        except IntegrityError:
            return _duplicate_name(name)
        logger.info("Created role %r", name)
        return self.get_role(role_id)

    def update_role(self, role_id: str, name: str, description: str | None = None) -> Result[Role]:
        """Rename and/or re-describe a role. System roles are refused outright."""
        invalid = validate_role(name, description)
        if not invalid.ok:
            return Result.from_failure(invalid.failure)
        try:
            with self._store.transaction():
                role = self._store.find_role_by_id(role_id)
                if role is None:
                    return _role_not_found(repr(role_id))
                allowed = can_rename_or_describe(role, name, self._store.find_role_by_name(name))
                if not allowed.ok:
                    return Result.from_failure(allowed.failure)
                self._store.update_role(role_id, name=name, description=description)
        except IntegrityError:
            return _duplicate_name(name)
        logger.info("Updated role %s (now %r)", role_id, name)
        return self.get_role(role_id)

    def delete_role(self, role_id: str) -> Result[None]:
        """Delete a non-system role that has no members."""
        with self._store.transaction():
            self._store.lock_role(role_id)
            role = self._store.find_role_by_id(role_id)
            if role is None:
                return _role_not_found(repr(role_id))
            allowed = check_delete_role(role)
            if not allowed.ok:
                return allowed
            self._store.delete_role(role_id)
        logger.info("Deleted role %r", role.name)
        return Result.success()
