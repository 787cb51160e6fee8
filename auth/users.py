"""
auth/users.py -- User profile management and role assignment.

Callers are expected to have authorized the principal already (see
auth/policy.py); this module enforces data invariants only. Every mutation
that depends on a prior read (uniqueness, last-admin) does both inside one
store transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.guard import can_assign_role, can_delete_user, can_remove_role
from auth.models import ADMIN_ROLE, User
from auth.results import AuthError, FailureKind, PolicyError, Result
from auth.store import UserRoleStore
from auth.validators import first_failure, validate_email, validate_username

logger = logging.getLogger("rolegate.auth")


def _user_not_found() -> Result:
    return Result.fail(FailureKind.NOT_FOUND, AuthError.USER_NOT_FOUND, "User not found.")


def _role_not_found(role_name: str) -> Result:
    return Result.fail(FailureKind.NOT_FOUND, PolicyError.ROLE_NOT_FOUND, f"Role '{role_name}' not found.")


class UserService:
    def __init__(self, store: UserRoleStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self._store.list_users()

    def get_user(self, user_id: str) -> Result[User]:
        user = self._store.find_user_by_id(user_id)
        return Result.success(user) if user is not None else _user_not_found()

    def get_user_by_username(self, username: str) -> Result[User]:
        user = self._store.find_user_by_username(username)
        return Result.success(user) if user is not None else _user_not_found()

    def get_user_roles(self, user_id: str) -> Result[list[str]]:
        user = self._store.find_user_by_id(user_id)
        if user is None:
            return _user_not_found()
        return Result.success(sorted(user.roles))

    # ------------------------------------------------------------------
    # Profile updates
    # ------------------------------------------------------------------

    def update_user(self, user_id: str, username: str, email: str) -> Result[User]:
        """Change a user's username and email.

        A value another user already holds is a conflict; keeping your own
        current value is not.
        """
        invalid = first_failure(validate_username(username), validate_email(email))
        if not invalid.ok:
            return Result.from_failure(invalid.failure)

        try:
            with self._store.transaction():
                user = self._store.find_user_by_id(user_id)
                if user is None:
                    return _user_not_found()
                duplicate = self._check_unique_for(user_id, username, email)
                if not duplicate.ok:
                    return Result.from_failure(duplicate.failure)
                self._store.update_user(user_id, username=username, email=email)
        except IntegrityError:
            logger.info("Concurrent profile update collided for user %s", user_id)
            duplicate = self._check_unique_for(user_id, username, email)
            if not duplicate.ok:
                return Result.from_failure(duplicate.failure)
            raise

        return self.get_user(user_id)

    def _check_unique_for(self, user_id: str, username: str, email: str) -> Result[None]:
        """Conflict if another user holds username or email; username is checked first."""
        owner = self._store.find_user_by_username(username)
        if owner is not None and owner.id != user_id:
            return Result.fail(FailureKind.CONFLICT, AuthError.DUPLICATE_USERNAME, "Username already exists.")
        owner = self._store.find_user_by_email(email)
        if owner is not None and owner.id != user_id:
            return Result.fail(FailureKind.CONFLICT, AuthError.DUPLICATE_EMAIL, "Email already exists.")
        return Result.success()

    def delete_user(self, user_id: str) -> Result[None]:
        """Delete a user and their memberships. The last Admin cannot be deleted."""
        with self._store.transaction():
            user = self._store.find_user_by_id(user_id)
            if user is None:
                return _user_not_found()
            if user.has_role(ADMIN_ROLE):
                self._store.lock_role(self._store.find_role_by_name(ADMIN_ROLE).id)
            allowed = can_delete_user(user, self._store.count_distinct_users_with_role(ADMIN_ROLE))
            if not allowed.ok:
                return allowed
            self._store.delete_user(user_id)
        logger.info("Deleted user %r", user.username)
        return Result.success()

    # ------------------------------------------------------------------
    # Role membership
    # ------------------------------------------------------------------

    def assign_role(self, user_id: str, role_name: str) -> Result[None]:
        """Grant a role. Granting a role the user already holds succeeds without writing."""
        with self._store.transaction():
            user = self._store.find_user_by_id(user_id)
            if user is None:
                return _user_not_found()
            role = self._store.find_role_by_name(role_name)
            if role is None:
                return _role_not_found(role_name)
            if not can_assign_role(user, role):
                return Result.success()
            self._store.add_membership(user_id, role.id)
        logger.info("Granted role %r to %r", role_name, user.username)
        return Result.success()

    def remove_role(self, user_id: str, role_name: str) -> Result[None]:
        """Revoke a role, refusing to strip Admin from the last administrator.

        The Admin role row is locked before counting so two concurrent
        removals cannot both see two admins and leave zero.
        """
        with self._store.transaction():
            user = self._store.find_user_by_id(user_id)
            if user is None:
                return _user_not_found()
            role = self._store.find_role_by_name(role_name)
            if role is None:
                return _role_not_found(role_name)
            if not user.has_role(role_name):
                return Result.fail(
                    FailureKind.NOT_FOUND,
                    PolicyError.ROLE_NOT_HELD,
                    f"User does not hold role '{role_name}'.",
                )
            self._store.lock_role(role.id)
            allowed = can_remove_role(user, role_name, self._store.count_distinct_users_with_role(ADMIN_ROLE))
            if not allowed.ok:
                return allowed
            self._store.remove_membership(user_id, role.id)
        logger.info("Revoked role %r from %r", role_name, user.username)
        return Result.success()
