"""
tests/test_user_service.py -- UserService profile and membership operations.

Covers:
  - get / list / roles lookups and NOT_FOUND for unknown ids
  - update_user(): uniqueness against other users, keeping own values is fine
  - assign_role(): idempotent; unknown user or role is NOT_FOUND
  - remove_role(): last-admin protection, role_not_held
  - delete_user(): memberships go with the user; last Admin is refused
  - Concurrent Admin removals never leave zero administrators
"""

from __future__ import annotations

import threading

import pytest

from auth.results import AuthError, FailureKind, PolicyError, Result


@pytest.fixture
def alice(auth_service, store):
    auth_service.register("alice", "alice@x.com", "pw1")
    return store.find_user_by_username("alice")


@pytest.fixture
def root(auth_service, store):
    auth_service.bootstrap_admin("root", "root@x.com", "pw1")
    return store.find_user_by_username("root")


class TestReads:
    def test_get_user(self, user_service, alice):
        assert user_service.get_user(alice.id).value.username == "alice"

    def test_unknown_user_is_not_found(self, user_service):
        result = user_service.get_user("missing")
        assert result.failure.kind is FailureKind.NOT_FOUND
        assert result.failure.code == AuthError.USER_NOT_FOUND.value

    def test_get_user_by_username(self, user_service, alice):
        assert user_service.get_user_by_username("alice").value.id == alice.id
        assert not user_service.get_user_by_username("ALICE").ok

    def test_get_user_roles_sorted(self, user_service, root):
        assert user_service.get_user_roles(root.id).value == ["Admin", "User"]

    def test_list_users(self, user_service, alice, root):
        assert [u.username for u in user_service.list_users()] == ["alice", "root"]


class TestUpdateUser:
    def test_racing_email_collision_reports_duplicate_email(self, user_service, alice, root, monkeypatch):
        """A writer that wins between the check and the write surfaces as the right conflict code."""
        real_check = user_service._check_unique_for
        calls = []

        def check_misses_first_time(*args):
            calls.append(args)
            if len(calls) == 1:
                return Result.success()
            return real_check(*args)

        monkeypatch.setattr(user_service, "_check_unique_for", check_misses_first_time)
        result = user_service.update_user(alice.id, "alice", "root@x.com")

        assert len(calls) == 2
        assert result.failure.kind is FailureKind.CONFLICT
        assert result.failure.code == AuthError.DUPLICATE_EMAIL.value
        assert user_service.get_user(alice.id).value.email == "alice@x.com"

    def test_update_changes_username_and_email(self, user_service, alice):
        result = user_service.update_user(alice.id, "alice2", "alice2@x.com")
        assert result.ok
        assert result.value.username == "alice2"
        assert result.value.email == "alice2@x.com"

    def test_keeping_own_values_is_allowed(self, user_service, alice):
        assert user_service.update_user(alice.id, "alice", "alice@x.com").ok

    def test_taking_another_users_username_conflicts(self, user_service, alice, root):
        result = user_service.update_user(alice.id, "root", "alice@x.com")
        assert result.failure.kind is FailureKind.CONFLICT
        assert result.failure.code == AuthError.DUPLICATE_USERNAME.value

    def test_taking_another_users_email_conflicts(self, user_service, alice, root):
        result = user_service.update_user(alice.id, "alice", "root@x.com")
        assert result.failure.code == AuthError.DUPLICATE_EMAIL.value

    def test_invalid_email_rejected(self, user_service, alice):
        assert user_service.update_user(alice.id, "alice", "nope").failure.kind is FailureKind.VALIDATION


class TestAssignRole:
    def test_assign_adds_role(self, user_service, role_service, alice):
        role_service.create_role("Editor")
        assert user_service.assign_role(alice.id, "Editor").ok
        assert user_service.get_user_roles(alice.id).value == ["Editor", "User"]

    def test_assign_held_role_is_idempotent(self, user_service, alice):
        assert user_service.assign_role(alice.id, "User").ok
        assert user_service.get_user_roles(alice.id).value == ["User"]

    def test_unknown_role(self, user_service, alice):
        result = user_service.assign_role(alice.id, "Ghost")
        assert result.failure.kind is FailureKind.NOT_FOUND
        assert result.failure.code == PolicyError.ROLE_NOT_FOUND.value

    def test_unknown_user(self, user_service):
        assert user_service.assign_role("missing", "User").failure.code == AuthError.USER_NOT_FOUND.value


class TestRemoveRole:
    def test_cannot_remove_admin_from_last_admin(self, user_service, root):
        result = user_service.remove_role(root.id, "Admin")
        assert result.failure.kind is FailureKind.POLICY_VIOLATION
        assert result.failure.code == PolicyError.LAST_ADMIN.value
        assert "Admin" in user_service.get_user_roles(root.id).value

    def test_can_remove_admin_when_second_admin_exists(self, user_service, root, alice):
        user_service.assign_role(alice.id, "Admin")
        assert user_service.remove_role(root.id, "Admin").ok
        assert user_service.get_user_roles(root.id).value == ["User"]

    def test_role_not_held(self, user_service, alice):
        result = user_service.remove_role(alice.id, "Admin")
        assert result.failure.kind is FailureKind.NOT_FOUND
        assert result.failure.code == PolicyError.ROLE_NOT_HELD.value

    def test_removing_user_role_leaves_user_without_roles(self, user_service, alice):
        assert user_service.remove_role(alice.id, "User").ok
        assert user_service.get_user_roles(alice.id).value == []

    def test_concurrent_admin_removals_keep_one_admin(self, user_service, store, root, alice):
        """Two admins each try to drop Admin at once; at most one succeeds."""
        user_service.assign_role(alice.id, "Admin")
        barrier = threading.Barrier(2)
        results = []

        def worker(user_id: str) -> None:
            barrier.wait()
            results.append(user_service.remove_role(user_id, "Admin"))

        threads = [threading.Thread(target=worker, args=(uid,)) for uid in (root.id, alice.id)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.ok) == 1
        assert store.count_distinct_users_with_role("Admin") == 1


class TestDeleteUser:
    def test_delete_removes_user_and_memberships(self, user_service, role_service, alice):
        assert user_service.delete_user(alice.id).ok
        assert not user_service.get_user(alice.id).ok
        assert role_service.get_role_by_name("User").value.member_count == 0

    def test_cannot_delete_last_admin(self, user_service, root):
        result = user_service.delete_user(root.id)
        assert result.failure.code == PolicyError.LAST_ADMIN.value
        assert user_service.get_user(root.id).ok

    def test_delete_unknown_user(self, user_service):
        assert user_service.delete_user("missing").failure.kind is FailureKind.NOT_FOUND
