"""
tests/test_role_service.py -- RoleService administration.

Covers:
  - Admin and User are seeded and listed with member counts
  - create_role(): duplicate names conflict, oversized input is rejected
  - update_role(): system roles refused; rename collisions conflict
  - delete_role(): system roles refused, populated roles refused, empty roles deleted
  - users_in_role(): members ordered by username
"""

from __future__ import annotations

from auth.results import FailureKind, PolicyError


class TestSeededRoles:
    def test_system_roles_exist_on_open(self, role_service):
        roles = {r.name: r for r in role_service.list_roles()}
        assert set(roles) == {"Admin", "User"}
        assert all(r.is_system_role for r in roles.values())

    def test_member_count_tracks_membership(self, role_service, auth_service):
        auth_service.register("alice", "alice@x.com", "pw1")
        auth_service.register("bob", "bob@x.com", "pw1")
        assert role_service.get_role_by_name("User").value.member_count == 2
        assert role_service.get_role_by_name("Admin").value.member_count == 0


class TestCreateRole:
    def test_create_and_fetch(self, role_service):
        created = role_service.create_role("Editor", "Edits things")
        assert created.ok
        assert created.value.is_system_role is False
        fetched = role_service.get_role(created.value.id)
        assert fetched.value.name == "Editor"
        assert fetched.value.description == "Edits things"

    def test_duplicate_name(self, role_service):
        role_service.create_role("Editor")
        result = role_service.create_role("Editor")
        assert result.failure.kind is FailureKind.CONFLICT
        assert result.failure.code == PolicyError.DUPLICATE_ROLE_NAME.value

    def test_cannot_create_system_role_name(self, role_service):
        assert role_service.create_role("Admin").failure.code == PolicyError.DUPLICATE_ROLE_NAME.value

    def test_oversized_fields_rejected(self, role_service):
        assert role_service.create_role("r" * 51).failure.kind is FailureKind.VALIDATION
        assert role_service.create_role("Editor", "d" * 201).failure.kind is FailureKind.VALIDATION
        assert role_service.create_role("").failure.kind is FailureKind.VALIDATION


class TestUpdateRole:
    def test_rename_custom_role(self, role_service):
        role_id = role_service.create_role("Editor").value.id
        result = role_service.update_role(role_id, "Writer", "Writes things")
        assert result.ok
        assert result.value.name == "Writer"
        assert not role_service.get_role_by_name("Editor").ok

    def test_system_role_cannot_be_renamed(self, role_service):
        admin = role_service.get_role_by_name("Admin").value
        result = role_service.update_role(admin.id, "Root")
        assert result.failure.kind is FailureKind.POLICY_VIOLATION
        assert result.failure.code == PolicyError.SYSTEM_ROLE.value
        assert role_service.get_role_by_name("Admin").ok

    def test_system_role_description_is_frozen_too(self, role_service):
        user_role = role_service.get_role_by_name("User").value
        result = role_service.update_role(user_role.id, "User", "changed")
        assert result.failure.code == PolicyError.SYSTEM_ROLE.value

    def test_rename_onto_existing_name_conflicts(self, role_service):
        role_service.create_role("Viewer")
        editor_id = role_service.create_role("Editor").value.id
        result = role_service.update_role(editor_id, "Viewer")
        assert result.failure.code == PolicyError.DUPLICATE_ROLE_NAME.value

    def test_unknown_role(self, role_service):
        assert role_service.update_role("missing", "X").failure.kind is FailureKind.NOT_FOUND


class TestDeleteRole:
    def test_system_role_cannot_be_deleted(self, role_service):
        admin = role_service.get_role_by_name("Admin").value
        result = role_service.delete_role(admin.id)
        assert result.failure.code == PolicyError.SYSTEM_ROLE.value

    def test_populated_system_role_reports_system_role(self, role_service, auth_service):
        auth_service.register("alice", "alice@x.com", "pw1")
        user_role = role_service.get_role_by_name("User").value
        assert role_service.delete_role(user_role.id).failure.code == PolicyError.SYSTEM_ROLE.value

    def test_role_with_members_cannot_be_deleted(self, role_service, user_service, auth_service, store):
        auth_service.register("alice", "alice@x.com", "pw1")
        editor_id = role_service.create_role("Editor").value.id
        user_service.assign_role(store.find_user_by_username("alice").id, "Editor")
        result = role_service.delete_role(editor_id)
        assert result.failure.kind is FailureKind.CONFLICT
        assert result.failure.code == PolicyError.ROLE_HAS_MEMBERS.value
        assert role_service.get_role(editor_id).ok

    def test_empty_role_deleted(self, role_service):
        editor_id = role_service.create_role("Editor").value.id
        assert role_service.delete_role(editor_id).ok
        assert not role_service.get_role(editor_id).ok

    def test_unknown_role(self, role_service):
        assert role_service.delete_role("missing").failure.code == PolicyError.ROLE_NOT_FOUND.value


def test_users_in_role(role_service, auth_service):
    auth_service.register("bob", "bob@x.com", "pw1")
    auth_service.register("alice", "alice@x.com", "pw1")
    result = role_service.users_in_role("User")
    assert [u.username for u in result.value] == ["alice", "bob"]
    assert role_service.users_in_role("Ghost").failure.kind is FailureKind.NOT_FOUND
