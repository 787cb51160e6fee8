"""Unit tests for auth/store.py -- UserRoleStore persistence.

Covers:
- System roles are seeded once, even when the store is reopened
- UNIQUE constraints on username and email surface as IntegrityError
- A membership is stored at most once
- transaction() rolls back everything on error and nests on one thread
- update_user() rejects unknown fields
- ping() reports database reachability
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserRoleStore


def _user(name: str, email: str | None = None) -> User:
    return User(username=name, email=email or f"{name}@x.com", password_hash="$2b$04$hash")


def test_system_roles_seeded_once(tmp_path):
    url = f"sqlite:///{tmp_path / 'seed.db'}"
    UserRoleStore(url).close()
    reopened = UserRoleStore(url)
    assert sorted(r.name for r in reopened.list_roles()) == ["Admin", "User"]
    reopened.close()


class TestUsers:
    def test_create_and_find(self, store):
        uid = store.create_user(_user("alice"))
        found = store.find_user_by_id(uid)
        assert found.username == "alice"
        assert found.created_at
        assert found.roles == []
        assert store.find_user_by_email("alice@x.com").id == uid

    def test_duplicate_username_raises(self, store):
        store.create_user(_user("alice"))
        with pytest.raises(IntegrityError):
            store.create_user(_user("alice", "other@x.com"))

    def test_duplicate_email_raises(self, store):
        store.create_user(_user("alice"))
        with pytest.raises(IntegrityError):
            store.create_user(_user("bob", "alice@x.com"))

    def test_update_unknown_field_raises(self, store):
        uid = store.create_user(_user("alice"))
        with pytest.raises(ValueError):
            store.update_user(uid, role="Admin")

    def test_update_missing_user_returns_false(self, store):
        assert store.update_user("missing", email="x@x.com") is False

    def test_delete_user_removes_memberships(self, store):
        uid = store.create_user(_user("alice"))
        store.add_membership(uid, store.find_role_by_name("User").id)
        assert store.delete_user(uid) is True
        assert store.count_distinct_users_with_role("User") == 0
        assert store.delete_user(uid) is False


class TestMembership:
    def test_membership_is_a_set(self, store):
        uid = store.create_user(_user("alice"))
        role_id = store.find_role_by_name("User").id
        assert store.add_membership(uid, role_id) is True
        assert store.add_membership(uid, role_id) is False
        assert store.find_user_by_id(uid).roles == ["User"]
        assert store.find_role_by_id(role_id).member_count == 1

    def test_remove_membership(self, store):
        uid = store.create_user(_user("alice"))
        role_id = store.find_role_by_name("User").id
        store.add_membership(uid, role_id)
        assert store.remove_membership(uid, role_id) is True
        assert store.remove_membership(uid, role_id) is False

    def test_count_distinct_users_with_role(self, store):
        admin_id = store.find_role_by_name("Admin").id
        for name in ("a", "b"):
            store.add_membership(store.create_user(_user(name)), admin_id)
        assert store.count_distinct_users_with_role("Admin") == 2
        assert store.count_distinct_users_with_role("Ghost") == 0

    def test_role_with_members_cannot_be_deleted_at_db_level(self, store):
        role_id = store.create_role(Role(name="Editor"))
        store.add_membership(store.create_user(_user("alice")), role_id)
        with pytest.raises(IntegrityError):
            store.delete_role(role_id)


class TestTransactions:
    def test_error_rolls_back_whole_unit(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                uid = store.create_user(_user("alice"))
                store.add_membership(uid, store.find_role_by_name("User").id)
                raise RuntimeError("boom")
        assert store.find_user_by_username("alice") is None
        assert store.count_distinct_users_with_role("User") == 0

    def test_nested_transaction_joins_outer(self, store):
        with store.transaction() as outer:
            with store.transaction() as inner:
                assert inner is outer
            store.create_user(_user("alice"))
        assert store.find_user_by_username("alice") is not None

    def test_reads_inside_transaction_see_uncommitted_writes(self, store):
        with store.transaction():
            store.create_user(_user("alice"))
            assert store.find_user_by_username("alice") is not None


def test_ping(store):
    assert store.ping() is True
