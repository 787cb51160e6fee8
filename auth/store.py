"""
auth/store.py -- SQLAlchemy Core persistence layer for users, roles, and membership.

Pattern: Repository + Data Mapper. UserRoleStore is the repository;
_row_to_user / _row_to_role are the mappers. Services never touch SQL directly.

Membership is an explicit user_roles table with a composite primary key, so a
user can hold a role at most once and "a user's roles" and "a role's members"
are two queries over the same rows rather than two collections to keep in sync.

Transactions:
  Each public method runs in its own connection unless the caller has opened
  store.transaction(). Inside a transaction every method on the same thread
  reuses the transaction's connection, so a check-then-write sequence commits
  or rolls back as one unit. transaction() also holds a store-wide write lock:
  two registrations in the same process cannot interleave their uniqueness
  check and insert. UNIQUE constraints on username, email, and role name are
  the final backstop across processes -- callers catch IntegrityError.

  lock_role() issues SELECT ... FOR UPDATE on a role row. On PostgreSQL this
  serializes last-admin checks across processes; SQLite ignores FOR UPDATE
  and relies on its single-writer lock.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import (
    ADMIN_ROLE,
    EMAIL_MAX_LEN,
    ROLE_DESCRIPTION_MAX_LEN,
    ROLE_NAME_MAX_LEN,
    USER_ROLE,
    USERNAME_MAX_LEN,
    Role,
    User,
)

logger = logging.getLogger("rolegate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("username", String(USERNAME_MAX_LEN), nullable=False, unique=True),
    Column("email", String(EMAIL_MAX_LEN), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(ROLE_NAME_MAX_LEN), nullable=False, unique=True),
    Column("description", String(ROLE_DESCRIPTION_MAX_LEN)),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", String(32), ForeignKey("roles.id"), nullable=False),
    PrimaryKeyConstraint("user_id", "role_id", name="pk_user_roles"),
)

_SYSTEM_ROLE_DESCRIPTIONS = {
    ADMIN_ROLE: "Administrators: manage users and roles",
    USER_ROLE: "Default role for registered users",
}

_USER_FIELDS = frozenset({"username", "email", "password_hash", "last_login_at"})
_ROLE_FIELDS = frozenset({"name", "description"})


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON makes deleting a user cascade
    to its memberships and stops a role with members from being deleted.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserRoleStore:
    """Repository for User and Role entities and their membership.

    Usage:
        store = UserRoleStore("sqlite:///rolegate.db")
        with store.transaction():
            uid = store.create_user(User(username="alice", email="a@x.com", password_hash=h))
            store.add_membership(uid, store.find_role_by_name("User").id)
        user = store.find_user_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        self._local = threading.local()
        self._write_lock = threading.RLock()
        metadata.create_all(self.engine)
        self._ensure_system_roles()

    def _ensure_system_roles(self) -> None:
        """Seed the Admin and User roles if they are not present.

        Idempotent -- safe to call on every startup. A concurrent process
        seeding the same role surfaces as IntegrityError, which means the row
        now exists and is exactly what this method wanted.
        """
        for name, description in _SYSTEM_ROLE_DESCRIPTIONS.items():
            if self.find_role_by_name(name) is not None:
                continue
            try:
                self.create_role(Role(name=name, description=description))
                logger.info("Seeded system role %s", name)
            except IntegrityError:
                logger.info("System role %s seeded concurrently", name)

    # ------------------------------------------------------------------
    # Connections and transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run the enclosed store calls as one atomic unit.

        Re-entrant: a nested transaction() on the same thread joins the outer
        one. Any exception rolls the whole unit back and propagates.
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return
        with self._write_lock:
            with self.engine.begin() as conn:
                self._local.conn = conn
                try:
                    yield conn
                finally:
                    self._local.conn = None

    @contextmanager
    def _read(self) -> Iterator[Connection]:
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return
        with self.engine.connect() as conn:
            yield conn

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def _find_user(self, where) -> User | None:
        with self._read() as conn:
            row = conn.execute(_users.select().where(where)).fetchone()
            if row is None:
                return None
            roles = _role_names_for(conn, [row.id]).get(row.id, [])
        return _row_to_user(row, roles)

    def find_user_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive), with roles."""
        return self._find_user(_users.c.username == username)

    def find_user_by_id(self, user_id: str) -> User | None:
        return self._find_user(_users.c.id == user_id)

    def find_user_by_email(self, email: str) -> User | None:
        return self._find_user(_users.c.email == email)

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self._read() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
            roles = _role_names_for(conn, [r.id for r in rows])
        return [_row_to_user(r, roles.get(r.id, [])) for r in rows]

    def create_user(self, user: User) -> str:
        """Insert a new user and return its id.

        Membership is not written here; call add_membership() in the same
        transaction. Raises IntegrityError if the username or email is taken.
        """
        user_id = _new_id()
        with self.transaction() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    email=user.email,
                    password_hash=user.password_hash,
                    created_at=_now_iso(),
                    last_login_at=user.last_login_at,
                )
            )
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: username, email, password_hash, last_login_at.
        Unknown fields raise ValueError rather than being silently ignored.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return self.find_user_by_id(user_id) is not None
        with self.transaction() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC time as last_login_at after a successful login."""
        self.update_user(user_id, last_login_at=_now_iso())

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and its memberships. Returns False if not found.

        Callers must check the last-admin invariant first; the store does not.
        """
        with self.transaction() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def _find_role(self, where) -> Role | None:
        with self._read() as conn:
            row = conn.execute(_role_select().where(where)).fetchone()
        return _row_to_role(row) if row is not None else None

    def find_role_by_name(self, name: str) -> Role | None:
        return self._find_role(_roles.c.name == name)

    def find_role_by_id(self, role_id: str) -> Role | None:
        return self._find_role(_roles.c.id == role_id)

    def list_roles(self) -> list[Role]:
        """Return all roles ordered by name, with member counts."""
        with self._read() as conn:
            rows = conn.execute(_role_select().order_by(_roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def create_role(self, role: Role) -> str:
        """Insert a role and return its id. Raises IntegrityError on a duplicate name."""
        role_id = _new_id()
        with self.transaction() as conn:
            conn.execute(_roles.insert().values(id=role_id, name=role.name, description=role.description))
        return role_id

    def update_role(self, role_id: str, **fields) -> bool:
        """Update name and/or description. Returns False if role_id was not found.

        System-role protection is the guard's job, not the store's.
        """
        unknown = set(fields) - _ROLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        if not fields:
            return self.find_role_by_id(role_id) is not None
        with self.transaction() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
        return result.rowcount > 0

    def delete_role(self, role_id: str) -> bool:
        """Delete a role. Returns False if not found.

        Raises IntegrityError (SQLite with foreign keys on, PostgreSQL) if the
        role still has members; callers check with the guard first.
        """
        with self.transaction() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
        return result.rowcount > 0

    def lock_role(self, role_id: str) -> None:
        """Take a row lock on a role for the rest of the current transaction."""
        with self.transaction() as conn:
            conn.execute(select(_roles.c.id).where(_roles.c.id == role_id).with_for_update())

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_membership(self, user_id: str, role_id: str) -> bool:
        """Grant a role. Returns False (and writes nothing) if already held."""
        with self.transaction() as conn:
            exists = conn.execute(
                select(_user_roles.c.user_id).where(
                    (_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id)
                )
            ).fetchone()
            if exists is not None:
                return False
            conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))
        return True

    def remove_membership(self, user_id: str, role_id: str) -> bool:
        """Revoke a role. Returns False if the user did not hold it."""
        with self.transaction() as conn:
            result = conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            )
        return result.rowcount > 0

    def count_distinct_users_with_role(self, role_name: str) -> int:
        """Return how many distinct users hold the named role.

        Used by the last-admin guard. Call inside the same transaction as the
        removal it protects.
        """
        stmt = (
            select(func.count(func.distinct(_user_roles.c.user_id)))
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(_roles.c.name == role_name)
        )
        with self._read() as conn:
            return conn.execute(stmt).scalar() or 0

    def users_in_role(self, role_name: str) -> list[User]:
        """Return the members of a role ordered by username."""
        stmt = (
            _users.select()
            .join(_user_roles, _user_roles.c.user_id == _users.c.id)
            .join(_roles, _roles.c.id == _user_roles.c.role_id)
            .where(_roles.c.name == role_name)
            .order_by(_users.c.username)
        )
        with self._read() as conn:
            rows = conn.execute(stmt).fetchall()
            roles = _role_names_for(conn, [r.id for r in rows])
        return [_row_to_user(r, roles.get(r.id, [])) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------


def _role_select():
    member_count = (
        select(func.count(_user_roles.c.user_id))
        .where(_user_roles.c.role_id == _roles.c.id)
        .correlate(_roles)
        .scalar_subquery()
        .label("member_count")
    )
    return select(_roles, member_count)


def _role_names_for(conn: Connection, user_ids: list[str]) -> dict[str, list[str]]:
    """Return {user_id: [role names]} for the given users in one query."""
    if not user_ids:
        return {}
    rows = conn.execute(
        select(_user_roles.c.user_id, _roles.c.name)
        .join(_roles, _roles.c.id == _user_roles.c.role_id)
        .where(_user_roles.c.user_id.in_(user_ids))
        .order_by(_roles.c.name)
    ).fetchall()
    result: dict[str, list[str]] = {}
    for user_id, name in rows:
        result.setdefault(user_id, []).append(name)
    return result


def _row_to_user(row, roles: list[str]) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        created_at=row.created_at,
        last_login_at=row.last_login_at,
        roles=list(roles),
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        member_count=row.member_count or 0,
    )
