"""
auth/service.py -- Registration, login, and token checks.

AuthService is the entry point the HTTP layer and the CLI use to turn
credentials into tokens. Every method returns a Result; none raise for bad
input, duplicates, or wrong passwords.

Security design decisions:
  [C1] Login timing equalization. bcrypt runs whether or not the username
       exists (against a dummy hash when it does not), so response time does
       not reveal which usernames are registered.

  [C2] No username enumeration. An unknown username and a wrong password both
       fail with code invalid_credentials. The real cause is kept in
       Failure.reason and logged; it is never sent to the client.

  [M1] Registration race. The uniqueness checks, the insert, and the default
       role grant share one store transaction. A concurrent writer in another
       process that slips past the checks trips the UNIQUE constraint, and the
       IntegrityError is reported as the matching duplicate conflict.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import ConfigurationError
from auth.models import ADMIN_ROLE, DEFAULT_ROLE, IssuedSession, TokenClaims, User
from auth.passwords import dummy_hash, hash_password, verify_password
from auth.results import AuthError, FailureKind, Result
from auth.store import UserRoleStore
from auth.tokens import issue_token, validate_token
from auth.validators import first_failure, validate_email, validate_password, validate_username
from core.config import Settings

logger = logging.getLogger("rolegate.auth")

_PASSWORD_MISMATCH = "password_mismatch"


class AuthService:
    """Credential verification and token issuance on top of a UserRoleStore.

    Usage:
        service = AuthService.from_settings(store, get_settings())
        result = service.register("alice", "alice@x.com", "pw1")
        if result.ok:
            token = result.value.token
    """

    def __init__(
        self,
        store: UserRoleStore,
        signing_key: str,
        issuer: str,
        audience: str,
        bcrypt_rounds: int | None = None,
    ) -> None:
        self._store = store
        self._signing_key = signing_key
        self._issuer = issuer
        self._audience = audience
        self._rounds = bcrypt_rounds

    @classmethod
    def from_settings(cls, store: UserRoleStore, settings: Settings) -> AuthService:
        return cls(
            store,
            signing_key=settings.jwt_signing_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            bcrypt_rounds=settings.bcrypt_rounds,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> Result[IssuedSession]:
        """Create a user holding the default role and return a session token."""
        return self._create_account(username, email, password, roles=[DEFAULT_ROLE])

    def bootstrap_admin(self, username: str, email: str, password: str) -> Result[IssuedSession]:
        """Create the first administrator. Refused once any Admin exists.

        The admin count is read with the Admin role row locked, inside the
        same transaction as the insert, so two concurrent setup requests
        cannot both succeed.
        """
        return self._create_account(username, email, password, roles=[DEFAULT_ROLE, ADMIN_ROLE], first_admin=True)

    def setup_required(self) -> bool:
        """True until at least one user holds Admin."""
        return self._store.count_distinct_users_with_role(ADMIN_ROLE) == 0

    def _create_account(
        self,
        username: str,
        email: str,
        password: str,
        roles: list[str],
        first_admin: bool = False,
    ) -> Result[IssuedSession]:
        invalid = first_failure(validate_username(username), validate_email(email), validate_password(password))
        if not invalid.ok:
            return Result.from_failure(invalid.failure)

        # Hash before taking the write lock; bcrypt is the slow part.
        password_hash = hash_password(password, rounds=self._rounds)

        try:
            with self._store.transaction():
                if first_admin:
                    admin = self._require_role(ADMIN_ROLE)
                    self._store.lock_role(admin.id)
                    if self._store.count_distinct_users_with_role(ADMIN_ROLE) > 0:
                        return Result.fail(
                            FailureKind.CONFLICT,
                            AuthError.SETUP_COMPLETE,
                            "Setup already complete. Please log in.",
                        )
                duplicate = self._check_unique(username, email)
                if not duplicate.ok:
                    return Result.from_failure(duplicate.failure)
                user_id = self._store.create_user(User(username=username, email=email, password_hash=password_hash))
                for role_name in roles:
                    self._store.add_membership(user_id, self._require_role(role_name).id)
        except IntegrityError:
            logger.info("Concurrent registration collided for username=%r", username)
            duplicate = self._check_unique(username, email)
            if not duplicate.ok:
                return Result.from_failure(duplicate.failure)
            raise

        logger.info("Registered user %r with roles %s", username, roles)
        return Result.success(self._open_session(user_id, username, roles))

    def _check_unique(self, username: str, email: str) -> Result[None]:
        if self._store.find_user_by_username(username) is not None:
            return Result.fail(FailureKind.CONFLICT, AuthError.DUPLICATE_USERNAME, "Username already exists.")
        if self._store.find_user_by_email(email) is not None:
            return Result.fail(FailureKind.CONFLICT, AuthError.DUPLICATE_EMAIL, "Email already exists.")
        return Result.success()

    def _require_role(self, name: str):
        role = self._store.find_role_by_name(name)
        if role is None:
            # System roles are seeded when the store opens; a missing one means a damaged database.
            raise ConfigurationError(f"System role '{name}' is missing from the database.")
        return role

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> Result[IssuedSession]:
        """Verify credentials, stamp last_login_at, and return a session token [C1][C2]."""
        user = self._store.find_user_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            verify_password(password, dummy_hash(self._rounds))
            return self._login_failed(username, AuthError.USER_NOT_FOUND.value)
        if not verify_password(password, user.password_hash):
            return self._login_failed(username, _PASSWORD_MISMATCH)

        self._store.update_last_login(user.id)
        logger.info("Login succeeded for %r", username)
        return Result.success(self._open_session(user.id, user.username, user.roles))

    def _login_failed(self, username: str, reason: str) -> Result[IssuedSession]:
        logger.info("Login failed for %r: %s", username, reason)
        return Result.fail(
            FailureKind.AUTHENTICATION,
            AuthError.INVALID_CREDENTIALS,
            "Invalid username or password.",
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _open_session(self, user_id: str, username: str, roles: list[str]) -> IssuedSession:
        issued = issue_token(
            username, roles, self._signing_key, self._issuer, self._audience, user_id=user_id
        )
        return IssuedSession(
            user_id=user_id,
            username=username,
            token=issued.token,
            roles=list(roles),
            expires_at=issued.expires_at,
        )

    def decode_token(self, token: str) -> Result[TokenClaims]:
        """Validate a token against the configured key, issuer, and audience."""
        return validate_token(token, self._signing_key, self._issuer, self._audience)

    def validate_token(self, token: str) -> bool:
        """True if the token is currently valid. The failure kind is discarded."""
        return self.decode_token(token).ok
