"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection feeds bcrypt a password longer than 72 bytes, which bcrypt 4.x
rejects. The hash string bcrypt produces ($2b$<cost>$<salt><digest>) carries
the algorithm, cost, and salt, so verify_password() needs nothing else.

bcrypt only reads the first 72 bytes of its input and newer releases raise on
longer input. Both functions truncate to that limit so hashing and
verification always see the same bytes.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

from auth.errors import InvalidInputError

DEFAULT_ROUNDS = 12
_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the plaintext password.

    Raises InvalidInputError for an empty password; callers validate user
    input before reaching this point, so an empty value is a programming error.
    """
    if not plain:
        raise InvalidInputError("Cannot hash an empty password.")
    salt = bcrypt.gensalt(rounds=rounds or DEFAULT_ROUNDS)
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the hash. Never raises."""
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=8)
def dummy_hash(rounds: int | None = None) -> str:
    """Hash used to equalize login timing when the username does not exist [C1].

    Cached per cost so only the first unknown-user login pays to create it.
    """
    return hash_password("rolegate_timing_dummy", rounds=rounds)
