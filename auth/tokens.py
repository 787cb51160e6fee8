"""
auth/tokens.py -- JWT issuance and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured signing
       key and carry the username (sub), the user's id (uid), a unique id
       (jti), the role names (roles), issued-at, expiry, issuer, and audience.
       The lifetime is fixed at 24 hours; there is no revocation list, so
       expiry is the only bound on a leaked token.

  Subject binding: usernames can change and be re-registered, so sub alone
       does not identify an account. uid does; the HTTP layer resolves the
       principal by uid and requires the stored username to still equal sub.

  Expiry precision: exp is whole seconds. The expires_at reported to callers
       is derived from that integer so it never outlives the token.

  Validation order: structure -> signature -> expiry -> issuer -> audience.
       python-jose's own claim checks run aud before iss and apply them only
       after its exp check, so they are switched off and the checks below run
       in a fixed order instead. The first failure wins and is reported as a
       TokenError code; nothing here raises on bad input.

  Clock skew: none. A token is expired from the second its exp is reached.

  Both functions take the key, issuer, and audience as arguments rather than
  reading Settings, so they stay pure and safe to call from any thread.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import ConfigurationError
from auth.models import IssuedToken, TokenClaims
from auth.results import FailureKind, Result, TokenError

ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(hours=24)

# Checks done by hand below, in the documented order.
_DECODE_OPTIONS = {
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_aud": False,
    "verify_iss": False,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def issue_token(
    subject: str,
    roles: Iterable[str],
    signing_key: str,
    issuer: str,
    audience: str,
    *,
    user_id: str | None = None,
    now: datetime | None = None,
) -> IssuedToken:
    """Encode a signed JWT asserting identity and role membership.

    Args:
        subject:     Username, stored as the sub claim.
        roles:       Role names; each distinct name appears once in the roles claim.
        signing_key: HMAC secret. Raises ConfigurationError if empty.
        issuer:      Written to iss; validate_token() requires the same value.
        audience:    Written to aud; validate_token() requires the same value.
        user_id:     Stored as the uid claim. Tokens without it cannot
                     authenticate HTTP requests.
        now:         Issuance time. Defaults to the current UTC time.
    """
    if not signing_key:
        raise ConfigurationError("JWT signing key is not configured.")
    iat = int((now or _utcnow()).timestamp())
    exp = iat + int(TOKEN_LIFETIME.total_seconds())
    token_id = str(uuid.uuid4())
    payload = {
        "sub": subject,
        "jti": token_id,
        "roles": list(dict.fromkeys(roles)),
        "iat": iat,
        "exp": exp,
        "iss": issuer,
        "aud": audience,
    }
    if user_id is not None:
        payload["uid"] = user_id
    token = jwt.encode(payload, signing_key, algorithm=ALGORITHM)
    return IssuedToken(token=token, token_id=token_id, expires_at=datetime.fromtimestamp(exp, tz=timezone.utc))


def _token_failure(code: TokenError, message: str) -> Result[TokenClaims]:
    return Result.fail(FailureKind.TOKEN, code, message)


def validate_token(
    token: str,
    signing_key: str,
    issuer: str,
    audience: str,
    *,
    now: datetime | None = None,
) -> Result[TokenClaims]:
    """Verify a token and return its claims, or the first TokenError found."""
    if not isinstance(token, str) or not token:
        return _token_failure(TokenError.MALFORMED, "Token is empty.")

    # Structure first so garbage is reported as malformed, not as a bad signature.
    try:
        jwt.get_unverified_claims(token)
    except JWTError:
        return _token_failure(TokenError.MALFORMED, "Token could not be decoded.")

    try:
        payload = jwt.decode(token, signing_key, algorithms=[ALGORITHM], options=_DECODE_OPTIONS)
    except JWTClaimsError:
        # Signature was fine; sub or jti had the wrong type.
        return _token_failure(TokenError.MALFORMED, "Token claims are invalid.")
    except JWTError:
        return _token_failure(TokenError.BAD_SIGNATURE, "Token signature is invalid.")

    exp = payload.get("exp")
    iat = payload.get("iat", exp)
    subject = payload.get("sub")
    roles = payload.get("roles", [])
    user_id = payload.get("uid")
    if (
        not isinstance(exp, (int, float))
        or not isinstance(iat, (int, float))
        or not isinstance(subject, str)
        or not subject
        or not isinstance(roles, list)
        or not all(isinstance(r, str) for r in roles)
        or (user_id is not None and not isinstance(user_id, str))
    ):
        return _token_failure(TokenError.MALFORMED, "Token is missing required claims.")

    current = now or _utcnow()
    if current.timestamp() >= exp:
        return _token_failure(TokenError.EXPIRED, "Token has expired.")

    if payload.get("iss") != issuer:
        return _token_failure(TokenError.ISSUER_MISMATCH, "Token issuer is not accepted.")

    token_aud = payload.get("aud")
    if isinstance(token_aud, str):
        audiences = [token_aud]
    elif isinstance(token_aud, list):
        audiences = token_aud
    else:
        audiences = []
    if audience not in audiences:
        return _token_failure(TokenError.AUDIENCE_MISMATCH, "Token audience is not accepted.")

    return Result.success(
        TokenClaims(
            subject=subject,
            roles=tuple(roles),
            token_id=str(payload.get("jti", "")),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
            issuer=issuer,
            audience=audience,
            user_id=user_id,
        )
    )
