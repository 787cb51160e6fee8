"""
api/routes/v1/auth.py -- Registration, login, and token endpoints.

Routes:
  POST /api/v1/auth/register        -- create account with the User role; returns a token
  POST /api/v1/auth/login           -- password login; returns a token and sets the JWT cookie
  POST /api/v1/auth/logout          -- clears cookie; 200
  POST /api/v1/auth/validate-token  -- {"valid": bool} for any token (public)
  GET  /api/v1/auth/me              -- current user and token claims (requires auth)
  POST /api/v1/auth/setup           -- create the first Admin; 409 once one exists

Security:
  [H2] POST /login and POST /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- never inline the lookup.
  [C2] Unknown username and wrong password return the same 401 body.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_failure
from api.limiter import limiter, login_rate_limit
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    SessionResponse,
    TokenValidationRequest,
    ValidateTokenResponse,
)
from auth.dependencies import ACCESS_TOKEN_COOKIE, Principal, get_principal
from auth.models import IssuedSession
from auth.service import AuthService
from auth.tokens import TOKEN_LIFETIME
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:        public -- self-registration grants only the User role
# - POST /api/v1/auth/login:           public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:          public -- clearing a cookie needs no prior auth
# - POST /api/v1/auth/validate-token:  public -- answers only valid/invalid
# - GET  /api/v1/auth/me:              requires auth (get_principal)
# - POST /api/v1/auth/setup:           public -- refused once any Admin exists
router = APIRouter()


def _session_response(session: IssuedSession, status_code: int, set_cookie: bool = False) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse.from_session(session).model_dump(mode="json"),
    )
    if set_cookie:
        # httponly: JS cannot read it. samesite=lax: not sent on cross-site POST.
        resp.set_cookie(
            ACCESS_TOKEN_COOKIE,
            value=session.token,
            httponly=True,
            samesite="lax",
            secure=get_settings().secure_cookies,
            max_age=int(TOKEN_LIFETIME.total_seconds()),
        )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account holding the default User role and return a token."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.register(body.username, body.email, body.password)
    if not result.ok:
        raise_for_failure(result.failure)
    return _session_response(result.value, status_code=201)


@limiter.limit(login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a token and set the JWT cookie.

    Returns the same generic error for wrong username and wrong password
    ("invalid_credentials") so the response does not leak which usernames
    exist [C2]. The real cause is logged by AuthService.
    """
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.login(body.username, body.password)
    if not result.ok:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code=result.failure.code, message=result.failure.message)
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp
    return _session_response(result.value, status_code=200, set_cookie=True)


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(ACCESS_TOKEN_COOKIE)
    return resp


@router.post("/auth/validate-token", response_model=ValidateTokenResponse)
async def validate_token(request: Request, body: TokenValidationRequest) -> ValidateTokenResponse:
    """Report whether a token is currently valid. The reason for rejection is not disclosed."""
    auth_service: AuthService = request.app.state.auth_service
    return ValidateTokenResponse(valid=auth_service.validate_token(body.token))


@router.post("/auth/setup", response_model=SessionResponse, status_code=201)
def setup(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create the first administrator account.

    [M1] The Admin count is re-checked inside the creating transaction, so two
    concurrent setup requests cannot both succeed; the loser gets 409.
    """
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.bootstrap_admin(body.username, body.email, body.password)
    if not result.ok:
        raise_for_failure(result.failure)
    return _session_response(result.value, status_code=201)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_principal)) -> MeResponse:
    """Return the current user record and the claims of the presented token."""
    user = principal.user
    return MeResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        created_at=user.created_at or "",
        last_login_at=user.last_login_at,
        roles=sorted(user.roles),
        token_roles=list(principal.claims.roles),
        token_expires_at=principal.claims.expires_at,
    )
