"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup   -- create a plain account; returns a bearer token
  POST /api/v1/auth/login    -- email/password login; returns a bearer token
  GET  /api/v1/auth/me       -- current principal, re-resolved from the DB

Sign-out is client-side: the caller discards the token. There is no
server-side revocation list.

Security:
  POST /login and /signup are rate-limited per IP.
  authenticate_user() (via AuthService.login) provides timing equalization.
  Cache-Control: no-store on responses that carry a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthResponse, LoginRequest, PrincipalResponse, SignupRequest
from auth.dependencies import get_current_principal, get_resolver
from auth.errors import ForbiddenError
from auth.models import Principal
from auth.service import AuthResult, AuthService
from auth.store import UserStore
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/signup: public, disabled when SIGNUP_ENABLED=false
# - POST /api/v1/auth/login:  public
# - GET  /api/v1/auth/me:     requires a valid bearer token
router = APIRouter()


def _auth_service(request: Request) -> AuthService:
    user_store: UserStore = request.app.state.user_store
    return AuthService(user_store, get_resolver(request))


def _token_response(result: AuthResult, status_code: int) -> JSONResponse:
    body = AuthResponse(
        token=result.token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=_settings.token_expire_seconds,
        user=PrincipalResponse.from_principal(result.principal, result.user),
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a user account with the default role.

    The account is not bound to any organization, so its token is refused by
    protected routes until an organization admin adds it to an office.
    """
    if not _settings.signup_enabled:
        raise ForbiddenError("Self-registration is disabled")
    result = _auth_service(request).signup(body.email, body.password, body.user_name)
    return _token_response(result, 201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and return a bearer token.

    Unknown email and wrong password produce the same 401 body.
    """
    result = _auth_service(request).login(body.email, body.password)
    return _token_response(result, 200)


@router.get("/auth/me", response_model=PrincipalResponse, response_model_by_alias=True)
def me(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    """Return the caller's current principal (never the stale token snapshot)."""
    return PrincipalResponse.from_principal(principal)
