"""
api/routes/v1/auth.py -- Registration, login and current-profile endpoints.

Routes:
  POST /api/v1/auth/register  -- create an account; returns a bearer token (201)
  POST /api/v1/auth/login     -- password login; returns a bearer token
  GET  /api/v1/auth/profile   -- current user with effective roles/permissions

Security:
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [C2] Bad email, bad password and inactive account share one 401 message.
  [M5] Cache-Control: no-store on every response carrying a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AuthResponse, ProfileResponse, UserResponse
from auth.dependencies import get_current_user
from auth.service import AuthResult
from rbac.models import User
from rbac.requests import LoginRequest, RegisterRequest

# Auth policy:
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/profile:   requires auth (get_current_user)
router = APIRouter()


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
        user=UserResponse.from_user(result.user),
        roles=[r.name for r in result.roles],
    )


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create an active account and return a token bound to it.

    The account receives the default role, when it exists. Role ids in the
    body are ignored; only POST /users (create_user) may set roles.
    """
    result = request.app.state.services.auth.register(body)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Returns the same generic error for unknown email, wrong password and
    inactive account to avoid leaking account existence or state.
    """
    result = request.app.state.services.auth.login(body)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return _auth_response(result)


@router.get("/auth/profile", response_model=ProfileResponse)
def profile(request: Request, current_user: User = Depends(get_current_user)) -> ProfileResponse:
    """Return the authenticated user with their effective access."""
    engine = request.app.state.services.engine
    return ProfileResponse(
        user=UserResponse.from_user(current_user),
        roles=[r.name for r in engine.get_effective_roles(current_user.id)],
        permissions=[p.name for p in engine.get_user_permissions(current_user.id)],
    )
