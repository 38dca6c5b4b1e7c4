"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Bearer tokens are read from the Authorization header only. Validation is
delegated to AuthService.validate_token(), which checks signature, expiry and
that the subject still exists and is active.

get_current_user() raises HTTP 401 if unauthenticated.
require_permission(name) wraps get_current_user() and raises HTTP 403 if the
user's effective permissions do not include name.

Layer rule: no imports from api/. Services are found on request.app.state.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from core.errors import UnauthorizedError
from rbac.models import User


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return request.app.state.services.auth.validate_token(token)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_permission(name: str) -> Callable[..., User]:
    """Build a dependency that requires the effective permission `name`.

    Use as a FastAPI dependency:
        @router.get("/users")
        def route(user: User = Depends(require_permission("read_user"))): ...
    """

    def dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        if not request.app.state.services.engine.has_permission(user.id, name):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Missing required permission: {name}."},
            )
        return user

    return dependency
