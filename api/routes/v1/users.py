"""
api/routes/v1/users.py -- User CRUD endpoints.

Routes:
  GET    /api/v1/users                      -- paginated list (page, limit, search, is_active)
  POST   /api/v1/users                      -- create, optionally with role_ids
  GET    /api/v1/users/{user_id}            -- one user
  PATCH  /api/v1/users/{user_id}            -- partial update (roles excluded)
  DELETE /api/v1/users/{user_id}            -- soft delete (is_active = false)
  GET    /api/v1/users/{user_id}/permissions -- effective permissions

Deleting a user never deletes rows; the account is deactivated and can no
longer log in.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from api.models import PageResponse, PermissionResponse, UserResponse
from auth.dependencies import require_permission
from rbac.models import User
from rbac.requests import CreateUserRequest, UpdateUserRequest, UserListQuery, parse_request

router = APIRouter()


@router.get("/users", response_model=PageResponse[UserResponse])
def list_users(request: Request, _: User = Depends(require_permission("read_user"))) -> PageResponse[UserResponse]:
    query = parse_request(UserListQuery, dict(request.query_params))
    page = request.app.state.services.users.list_users(query)
    return PageResponse[UserResponse].from_page(page, UserResponse.from_user)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request, body: CreateUserRequest, _: User = Depends(require_permission("create_user"))
) -> UserResponse:
    return UserResponse.from_user(request.app.state.services.users.create_user(body))


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: UUID, _: User = Depends(require_permission("read_user"))) -> UserResponse:
    return UserResponse.from_user(request.app.state.services.users.get_user(str(user_id)))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: UUID,
    body: UpdateUserRequest,
    _: User = Depends(require_permission("update_user")),
) -> UserResponse:
    return UserResponse.from_user(request.app.state.services.users.update_user(str(user_id), body))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: UUID, _: User = Depends(require_permission("delete_user"))) -> Response:
    request.app.state.services.users.deactivate_user(str(user_id))
    return Response(status_code=204)


@router.get("/users/{user_id}/permissions", response_model=list[PermissionResponse])
def user_permissions(
    request: Request, user_id: UUID, _: User = Depends(require_permission("read_user"))
) -> list[PermissionResponse]:
    permissions = request.app.state.services.engine.get_user_permissions(str(user_id))
    return [PermissionResponse.from_permission(p) for p in permissions]
