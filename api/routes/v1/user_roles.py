"""
api/routes/v1/user_roles.py -- User <-> Role assignment endpoints.

Routes:
  POST   /api/v1/user-roles/assign                -- add roles to a user (201)
  DELETE /api/v1/user-roles/remove                -- hard-delete links (JSON body)
  POST   /api/v1/user-roles/deactivate            -- soft-revoke links
  GET    /api/v1/user-roles/user/{user_id}        -- user with effective roles
  PUT    /api/v1/user-roles/user/{user_id}/roles  -- replace the whole role set
  GET    /api/v1/user-roles/role/{role_id}/users  -- active users holding a role

Every mutation responds with the user's refreshed effective role set.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from api.models import RoleMemberResponse, UserRolesResponse
from auth.dependencies import require_permission
from rbac.models import User
from rbac.requests import AssignRolesRequest, RemoveRolesRequest, ReplaceRolesRequest

router = APIRouter()


@router.post("/user-roles/assign", response_model=UserRolesResponse, status_code=201)
def assign_roles(
    request: Request, body: AssignRolesRequest, _: User = Depends(require_permission("update_user"))
) -> UserRolesResponse:
    return UserRolesResponse.from_set(request.app.state.services.engine.assign_roles(body.user_id, body.role_ids))


@router.delete("/user-roles/remove", response_model=UserRolesResponse)
def remove_roles(
    request: Request, body: RemoveRolesRequest, _: User = Depends(require_permission("update_user"))
) -> UserRolesResponse:
    return UserRolesResponse.from_set(request.app.state.services.engine.unassign_roles(body.user_id, body.role_ids))


@router.post("/user-roles/deactivate", response_model=UserRolesResponse)
def deactivate_roles(
    request: Request, body: RemoveRolesRequest, _: User = Depends(require_permission("update_user"))
) -> UserRolesResponse:
    return UserRolesResponse.from_set(request.app.state.services.engine.deactivate_roles(body.user_id, body.role_ids))


@router.get("/user-roles/user/{user_id}", response_model=UserRolesResponse)
def user_roles(request: Request, user_id: UUID, _: User = Depends(require_permission("read_user"))) -> UserRolesResponse:
    return UserRolesResponse.from_set(request.app.state.services.engine.get_user_roles(str(user_id)))


@router.put("/user-roles/user/{user_id}/roles", response_model=UserRolesResponse)
def replace_roles(
    request: Request,
    user_id: UUID,
    body: ReplaceRolesRequest,
    _: User = Depends(require_permission("update_user")),
) -> UserRolesResponse:
    return UserRolesResponse.from_set(request.app.state.services.engine.replace_roles(str(user_id), body.role_ids))


@router.get("/user-roles/role/{role_id}/users", response_model=list[RoleMemberResponse])
def role_users(
    request: Request, role_id: UUID, _: User = Depends(require_permission("read_role"))
) -> list[RoleMemberResponse]:
    return [RoleMemberResponse.from_member(m) for m in request.app.state.services.engine.users_by_role(str(role_id))]
