"""
api/routes/v1/role_permissions.py -- Role <-> Permission assignment endpoints.

Routes:
  POST   /api/v1/role-permissions/assign                          -- add permissions (201)
  DELETE /api/v1/role-permissions/remove                          -- hard-delete links (JSON body)
  POST   /api/v1/role-permissions/deactivate                      -- soft-revoke links
  GET    /api/v1/role-permissions/role/{role_id}                  -- role with effective permissions
  GET    /api/v1/role-permissions/role/{role_id}/by-resource      -- same, grouped by resource
  PUT    /api/v1/role-permissions/role/{role_id}/permissions      -- replace the whole set
  GET    /api/v1/role-permissions/permission/{permission_id}/roles -- active roles carrying it
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from api.models import (
    PermissionHolderResponse,
    PermissionResponse,
    PermissionsByResourceResponse,
    RolePermissionsResponse,
)
from auth.dependencies import require_permission
from rbac.models import User
from rbac.requests import AssignPermissionsRequest, RemovePermissionsRequest, ReplacePermissionsRequest

router = APIRouter()


@router.post("/role-permissions/assign", response_model=RolePermissionsResponse, status_code=201)
def assign_permissions(
    request: Request, body: AssignPermissionsRequest, _: User = Depends(require_permission("update_role"))
) -> RolePermissionsResponse:
    result = request.app.state.services.engine.assign_permissions(body.role_id, body.permission_ids)
    return RolePermissionsResponse.from_set(result)


@router.delete("/role-permissions/remove", response_model=RolePermissionsResponse)
def remove_permissions(
    request: Request, body: RemovePermissionsRequest, _: User = Depends(require_permission("update_role"))
) -> RolePermissionsResponse:
    result = request.app.state.services.engine.unassign_permissions(body.role_id, body.permission_ids)
    return RolePermissionsResponse.from_set(result)


@router.post("/role-permissions/deactivate", response_model=RolePermissionsResponse)
def deactivate_permissions(
    request: Request, body: RemovePermissionsRequest, _: User = Depends(require_permission("update_role"))
) -> RolePermissionsResponse:
    result = request.app.state.services.engine.deactivate_permissions(body.role_id, body.permission_ids)
    return RolePermissionsResponse.from_set(result)


@router.get("/role-permissions/role/{role_id}", response_model=RolePermissionsResponse)
def role_permissions(
    request: Request, role_id: UUID, _: User = Depends(require_permission("read_role"))
) -> RolePermissionsResponse:
    return RolePermissionsResponse.from_set(request.app.state.services.engine.get_role_permissions(str(role_id)))


@router.get("/role-permissions/role/{role_id}/by-resource", response_model=PermissionsByResourceResponse)
def permissions_by_resource(
    request: Request, role_id: UUID, _: User = Depends(require_permission("read_role"))
) -> PermissionsByResourceResponse:
    grouped = request.app.state.services.engine.get_permissions_by_resource(str(role_id))
    return PermissionsByResourceResponse(
        role_id=str(role_id),
        resources={
            resource: [PermissionResponse.from_permission(p) for p in permissions]
            for resource, permissions in grouped.items()
        },
    )


@router.put("/role-permissions/role/{role_id}/permissions", response_model=RolePermissionsResponse)
def replace_permissions(
    request: Request,
    role_id: UUID,
    body: ReplacePermissionsRequest,
    _: User = Depends(require_permission("update_role")),
) -> RolePermissionsResponse:
    result = request.app.state.services.engine.replace_permissions(str(role_id), body.permission_ids)
    return RolePermissionsResponse.from_set(result)


@router.get("/role-permissions/permission/{permission_id}/roles", response_model=list[PermissionHolderResponse])
def permission_roles(
    request: Request, permission_id: UUID, _: User = Depends(require_permission("read_permission"))
) -> list[PermissionHolderResponse]:
    holders = request.app.state.services.engine.roles_by_permission(str(permission_id))
    return [PermissionHolderResponse.from_holder(h) for h in holders]
