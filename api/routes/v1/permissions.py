"""
api/routes/v1/permissions.py -- Permission CRUD and lookup endpoints.

Routes:
  GET    /api/v1/permissions                  -- paginated list (+ resource, action filters)
  POST   /api/v1/permissions                  -- create
  GET    /api/v1/permissions/active           -- every active permission
  GET    /api/v1/permissions/resources        -- distinct resources of active permissions
  GET    /api/v1/permissions/actions          -- distinct actions of active permissions
  GET    /api/v1/permissions/{permission_id}  -- one permission
  PATCH  /api/v1/permissions/{permission_id}  -- partial update
  DELETE /api/v1/permissions/{permission_id}  -- guarded soft delete
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from api.models import PageResponse, PermissionResponse
from auth.dependencies import require_permission
from rbac.models import User
from rbac.requests import CreatePermissionRequest, PermissionListQuery, UpdatePermissionRequest, parse_request

router = APIRouter()


@router.get("/permissions", response_model=PageResponse[PermissionResponse])
def list_permissions(
    request: Request, _: User = Depends(require_permission("read_permission"))
) -> PageResponse[PermissionResponse]:
    query = parse_request(PermissionListQuery, dict(request.query_params))
    page = request.app.state.services.permissions.list_permissions(query)
    return PageResponse[PermissionResponse].from_page(page, PermissionResponse.from_permission)


@router.post("/permissions", response_model=PermissionResponse, status_code=201)
def create_permission(
    request: Request, body: CreatePermissionRequest, _: User = Depends(require_permission("create_permission"))
) -> PermissionResponse:
    return PermissionResponse.from_permission(request.app.state.services.permissions.create_permission(body))


# Fixed paths are registered before /permissions/{permission_id}.
@router.get("/permissions/active", response_model=list[PermissionResponse])
def active_permissions(
    request: Request, _: User = Depends(require_permission("read_permission"))
) -> list[PermissionResponse]:
    return [
        PermissionResponse.from_permission(p) for p in request.app.state.services.permissions.list_active_permissions()
    ]


@router.get("/permissions/resources", response_model=list[str])
def resources(request: Request, _: User = Depends(require_permission("read_permission"))) -> list[str]:
    return request.app.state.services.permissions.list_resources()


@router.get("/permissions/actions", response_model=list[str])
def actions(request: Request, _: User = Depends(require_permission("read_permission"))) -> list[str]:
    return request.app.state.services.permissions.list_actions()


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
def get_permission(
    request: Request, permission_id: UUID, _: User = Depends(require_permission("read_permission"))
) -> PermissionResponse:
    return PermissionResponse.from_permission(request.app.state.services.permissions.get_permission(str(permission_id)))


@router.patch("/permissions/{permission_id}", response_model=PermissionResponse)
def update_permission(
    request: Request,
    permission_id: UUID,
    body: UpdatePermissionRequest,
    _: User = Depends(require_permission("update_permission")),
) -> PermissionResponse:
    updated = request.app.state.services.permissions.update_permission(str(permission_id), body)
    return PermissionResponse.from_permission(updated)


@router.delete("/permissions/{permission_id}", status_code=204)
def delete_permission(
    request: Request, permission_id: UUID, _: User = Depends(require_permission("delete_permission"))
) -> Response:
    request.app.state.services.permissions.remove_permission(str(permission_id))
    return Response(status_code=204)
