"""
api/routes/v1/roles.py -- Role CRUD endpoints.

Routes:
  GET    /api/v1/roles            -- paginated list (page, limit, search, is_active)
  POST   /api/v1/roles            -- create
  GET    /api/v1/roles/active     -- every active role, by name
  GET    /api/v1/roles/{role_id}  -- one role with user/permission counts
  PATCH  /api/v1/roles/{role_id}  -- partial update
  DELETE /api/v1/roles/{role_id}  -- guarded soft delete

A role actively assigned to any user cannot be deactivated (400
guard_violation), whether through DELETE or PATCH is_active=false.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from api.models import PageResponse, RoleResponse
from auth.dependencies import require_permission
from rbac.models import User
from rbac.requests import CreateRoleRequest, RoleListQuery, UpdateRoleRequest, parse_request

router = APIRouter()


@router.get("/roles", response_model=PageResponse[RoleResponse])
def list_roles(request: Request, _: User = Depends(require_permission("read_role"))) -> PageResponse[RoleResponse]:
    query = parse_request(RoleListQuery, dict(request.query_params))
    page = request.app.state.services.roles.list_roles(query)
    return PageResponse[RoleResponse].from_page(page, RoleResponse.from_role)


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request, body: CreateRoleRequest, _: User = Depends(require_permission("create_role"))
) -> RoleResponse:
    return RoleResponse.from_role(request.app.state.services.roles.create_role(body))


# Registered before /roles/{role_id} so "active" is not parsed as an id.
@router.get("/roles/active", response_model=list[RoleResponse])
def active_roles(request: Request, _: User = Depends(require_permission("read_role"))) -> list[RoleResponse]:
    return [RoleResponse.from_role(r) for r in request.app.state.services.roles.list_active_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(request: Request, role_id: UUID, _: User = Depends(require_permission("read_role"))) -> RoleResponse:
    return RoleResponse.from_role(request.app.state.services.roles.get_role(str(role_id)))


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    request: Request,
    role_id: UUID,
    body: UpdateRoleRequest,
    _: User = Depends(require_permission("update_role")),
) -> RoleResponse:
    return RoleResponse.from_role(request.app.state.services.roles.update_role(str(role_id), body))


@router.delete("/roles/{role_id}", status_code=204)
def delete_role(request: Request, role_id: UUID, _: User = Depends(require_permission("delete_role"))) -> Response:
    request.app.state.services.roles.remove_role(str(role_id))
    return Response(status_code=204)
