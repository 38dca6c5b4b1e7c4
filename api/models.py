"""
API response models for RoleGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in rbac/models.py, which
own the internal domain representation. Request bodies use the structs in
rbac/requests.py directly, so validation rules live in one place.

No response model has a password field. UserResponse.from_user() is the only
way a User reaches the wire.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from core.errors import FieldError
from rbac.models import Page, Permission, PermissionHolder, Role, RoleMember, RolePermissionSet, User, UserRoleSet

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class FieldErrorModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str

    @classmethod
    def from_field_error(cls, err: FieldError) -> "FieldErrorModel":
        return cls(field=err.field, message=err.message)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[list[FieldErrorModel]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    phone: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str
    role_count: int

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method: map a domain User onto the wire shape, dropping the hash."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            role_count=user.role_count,
        )


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    is_active: bool
    created_at: str
    updated_at: str
    user_count: int
    permission_count: int

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            is_active=role.is_active,
            created_at=role.created_at,
            updated_at=role.updated_at,
            user_count=role.user_count,
            permission_count=role.permission_count,
        )


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    resource: str
    action: str
    is_active: bool
    created_at: str
    updated_at: str
    role_count: int

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            name=permission.name,
            description=permission.description,
            resource=permission.resource,
            action=permission.action,
            is_active=permission.is_active,
            created_at=permission.created_at,
            updated_at=permission.updated_at,
            role_count=permission.role_count,
        )


class PageResponse(BaseModel, Generic[T]):
    """One page of a listing. total counts every row matching the filters."""

    data: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def from_page(cls, page: Page, convert) -> "PageResponse":
        return cls(
            data=[convert(item) for item in page.data],
            total=page.total,
            page=page.page,
            limit=page.limit,
            pages=(page.total + page.limit - 1) // page.limit,
        )


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class UserRolesResponse(BaseModel):
    user: UserResponse
    roles: list[RoleResponse]

    @classmethod
    def from_set(cls, role_set: UserRoleSet) -> "UserRolesResponse":
        return cls(
            user=UserResponse.from_user(role_set.user),
            roles=[RoleResponse.from_role(r) for r in role_set.roles],
        )


class RolePermissionsResponse(BaseModel):
    role: RoleResponse
    permissions: list[PermissionResponse]

    @classmethod
    def from_set(cls, permission_set: RolePermissionSet) -> "RolePermissionsResponse":
        return cls(
            role=RoleResponse.from_role(permission_set.role),
            permissions=[PermissionResponse.from_permission(p) for p in permission_set.permissions],
        )


class RoleMemberResponse(BaseModel):
    user: UserResponse
    assigned_at: str

    @classmethod
    def from_member(cls, member: RoleMember) -> "RoleMemberResponse":
        return cls(user=UserResponse.from_user(member.user), assigned_at=member.assigned_at)


class PermissionHolderResponse(BaseModel):
    role: RoleResponse
    assigned_at: str

    @classmethod
    def from_holder(cls, holder: PermissionHolder) -> "PermissionHolderResponse":
        return cls(role=RoleResponse.from_role(holder.role), assigned_at=holder.assigned_at)


class PermissionsByResourceResponse(BaseModel):
    role_id: str
    resources: dict[str, list[PermissionResponse]]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthResponse(BaseModel):
    """Response for POST /auth/register and POST /auth/login."""

    access_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user: UserResponse
    roles: list[str]


class ProfileResponse(BaseModel):
    """Response for GET /auth/profile: the caller plus effective access."""

    user: UserResponse
    roles: list[str]
    permissions: list[str]
