"""
rbac/models.py -- Domain dataclasses for the User / Role / Permission graph.

Pure data containers with zero logic. Dataclasses own domain shape;
rbac/store.py and rbac/engine.py do the work.

Timestamps are ISO 8601 UTC strings set by the store on write. The *_count
fields are derived on read and count every join row (active or not) that
references the entity.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class User:
    """An identity that can authenticate and hold roles.

    password_hash is None on every copy handed out past the auth boundary.
    """

    name: str
    email: str
    password_hash: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    role_count: int = 0


@dataclass
class Role:
    """A named bundle of permissions, e.g. "administrador" or "usuario"."""

    name: str
    description: Optional[str] = None
    is_active: bool = True
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    user_count: int = 0
    permission_count: int = 0


@dataclass
class Permission:
    """An atomic capability: one action on one resource.

    name is unique, and so is the (resource, action) pair.
    """

    name: str
    resource: str
    action: str
    description: Optional[str] = None
    is_active: bool = True
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    role_count: int = 0


@dataclass
class UserRole:
    """Join row: the user holds the role while is_active is true."""

    user_id: str
    role_id: str
    is_active: bool = True
    assigned_at: str = ""
    id: Optional[str] = None


@dataclass
class RolePermission:
    """Join row: the role carries the permission while is_active is true."""

    role_id: str
    permission_id: str
    is_active: bool = True
    assigned_at: str = ""
    id: Optional[str] = None


@dataclass
class Page(Generic[T]):
    """One page of a filtered listing. total counts every matching row."""

    data: list[T]
    total: int
    page: int
    limit: int


@dataclass
class UserRoleSet:
    """A user together with their effective roles."""

    user: User
    roles: list[Role] = field(default_factory=list)


@dataclass
class RolePermissionSet:
    """A role together with its effective permissions."""

    role: Role
    permissions: list[Permission] = field(default_factory=list)


@dataclass
class RoleMember:
    """Reverse lookup entry: a user holding a role, and since when."""

    user: User
    assigned_at: str


@dataclass
class PermissionHolder:
    """Reverse lookup entry: a role carrying a permission, and since when."""

    role: Role
    assigned_at: str
