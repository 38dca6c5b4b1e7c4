"""
rbac/services.py -- CRUD services for users, roles and permissions.

Each service validates uniqueness in code (ConflictError) before writing and
relies on the schema's UNIQUE constraints as a backstop: an IntegrityError
from a racing writer is translated to the same ConflictError.

Soft delete only. remove_role / remove_permission / deactivate_user flip
is_active; roles and permissions go through the engine's deactivation guard,
users do not.

Every User returned from here has password_hash stripped.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.tokens import hash_password
from core.errors import ConflictError, NotFoundError
from rbac.engine import AuthorizationEngine, without_password
from rbac.models import Page, Permission, Role, User
from rbac.requests import (
    CreatePermissionRequest,
    CreateRoleRequest,
    CreateUserRequest,
    PermissionListQuery,
    RoleListQuery,
    UpdatePermissionRequest,
    UpdateRoleRequest,
    UpdateUserRequest,
    UserListQuery,
)
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.rbac")

# Columns that may be explicitly cleared with null in a partial update.
_NULLABLE_UPDATE_FIELDS = {"phone", "description"}


def _changes(req, rename: Optional[dict] = None) -> dict:
    """Fields the caller actually sent, minus nulls for non-nullable columns."""
    fields = {
        k: v
        for k, v in req.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE_UPDATE_FIELDS
    }
    for old, new in (rename or {}).items():
        if old in fields:
            fields[new] = fields.pop(old)
    return fields


class UserService:
    def __init__(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        self.store = store
        self.engine = engine

    def list_users(self, query: UserListQuery) -> Page[User]:
        page = self.store.list_users(page=query.page, limit=query.limit, search=query.search, is_active=query.is_active)
        page.data = [without_password(u) for u in page.data]
        return page

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return without_password(user)

    def create_user(self, req: CreateUserRequest) -> User:
        """Create a user and, when role_ids is given, assign them atomically.

        Raises:
            ConflictError: the email is already registered.
            NotFoundError: a role id is absent or inactive (nothing is written).
        """
        email = req.email.lower()
        if self.store.get_user_by_email(email) is not None:
            raise ConflictError("A user with this email already exists.")
        user = User(
            name=req.name,
            email=email,
            password_hash=hash_password(req.password),
            phone=req.phone,
            is_active=req.is_active,
        )
        try:
            with self.store.transaction() as conn:
                user_id = self.store.create_user(user, conn=conn)
                if req.role_ids:
                    self.engine.assign_roles(user_id, req.role_ids, conn=conn)
                created = self.store.get_user(user_id, conn=conn)
        except IntegrityError as exc:
            raise ConflictError("A user with this email already exists.") from exc
        logger.info("Created user %s", user_id)
        return without_password(created)

    def update_user(self, user_id: str, req: UpdateUserRequest) -> User:
        """Apply a partial update. A new password is rehashed; roles are untouched."""
        fields = _changes(req)
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        if "password" in fields:
            fields["password_hash"] = hash_password(fields.pop("password"))
        try:
            with self.store.transaction() as conn:
                if self.store.get_user(user_id, conn=conn) is None:
                    raise NotFoundError(f"User {user_id} not found.")
                if "email" in fields:
                    other = self.store.get_user_by_email(fields["email"], conn=conn)
                    if other is not None and other.id != user_id:
                        raise ConflictError("A user with this email already exists.")
                if fields:
                    self.store.update_user(user_id, conn=conn, **fields)
                updated = self.store.get_user(user_id, conn=conn)
        except IntegrityError as exc:
            raise ConflictError("A user with this email already exists.") from exc
        return without_password(updated)

    def deactivate_user(self, user_id: str) -> User:
        """Soft-delete the user. Role links are left as they are."""
        with self.store.transaction() as conn:
            if not self.store.update_user(user_id, is_active=False, conn=conn):
                raise NotFoundError(f"User {user_id} not found.")
            user = self.store.get_user(user_id, conn=conn)
        logger.info("Deactivated user %s", user_id)
        return without_password(user)


class RoleService:
    def __init__(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        self.store = store
        self.engine = engine

    def create_role(self, req: CreateRoleRequest) -> Role:
        if self.store.get_role_by_name(req.name) is not None:
            raise ConflictError(f"A role named '{req.name}' already exists.")
        try:
            role_id = self.store.create_role(Role(name=req.name, description=req.description, is_active=req.is_active))
        except IntegrityError as exc:
            raise ConflictError(f"A role named '{req.name}' already exists.") from exc
        logger.info("Created role %s (%s)", role_id, req.name)
        return self.store.get_role(role_id)

    def list_roles(self, query: RoleListQuery) -> Page[Role]:
        return self.store.list_roles(page=query.page, limit=query.limit, search=query.search, is_active=query.is_active)

    def list_active_roles(self) -> list[Role]:
        return self.store.list_active_roles()

    def get_role(self, role_id: str) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found.")
        return role

    def update_role(self, role_id: str, req: UpdateRoleRequest) -> Role:
        """Apply a partial update. Setting is_active=false is subject to the guard."""
        fields = _changes(req)
        try:
            with self.store.transaction() as conn:
                role = self.store.get_role(role_id, conn=conn)
                if role is None:
                    raise NotFoundError(f"Role {role_id} not found.")
                if "name" in fields and fields["name"] != role.name:
                    if self.store.get_role_by_name(fields["name"], conn=conn) is not None:
                        raise ConflictError(f"A role named '{fields['name']}' already exists.")
                if fields.get("is_active") is False and role.is_active:
                    self.engine.deactivate_role(role_id, conn=conn)
                    fields.pop("is_active")
                if fields:
                    self.store.update_role(role_id, conn=conn, **fields)
                updated = self.store.get_role(role_id, conn=conn)
        except IntegrityError as exc:
            raise ConflictError("A role with this name already exists.") from exc
        return updated

    def remove_role(self, role_id: str) -> Role:
        """Soft-delete the role. DomainGuardError while users actively hold it."""
        return self.engine.deactivate_role(role_id)


class PermissionService:
    def __init__(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        self.store = store
        self.engine = engine

    def create_permission(self, req: CreatePermissionRequest) -> Permission:
        """Create a permission.

        Raises:
            ConflictError: the name is taken, or the (resource, action) pair is.
        """
        if self.store.get_permission_by_name(req.name) is not None:
            raise ConflictError(f"A permission named '{req.name}' already exists.")
        if self.store.get_permission_by_resource_action(req.resource, req.action) is not None:
            raise ConflictError(f"A permission for action '{req.action}' on resource '{req.resource}' already exists.")
        permission = Permission(
            name=req.name,
            resource=req.resource,
            action=req.action,
            description=req.description,
            is_active=req.is_active,
        )
        try:
            permission_id = self.store.create_permission(permission)
        except IntegrityError as exc:
            raise ConflictError("A permission with this name or resource/action already exists.") from exc
        logger.info("Created permission %s (%s)", permission_id, req.name)
        return self.store.get_permission(permission_id)

    def list_permissions(self, query: PermissionListQuery) -> Page[Permission]:
        return self.store.list_permissions(
            page=query.page,
            limit=query.limit,
            search=query.search,
            resource=query.resource,
            action=query.action,
            is_active=query.is_active,
        )

    def list_active_permissions(self) -> list[Permission]:
        return self.store.list_active_permissions()

    def get_permission(self, permission_id: str) -> Permission:
        permission = self.store.get_permission(permission_id)
        if permission is None:
            raise NotFoundError(f"Permission {permission_id} not found.")
        return permission

    def update_permission(self, permission_id: str, req: UpdatePermissionRequest) -> Permission:
        """Apply a partial update with name and (resource, action) conflict checks."""
        fields = _changes(req)
        try:
            with self.store.transaction() as conn:
                current = self.store.get_permission(permission_id, conn=conn)
                if current is None:
                    raise NotFoundError(f"Permission {permission_id} not found.")
                if "name" in fields and fields["name"] != current.name:
                    if self.store.get_permission_by_name(fields["name"], conn=conn) is not None:
                        raise ConflictError(f"A permission named '{fields['name']}' already exists.")
                resource = fields.get("resource", current.resource)
                action = fields.get("action", current.action)
                if (resource, action) != (current.resource, current.action):
                    other = self.store.get_permission_by_resource_action(resource, action, conn=conn)
                    if other is not None and other.id != permission_id:
                        raise ConflictError(
                            f"A permission for action '{action}' on resource '{resource}' already exists."
                        )
                if fields.get("is_active") is False and current.is_active:
                    self.engine.deactivate_permission(permission_id, conn=conn)
                    fields.pop("is_active")
                if fields:
                    self.store.update_permission(permission_id, conn=conn, **fields)
                updated = self.store.get_permission(permission_id, conn=conn)
        except IntegrityError as exc:
            raise ConflictError("A permission with this name or resource/action already exists.") from exc
        return updated

    def remove_permission(self, permission_id: str) -> Permission:
        """Soft-delete the permission. DomainGuardError while roles actively carry it."""
        return self.engine.deactivate_permission(permission_id)

    def list_resources(self) -> list[str]:
        return self.store.distinct_resources()

    def list_actions(self) -> list[str]:
        return self.store.distinct_actions()
