"""
rbac/engine.py -- Authorization Engine: the rules of the User/Role/Permission graph.

Owns every consistency rule about join rows:

  assign_*      add links; reactivates a soft-revoked row instead of inserting
                a second one. Conflict when every requested link is already active.
  unassign_*    hard-delete links. NotFound when any requested link is absent.
  deactivate_*  soft-revoke links (is_active = false). Checks active links only.
  replace_*     delete every link of the anchor, then insert the new set.

A link is *effective* only when its own flag and the far-side entity's flag
are both true. Deactivating a Role or Permission does not touch its join rows;
the effective-* queries simply stop returning them.

Every mutation runs inside one store transaction. A caller that already owns
a transaction (registration, user creation) passes ``conn`` through and the
engine joins it. An IntegrityError from a concurrent writer on the UNIQUE
join constraints is reported as ConflictError.

Request lists are deduplicated, first occurrence kept.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from typing import Optional

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from core.errors import ConflictError, DomainGuardError, NotFoundError
from rbac.models import (
    Permission,
    PermissionHolder,
    Role,
    RoleMember,
    RolePermissionSet,
    User,
    UserRoleSet,
)
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.rbac")


def without_password(user: User) -> User:
    """Return a copy of user safe to hand past the auth boundary."""
    return dataclasses.replace(user, password_hash=None)


def _dedupe(ids: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(ids))


class AuthorizationEngine:
    """Assignment operations, effective-access queries and deactivation guards.

    Usage:
        engine = AuthorizationEngine(store)
        engine.assign_roles(user_id, [role_id])
        engine.has_role(user_id, "administrador")   # True
    """

    def __init__(self, store: RBACStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Lookups that raise
    # ------------------------------------------------------------------

    def _require_user(self, user_id: str, conn: Connection) -> User:
        user = self.store.get_user(user_id, conn=conn)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return user

    def _require_role(self, role_id: str, conn: Connection, active: bool = False) -> Role:
        role = self.store.get_role(role_id, conn=conn)
        if role is None or (active and not role.is_active):
            raise NotFoundError(f"Role {role_id} not found or inactive." if active else f"Role {role_id} not found.")
        return role

    def _require_permission(self, permission_id: str, conn: Connection) -> Permission:
        permission = self.store.get_permission(permission_id, conn=conn)
        if permission is None:
            raise NotFoundError(f"Permission {permission_id} not found.")
        return permission

    def _require_active_roles(self, role_ids: list[str], conn: Connection) -> None:
        found = {r.id for r in self.store.get_roles(role_ids, active_only=True, conn=conn)}
        missing = [rid for rid in role_ids if rid not in found]
        if missing:
            raise NotFoundError(f"Roles not found or inactive: {', '.join(missing)}")

    def _require_active_permissions(self, permission_ids: list[str], conn: Connection) -> None:
        found = {p.id for p in self.store.get_permissions(permission_ids, active_only=True, conn=conn)}
        missing = [pid for pid in permission_ids if pid not in found]
        if missing:
            raise NotFoundError(f"Permissions not found or inactive: {', '.join(missing)}")

    # ------------------------------------------------------------------
    # User <-> Role
    # ------------------------------------------------------------------

    def assign_roles(self, user_id: str, role_ids: Sequence[str], conn: Optional[Connection] = None) -> UserRoleSet:
        """Give user_id every role in role_ids that it does not actively hold.

        Raises:
            NotFoundError: user absent, or any role absent/inactive.
            ConflictError: the user already actively holds every requested role.
        """
        role_ids = _dedupe(role_ids)
        try:
            with self.store.transaction(conn) as c:
                self._require_user(user_id, c)
                self._require_active_roles(role_ids, c)
                held = {link.role_id for link in self.store.get_user_role_links(user_id, role_ids, active_only=True, conn=c)}
                new_ids = [rid for rid in role_ids if rid not in held]
                if not new_ids:
                    raise ConflictError("The user already has all of the specified roles assigned.")
                revoked = {link.role_id for link in self.store.get_user_role_links(user_id, new_ids, conn=c)}
                self.store.set_user_roles_active(user_id, [rid for rid in new_ids if rid in revoked], True, conn=c)
                self.store.insert_user_roles(user_id, [rid for rid in new_ids if rid not in revoked], conn=c)
                result = self._user_role_set(user_id, c)
        except IntegrityError as exc:
            raise ConflictError("The user already has one of the specified roles assigned.") from exc
        logger.info("Assigned %d role(s) to user %s", len(new_ids), user_id)
        return result

    def unassign_roles(self, user_id: str, role_ids: Sequence[str], conn: Optional[Connection] = None) -> UserRoleSet:
        """Hard-delete the user's links to role_ids.

        Raises:
            NotFoundError: user absent, no link matches, or some ids have no link.
        """
        role_ids = _dedupe(role_ids)
        with self.store.transaction(conn) as c:
            self._require_user(user_id, c)
            self._match_user_links(user_id, role_ids, active_only=False, conn=c)
            self.store.delete_user_roles(user_id, role_ids, conn=c)
            result = self._user_role_set(user_id, c)
        logger.info("Removed %d role(s) from user %s", len(role_ids), user_id)
        return result

    def deactivate_roles(self, user_id: str, role_ids: Sequence[str], conn: Optional[Connection] = None) -> UserRoleSet:
        """Soft-revoke the user's active links to role_ids. The rows are kept."""
        role_ids = _dedupe(role_ids)
        with self.store.transaction(conn) as c:
            self._require_user(user_id, c)
            self._match_user_links(user_id, role_ids, active_only=True, conn=c)
            self.store.set_user_roles_active(user_id, role_ids, False, conn=c)
            result = self._user_role_set(user_id, c)
        logger.info("Deactivated %d role link(s) for user %s", len(role_ids), user_id)
        return result

    def _match_user_links(self, user_id: str, role_ids: list[str], active_only: bool, conn: Connection) -> None:
        links = self.store.get_user_role_links(user_id, role_ids, active_only=active_only, conn=conn)
        if not links:
            raise NotFoundError("None of the specified roles are assigned to the user.")
        matched = {link.role_id for link in links}
        missing = [rid for rid in role_ids if rid not in matched]
        if missing:
            raise NotFoundError(f"Roles not assigned to the user: {', '.join(missing)}")

    def replace_roles(self, user_id: str, role_ids: Sequence[str], conn: Optional[Connection] = None) -> UserRoleSet:
        """Make role_ids the user's complete role set. An empty list clears it."""
        role_ids = _dedupe(role_ids)
        try:
            with self.store.transaction(conn) as c:
                self._require_user(user_id, c)
                self._require_active_roles(role_ids, c)
                self.store.delete_user_roles(user_id, conn=c)
                self.store.insert_user_roles(user_id, role_ids, conn=c)
                result = self._user_role_set(user_id, c)
        except IntegrityError as exc:
            raise ConflictError("Concurrent role update for this user; retry.") from exc
        logger.info("Replaced roles of user %s (%d role(s))", user_id, len(role_ids))
        return result

    def get_effective_roles(self, user_id: str, conn: Optional[Connection] = None) -> list[Role]:
        return self.store.get_effective_roles(user_id, conn=conn)

    def get_user_roles(self, user_id: str, conn: Optional[Connection] = None) -> UserRoleSet:
        with self.store.transaction(conn) as c:
            self._require_user(user_id, c)
            return self._user_role_set(user_id, c)

    def _user_role_set(self, user_id: str, conn: Connection) -> UserRoleSet:
        user = self.store.get_user(user_id, conn=conn)
        return UserRoleSet(user=without_password(user), roles=self.store.get_effective_roles(user_id, conn=conn))

    def has_role(self, user_id: str, role_name: str, conn: Optional[Connection] = None) -> bool:
        return self.store.has_active_role(user_id, role_name, conn=conn)

    def users_by_role(self, role_id: str, conn: Optional[Connection] = None) -> list[RoleMember]:
        """Active users effectively holding role_id, each with its assigned_at."""
        with self.store.transaction(conn) as c:
            self._require_role(role_id, c)
            members = self.store.get_role_members(role_id, conn=c)
        return [RoleMember(user=without_password(m.user), assigned_at=m.assigned_at) for m in members]

    # ------------------------------------------------------------------
    # Role <-> Permission
    # ------------------------------------------------------------------

    def assign_permissions(
        self, role_id: str, permission_ids: Sequence[str], conn: Optional[Connection] = None
    ) -> RolePermissionSet:
        """Give the (active) role every permission it does not actively carry.

        Raises:
            NotFoundError: role absent/inactive, or any permission absent/inactive.
            ConflictError: the role already actively carries every requested permission.
        """
        permission_ids = _dedupe(permission_ids)
        try:
            with self.store.transaction(conn) as c:
                self._require_role(role_id, c, active=True)
                self._require_active_permissions(permission_ids, c)
                held = {
                    link.permission_id
                    for link in self.store.get_role_permission_links(role_id, permission_ids, active_only=True, conn=c)
                }
                new_ids = [pid for pid in permission_ids if pid not in held]
                if not new_ids:
                    raise ConflictError("The role already has all of the specified permissions assigned.")
                revoked = {link.permission_id for link in self.store.get_role_permission_links(role_id, new_ids, conn=c)}
                self.store.set_role_permissions_active(role_id, [p for p in new_ids if p in revoked], True, conn=c)
                self.store.insert_role_permissions(role_id, [p for p in new_ids if p not in revoked], conn=c)
                result = self._role_permission_set(role_id, c)
        except IntegrityError as exc:
            raise ConflictError("The role already has one of the specified permissions assigned.") from exc
        logger.info("Assigned %d permission(s) to role %s", len(new_ids), role_id)
        return result

    def unassign_permissions(
        self, role_id: str, permission_ids: Sequence[str], conn: Optional[Connection] = None
    ) -> RolePermissionSet:
        """Hard-delete the role's links to permission_ids."""
        permission_ids = _dedupe(permission_ids)
        with self.store.transaction(conn) as c:
            self._require_role(role_id, c)
            self._match_role_links(role_id, permission_ids, active_only=False, conn=c)
            self.store.delete_role_permissions(role_id, permission_ids, conn=c)
            result = self._role_permission_set(role_id, c)
        logger.info("Removed %d permission(s) from role %s", len(permission_ids), role_id)
        return result

    def deactivate_permissions(
        self, role_id: str, permission_ids: Sequence[str], conn: Optional[Connection] = None
    ) -> RolePermissionSet:
        """Soft-revoke the role's active links to permission_ids."""
        permission_ids = _dedupe(permission_ids)
        with self.store.transaction(conn) as c:
            self._require_role(role_id, c)
            self._match_role_links(role_id, permission_ids, active_only=True, conn=c)
            self.store.set_role_permissions_active(role_id, permission_ids, False, conn=c)
            result = self._role_permission_set(role_id, c)
        logger.info("Deactivated %d permission link(s) for role %s", len(permission_ids), role_id)
        return result

    def _match_role_links(self, role_id: str, permission_ids: list[str], active_only: bool, conn: Connection) -> None:
        links = self.store.get_role_permission_links(role_id, permission_ids, active_only=active_only, conn=conn)
        if not links:
            raise NotFoundError("None of the specified permissions are assigned to the role.")
        matched = {link.permission_id for link in links}
        missing = [pid for pid in permission_ids if pid not in matched]
        if missing:
            raise NotFoundError(f"Permissions not assigned to the role: {', '.join(missing)}")

    def replace_permissions(
        self, role_id: str, permission_ids: Sequence[str], conn: Optional[Connection] = None
    ) -> RolePermissionSet:
        """Make permission_ids the role's complete permission set."""
        permission_ids = _dedupe(permission_ids)
        try:
            with self.store.transaction(conn) as c:
                self._require_role(role_id, c, active=True)
                self._require_active_permissions(permission_ids, c)
                self.store.delete_role_permissions(role_id, conn=c)
                self.store.insert_role_permissions(role_id, permission_ids, conn=c)
                result = self._role_permission_set(role_id, c)
        except IntegrityError as exc:
            raise ConflictError("Concurrent permission update for this role; retry.") from exc
        logger.info("Replaced permissions of role %s (%d permission(s))", role_id, len(permission_ids))
        return result

    def get_effective_permissions(self, role_id: str, conn: Optional[Connection] = None) -> list[Permission]:
        return self.store.get_effective_permissions(role_id, conn=conn)

    def get_role_permissions(self, role_id: str, conn: Optional[Connection] = None) -> RolePermissionSet:
        with self.store.transaction(conn) as c:
            self._require_role(role_id, c)
            return self._role_permission_set(role_id, c)

    def _role_permission_set(self, role_id: str, conn: Connection) -> RolePermissionSet:
        role = self.store.get_role(role_id, conn=conn)
        return RolePermissionSet(role=role, permissions=self.store.get_effective_permissions(role_id, conn=conn))

    def get_permissions_by_resource(self, role_id: str, conn: Optional[Connection] = None) -> dict[str, list[Permission]]:
        """The role's effective permissions grouped by resource, resources ascending."""
        grouped: dict[str, list[Permission]] = {}
        for permission in self.get_role_permissions(role_id, conn=conn).permissions:
            grouped.setdefault(permission.resource, []).append(permission)
        return grouped

    def get_user_permissions(self, user_id: str, conn: Optional[Connection] = None) -> list[Permission]:
        """Distinct effective permissions reachable through the user's effective roles."""
        with self.store.transaction(conn) as c:
            self._require_user(user_id, c)
            return self.store.get_user_permissions(user_id, conn=c)

    def has_permission(self, user_id: str, permission_name: str, conn: Optional[Connection] = None) -> bool:
        return any(p.name == permission_name for p in self.store.get_user_permissions(user_id, conn=conn))

    def roles_by_permission(self, permission_id: str, conn: Optional[Connection] = None) -> list[PermissionHolder]:
        """Active roles effectively carrying permission_id, each with its assigned_at."""
        with self.store.transaction(conn) as c:
            self._require_permission(permission_id, c)
            return self.store.get_permission_holders(permission_id, conn=c)

    # ------------------------------------------------------------------
    # Deactivation guards
    # ------------------------------------------------------------------

    def can_deactivate_role(self, role_id: str, conn: Optional[Connection] = None) -> bool:
        return self.store.count_active_role_members(role_id, conn=conn) == 0

    def can_deactivate_permission(self, permission_id: str, conn: Optional[Connection] = None) -> bool:
        return self.store.count_active_permission_holders(permission_id, conn=conn) == 0

    def deactivate_role(self, role_id: str, conn: Optional[Connection] = None) -> Role:
        """Soft-delete the role unless an active user link still references it.

        Raises:
            NotFoundError: role absent.
            DomainGuardError: the role is actively assigned to one or more users.
        """
        with self.store.transaction(conn) as c:
            self._require_role(role_id, c)
            members = self.store.count_active_role_members(role_id, conn=c)
            if members:
                logger.warning("Refused to deactivate role %s: %d active user link(s)", role_id, members)
                raise DomainGuardError(f"Cannot deactivate the role: it is assigned to {members} active user(s).")
            self.store.update_role(role_id, is_active=False, conn=c)
            role = self.store.get_role(role_id, conn=c)
        logger.info("Deactivated role %s", role_id)
        return role

    def deactivate_permission(self, permission_id: str, conn: Optional[Connection] = None) -> Permission:
        """Soft-delete the permission unless an active role link still references it."""
        with self.store.transaction(conn) as c:
            self._require_permission(permission_id, c)
            holders = self.store.count_active_permission_holders(permission_id, conn=c)
            if holders:
                logger.warning("Refused to deactivate permission %s: %d active role link(s)", permission_id, holders)
                raise DomainGuardError(
                    f"Cannot deactivate the permission: it is assigned to {holders} active role(s)."
                )
            self.store.update_permission(permission_id, is_active=False, conn=c)
            permission = self.store.get_permission(permission_id, conn=c)
        logger.info("Deactivated permission %s", permission_id)
        return permission
