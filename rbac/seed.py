"""
rbac/seed.py -- Idempotent bootstrap of the default roles and permissions.

Creates, when missing:
  - CRUD permissions for users, roles and permissions, plus read/update on
    the caller's own profile;
  - "administrador" holding every default permission;
  - "usuario" holding the two profile permissions;
  - optionally, an admin user holding "administrador".

Existing rows are looked up by name and left untouched, so running the seed
twice is a no-op. Runs in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from auth.tokens import hash_password
from rbac.engine import AuthorizationEngine
from rbac.models import Permission, Role, User
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.seed")

# (name, description, resource, action)
DEFAULT_PERMISSIONS: list[tuple[str, str, str, str]] = [
    ("create_user", "Create users", "users", "create"),
    ("read_user", "Read user information", "users", "read"),
    ("update_user", "Update users", "users", "update"),
    ("delete_user", "Delete users", "users", "delete"),
    ("create_role", "Create roles", "roles", "create"),
    ("read_role", "Read role information", "roles", "read"),
    ("update_role", "Update roles", "roles", "update"),
    ("delete_role", "Delete roles", "roles", "delete"),
    ("create_permission", "Create permissions", "permissions", "create"),
    ("read_permission", "Read permission information", "permissions", "read"),
    ("update_permission", "Update permissions", "permissions", "update"),
    ("delete_permission", "Delete permissions", "permissions", "delete"),
    ("read_own_profile", "Read own profile", "profile", "read"),
    ("update_own_profile", "Update own profile", "profile", "update"),
]

ADMIN_ROLE = ("administrador", "System administrator with full access")
USER_ROLE = ("usuario", "Standard user who manages their own profile")
USER_ROLE_PERMISSIONS = ("read_own_profile", "update_own_profile")


@dataclass
class SeedReport:
    """Names of the rows this run created. Empty lists mean nothing was missing."""

    permissions: list[str] = field(default_factory=list)
    roles: list[str] = field(default_factory=list)
    links: int = 0
    admin_user: Optional[str] = None


def seed_defaults(
    store: RBACStore,
    engine: AuthorizationEngine,
    admin_email: Optional[str] = None,
    admin_password: Optional[str] = None,
    admin_name: str = "Administrator",
) -> SeedReport:
    """Create the default permissions, roles and (optionally) admin user.

    admin_email and admin_password must be given together.
    """
    if bool(admin_email) != bool(admin_password):
        raise ValueError("admin_email and admin_password must be given together.")

    report = SeedReport()
    with store.transaction() as conn:
        by_name: dict[str, str] = {}
        for name, description, resource, action in DEFAULT_PERMISSIONS:
            existing = store.get_permission_by_name(name, conn=conn)
            if existing is None:
                existing_id = store.create_permission(
                    Permission(name=name, description=description, resource=resource, action=action), conn=conn
                )
                report.permissions.append(name)
                logger.info("Created permission %s", name)
            else:
                existing_id = existing.id
            by_name[name] = existing_id

        role_ids: dict[str, str] = {}
        for name, description in (ADMIN_ROLE, USER_ROLE):
            role = store.get_role_by_name(name, conn=conn)
            if role is None:
                role_ids[name] = store.create_role(Role(name=name, description=description), conn=conn)
                report.roles.append(name)
                logger.info("Created role %s", name)
            else:
                role_ids[name] = role.id

        wanted = {
            ADMIN_ROLE[0]: list(by_name.values()),
            USER_ROLE[0]: [by_name[n] for n in USER_ROLE_PERMISSIONS],
        }
        for role_name, permission_ids in wanted.items():
            rid = role_ids[role_name]
            linked = {link.permission_id for link in store.get_role_permission_links(rid, conn=conn)}
            missing = [pid for pid in permission_ids if pid not in linked]
            store.insert_role_permissions(rid, missing, conn=conn)
            report.links += len(missing)

        if admin_email:
            admin = store.get_user_by_email(admin_email, conn=conn)
            if admin is None:
                admin_id = store.create_user(
                    User(name=admin_name, email=admin_email, password_hash=hash_password(admin_password)), conn=conn
                )
                report.admin_user = admin_email.lower()
                logger.info("Created admin user %s", admin_email.lower())
            else:
                admin_id = admin.id
            if not engine.has_role(admin_id, ADMIN_ROLE[0], conn=conn):
                engine.assign_roles(admin_id, [role_ids[ADMIN_ROLE[0]]], conn=conn)

    logger.info(
        "Seed complete: %d permission(s), %d role(s), %d link(s) created",
        len(report.permissions),
        len(report.roles),
        report.links,
    )
    return report
