"""Unit tests for rbac/seed.py -- default roles, permissions and admin bootstrap."""

from __future__ import annotations

import pytest

from rbac.engine import AuthorizationEngine
from rbac.seed import DEFAULT_PERMISSIONS, seed_defaults
from rbac.store import RBACStore


class TestSeedDefaults:
    def test_creates_defaults(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        report = seed_defaults(store, engine)
        assert len(report.permissions) == len(DEFAULT_PERMISSIONS)
        assert report.roles == ["administrador", "usuario"]
        assert report.admin_user is None

        admin = store.get_role_by_name("administrador")
        user = store.get_role_by_name("usuario")
        assert len(engine.get_effective_permissions(admin.id)) == len(DEFAULT_PERMISSIONS)
        assert sorted(p.name for p in engine.get_effective_permissions(user.id)) == [
            "read_own_profile",
            "update_own_profile",
        ]

    def test_second_run_creates_nothing(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        seed_defaults(store, engine, admin_email="root@example.com", admin_password="rootpass1")
        report = seed_defaults(store, engine, admin_email="root@example.com", admin_password="rootpass1")
        assert (report.permissions, report.roles, report.links, report.admin_user) == ([], [], 0, None)
        assert store.list_roles().total == 2

    def test_admin_user_holds_admin_role(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        report = seed_defaults(store, engine, admin_email="Root@Example.com", admin_password="rootpass1")
        assert report.admin_user == "root@example.com"
        admin = store.get_user_by_email("root@example.com")
        assert engine.has_role(admin.id, "administrador") is True
        assert engine.has_permission(admin.id, "delete_role") is True

    def test_existing_user_promoted(self, store: RBACStore, engine: AuthorizationEngine, make_user) -> None:
        uid = make_user(email="promote@example.com")
        report = seed_defaults(store, engine, admin_email="promote@example.com", admin_password="ignored1")
        assert report.admin_user is None
        assert engine.has_role(uid, "administrador") is True

    def test_email_without_password_rejected(self, store: RBACStore, engine: AuthorizationEngine) -> None:
        with pytest.raises(ValueError):
            seed_defaults(store, engine, admin_email="root@example.com")
