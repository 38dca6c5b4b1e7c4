"""
api/wiring.py -- Assemble the service graph once at startup.

Every component receives its collaborators through its constructor; there is
no global container. The lifespan in api/main.py calls build_services() and
stores the bundle on app.state.services. Tests build their own bundle against
an isolated store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from auth.service import AuthService
from core.config import Settings, get_settings
from rbac.engine import AuthorizationEngine
from rbac.services import PermissionService, RoleService, UserService
from rbac.store import RBACStore


@dataclass
class Services:
    store: RBACStore
    engine: AuthorizationEngine
    users: UserService
    roles: RoleService
    permissions: PermissionService
    auth: AuthService


def build_services(store: Optional[RBACStore] = None, settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    store = store or RBACStore(settings.database_url)
    engine = AuthorizationEngine(store)
    return Services(
        store=store,
        engine=engine,
        users=UserService(store, engine),
        roles=RoleService(store, engine),
        permissions=PermissionService(store, engine),
        auth=AuthService(store, engine, settings),
    )
