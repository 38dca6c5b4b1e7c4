"""
rbac/store.py -- SQLAlchemy Core persistence layer for the RBAC graph.

Uses SQLAlchemy Core (not ORM) so the dataclasses in rbac/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. RBACStore is the repository; the _row_to_*
functions are the mappers. Engine and service code never touch SQL directly.

Transactions:
  Every public method takes an optional ``conn``. Without one, the method
  runs in its own short transaction. Multi-step mutations in rbac/engine.py
  open ``store.transaction()`` once and pass the connection through, so the
  existence check, the diff and the insert commit or roll back together.
  Never open a second connection while holding a transaction -- SQLite
  shared-cache databases lock at table level.

Integrity:
  UNIQUE(user_id, role_id) and UNIQUE(role_id, permission_id) back up the
  duplicate-assignment checks in code. UNIQUE(name) on roles/permissions and
  UNIQUE(resource, action) on permissions back up the Conflict checks in
  rbac/services.py. Callers translate IntegrityError into ConflictError.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = RBACStore()                                # SQLite default
    store = RBACStore("postgresql://user:pw@host/db")  # PostgreSQL
    role_id = store.create_role(Role(name="auditor"))
    page = store.list_roles(page=1, limit=10)
    store.close()
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    delete,
    event,
    func,
    insert,
    or_,
    select,
    text,
    true,
    update,
)
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings
from rbac.models import Page, Permission, PermissionHolder, Role, RoleMember, RolePermission, User, UserRole

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("phone", String(20)),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_permissions = Table(
    "permissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("resource", String(100), nullable=False),
    Column("action", String(50), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("resource", "action", name="uq_permission_resource_action"),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)

_role_permissions = Table(
    "role_permissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
)

# Aliases used only inside the derived-counter subqueries, so the counters
# never correlate against a join table already present in the outer query.
_ur_count = _user_roles.alias("ur_count")
_rp_count = _role_permissions.alias("rp_count")

_USER_FIELDS = {"name", "email", "password_hash", "phone", "is_active"}
_ROLE_FIELDS = {"name", "description", "is_active"}
_PERMISSION_FIELDS = {"name", "description", "resource", "action", "is_active"}


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on every new SQLite connection.

    SQLite PRAGMAs are per-connection, so this runs from the pool's
    "connect" event. foreign_keys is off by default in SQLite, which would
    let join rows reference ids that do not exist.
    """
    dbapi_conn.execute("PRAGMA foreign_keys=ON")
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _like_pattern(term: str) -> str:
    """Escape LIKE wildcards in a free-text term and wrap it for substring match."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _user_select():
    role_count = (
        select(func.count(_ur_count.c.id))
        .where(_ur_count.c.user_id == _users.c.id)
        .correlate(_users)
        .scalar_subquery()
        .label("role_count")
    )
    return select(_users, role_count)


def _role_select():
    user_count = (
        select(func.count(_ur_count.c.id))
        .where(_ur_count.c.role_id == _roles.c.id)
        .correlate(_roles)
        .scalar_subquery()
        .label("user_count")
    )
    permission_count = (
        select(func.count(_rp_count.c.id))
        .where(_rp_count.c.role_id == _roles.c.id)
        .correlate(_roles)
        .scalar_subquery()
        .label("permission_count")
    )
    return select(_roles, user_count, permission_count)


def _permission_select():
    role_count = (
        select(func.count(_rp_count.c.id))
        .where(_rp_count.c.permission_id == _permissions.c.id)
        .correlate(_permissions)
        .scalar_subquery()
        .label("role_count")
    )
    return select(_permissions, role_count)


def _where(stmt, conditions: list):
    return stmt.where(and_(*conditions)) if conditions else stmt


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RBACStore:
    """Repository for User, Role, Permission and their join rows.

    Usage:
        store = RBACStore("sqlite:///:memory:")
        with store.transaction() as conn:
            uid = store.create_user(user, conn=conn)
            store.insert_user_roles(uid, [role_id], conn=conn)
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    @contextmanager
    def transaction(self, conn: Optional[Connection] = None) -> Iterator[Connection]:
        """Yield a connection inside a transaction.

        If conn is given, the caller already owns a transaction: yield it
        unchanged and leave commit/rollback to the owner.
        """
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as new_conn:
            yield new_conn

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User, conn: Optional[Connection] = None) -> str:
        """Insert a new user and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = _new_id()
        now = _now_iso()
        with self.transaction(conn) as c:
            c.execute(
                insert(_users).values(
                    id=user_id,
                    name=user.name,
                    email=user.email.lower(),
                    password_hash=user.password_hash,
                    phone=user.phone,
                    is_active=user.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        return user_id

    def get_user(self, user_id: str, conn: Optional[Connection] = None) -> User | None:
        with self.transaction(conn) as c:
            row = c.execute(_user_select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str, conn: Optional[Connection] = None) -> User | None:
        """Look up a user by email. Emails are stored lowercased, so match lowercased."""
        with self.transaction(conn) as c:
            row = c.execute(_user_select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        conn: Optional[Connection] = None,
    ) -> Page[User]:
        """Return one page of users, newest first. search matches name or email."""
        conditions = []
        if search:
            pattern = _like_pattern(search)
            conditions.append(or_(_users.c.name.ilike(pattern, escape="\\"), _users.c.email.ilike(pattern, escape="\\")))
        if is_active is not None:
            conditions.append(_users.c.is_active == is_active)
        with self.transaction(conn) as c:
            total = c.execute(_where(select(func.count()).select_from(_users), conditions)).scalar_one()
            rows = c.execute(
                _where(_user_select(), conditions)
                .order_by(_users.c.created_at.desc(), _users.c.email.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return Page(data=[_row_to_user(r) for r in rows], total=total, page=page, limit=limit)

    def update_user(self, user_id: str, conn: Optional[Connection] = None, **fields) -> bool:
        """Update mutable user fields. Returns False if user_id was not found.

        Accepted fields: name, email, password_hash, phone, is_active.
        """
        unknown = set(fields) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        with self.transaction(conn) as c:
            result = c.execute(update(_users).where(_users.c.id == user_id).values(updated_at=_now_iso(), **fields))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role, conn: Optional[Connection] = None) -> str:
        """Insert a new role and return its id. IntegrityError on duplicate name."""
        role_id = _new_id()
        now = _now_iso()
        with self.transaction(conn) as c:
            c.execute(
                insert(_roles).values(
                    id=role_id,
                    name=role.name,
                    description=role.description,
                    is_active=role.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        return role_id

    def get_role(self, role_id: str, conn: Optional[Connection] = None) -> Role | None:
        with self.transaction(conn) as c:
            row = c.execute(_role_select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str, conn: Optional[Connection] = None) -> Role | None:
        with self.transaction(conn) as c:
            row = c.execute(_role_select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_roles(self, role_ids: Sequence[str], active_only: bool = False, conn: Optional[Connection] = None) -> list[Role]:
        """Return the roles whose id is in role_ids (unordered). Missing ids are skipped."""
        if not role_ids:
            return []
        conditions = [_roles.c.id.in_(list(role_ids))]
        if active_only:
            conditions.append(_roles.c.is_active.is_(True))
        with self.transaction(conn) as c:
            rows = c.execute(_where(_role_select(), conditions)).fetchall()
        return [_row_to_role(r) for r in rows]

    def list_roles(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        conn: Optional[Connection] = None,
    ) -> Page[Role]:
        """Return one page of roles.

        Ordering: newest first (name breaks ties); by name when searching,
        where recency says little about relevance.
        """
        conditions = []
        if search:
            pattern = _like_pattern(search)
            conditions.append(
                or_(_roles.c.name.ilike(pattern, escape="\\"), _roles.c.description.ilike(pattern, escape="\\"))
            )
        if is_active is not None:
            conditions.append(_roles.c.is_active == is_active)
        order = (_roles.c.name.asc(),) if search else (_roles.c.created_at.desc(), _roles.c.name.asc())
        with self.transaction(conn) as c:
            total = c.execute(_where(select(func.count()).select_from(_roles), conditions)).scalar_one()
            rows = c.execute(
                _where(_role_select(), conditions).order_by(*order).offset((page - 1) * limit).limit(limit)
            ).fetchall()
        return Page(data=[_row_to_role(r) for r in rows], total=total, page=page, limit=limit)

    def list_active_roles(self, conn: Optional[Connection] = None) -> list[Role]:
        with self.transaction(conn) as c:
            rows = c.execute(_role_select().where(_roles.c.is_active.is_(True)).order_by(_roles.c.name.asc())).fetchall()
        return [_row_to_role(r) for r in rows]

    def update_role(self, role_id: str, conn: Optional[Connection] = None, **fields) -> bool:
        """Update mutable role fields (name, description, is_active)."""
        unknown = set(fields) - _ROLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        with self.transaction(conn) as c:
            result = c.execute(update(_roles).where(_roles.c.id == role_id).values(updated_at=_now_iso(), **fields))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission, conn: Optional[Connection] = None) -> str:
        """Insert a new permission and return its id.

        IntegrityError on duplicate name or duplicate (resource, action).
        """
        permission_id = _new_id()
        now = _now_iso()
        with self.transaction(conn) as c:
            c.execute(
                insert(_permissions).values(
                    id=permission_id,
                    name=permission.name,
                    description=permission.description,
                    resource=permission.resource,
                    action=permission.action,
                    is_active=permission.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        return permission_id

    def get_permission(self, permission_id: str, conn: Optional[Connection] = None) -> Permission | None:
        with self.transaction(conn) as c:
            row = c.execute(_permission_select().where(_permissions.c.id == permission_id)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permission_by_name(self, name: str, conn: Optional[Connection] = None) -> Permission | None:
        with self.transaction(conn) as c:
            row = c.execute(_permission_select().where(_permissions.c.name == name)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permission_by_resource_action(
        self, resource: str, action: str, conn: Optional[Connection] = None
    ) -> Permission | None:
        with self.transaction(conn) as c:
            row = c.execute(
                _permission_select().where((_permissions.c.resource == resource) & (_permissions.c.action == action))
            ).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permissions(
        self, permission_ids: Sequence[str], active_only: bool = False, conn: Optional[Connection] = None
    ) -> list[Permission]:
        if not permission_ids:
            return []
        conditions = [_permissions.c.id.in_(list(permission_ids))]
        if active_only:
            conditions.append(_permissions.c.is_active.is_(True))
        with self.transaction(conn) as c:
            rows = c.execute(_where(_permission_select(), conditions)).fetchall()
        return [_row_to_permission(r) for r in rows]

    def list_permissions(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        is_active: Optional[bool] = None,
        conn: Optional[Connection] = None,
    ) -> Page[Permission]:
        """Return one page of permissions ordered by (resource, action).

        search matches name, description or resource; resource and action
        are exact filters.
        """
        conditions = []
        if search:
            pattern = _like_pattern(search)
            conditions.append(
                or_(
                    _permissions.c.name.ilike(pattern, escape="\\"),
                    _permissions.c.description.ilike(pattern, escape="\\"),
                    _permissions.c.resource.ilike(pattern, escape="\\"),
                )
            )
        if resource:
            conditions.append(_permissions.c.resource == resource)
        if action:
            conditions.append(_permissions.c.action == action)
        if is_active is not None:
            conditions.append(_permissions.c.is_active == is_active)
        with self.transaction(conn) as c:
            total = c.execute(_where(select(func.count()).select_from(_permissions), conditions)).scalar_one()
            rows = c.execute(
                _where(_permission_select(), conditions)
                .order_by(_permissions.c.resource.asc(), _permissions.c.action.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).fetchall()
        return Page(data=[_row_to_permission(r) for r in rows], total=total, page=page, limit=limit)

    def list_active_permissions(self, conn: Optional[Connection] = None) -> list[Permission]:
        with self.transaction(conn) as c:
            rows = c.execute(
                _permission_select()
                .where(_permissions.c.is_active.is_(True))
                .order_by(_permissions.c.resource.asc(), _permissions.c.action.asc())
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def distinct_resources(self, conn: Optional[Connection] = None) -> list[str]:
        """Distinct resources over active permissions, ascending."""
        with self.transaction(conn) as c:
            rows = c.execute(
                select(_permissions.c.resource)
                .where(_permissions.c.is_active.is_(True))
                .distinct()
                .order_by(_permissions.c.resource.asc())
            ).fetchall()
        return [r.resource for r in rows]

    def distinct_actions(self, conn: Optional[Connection] = None) -> list[str]:
        """Distinct actions over active permissions, ascending."""
        with self.transaction(conn) as c:
            rows = c.execute(
                select(_permissions.c.action)
                .where(_permissions.c.is_active.is_(True))
                .distinct()
                .order_by(_permissions.c.action.asc())
            ).fetchall()
        return [r.action for r in rows]

    def update_permission(self, permission_id: str, conn: Optional[Connection] = None, **fields) -> bool:
        """Update mutable permission fields (name, description, resource, action, is_active)."""
        unknown = set(fields) - _PERMISSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown permission fields: {unknown!r}")
        with self.transaction(conn) as c:
            result = c.execute(
                update(_permissions).where(_permissions.c.id == permission_id).values(updated_at=_now_iso(), **fields)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # UserRole join rows
    # ------------------------------------------------------------------

    def get_user_role_links(
        self,
        user_id: str,
        role_ids: Optional[Sequence[str]] = None,
        active_only: bool = False,
        conn: Optional[Connection] = None,
    ) -> list[UserRole]:
        """Return the user's join rows, optionally narrowed to role_ids / active rows."""
        conditions = [_user_roles.c.user_id == user_id]
        if role_ids is not None:
            conditions.append(_user_roles.c.role_id.in_(list(role_ids)))
        if active_only:
            conditions.append(_user_roles.c.is_active.is_(True))
        with self.transaction(conn) as c:
            rows = c.execute(_where(select(_user_roles), conditions).order_by(_user_roles.c.assigned_at)).fetchall()
        return [_row_to_user_role(r) for r in rows]

    def insert_user_roles(self, user_id: str, role_ids: Sequence[str], conn: Optional[Connection] = None) -> None:
        """Insert one active join row per role id, stamped now."""
        if not role_ids:
            return
        now = _now_iso()
        with self.transaction(conn) as c:
            c.execute(
                insert(_user_roles),
                [
                    {"id": _new_id(), "user_id": user_id, "role_id": rid, "is_active": True, "assigned_at": now}
                    for rid in role_ids
                ],
            )

    def set_user_roles_active(
        self, user_id: str, role_ids: Sequence[str], active: bool, conn: Optional[Connection] = None
    ) -> int:
        """Flip is_active on the matching join rows. Reactivation restamps assigned_at."""
        if not role_ids:
            return 0
        values: dict = {"is_active": active}
        if active:
            values["assigned_at"] = _now_iso()
        with self.transaction(conn) as c:
            result = c.execute(
                update(_user_roles)
                .where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id.in_(list(role_ids))))
                .values(**values)
            )
        return result.rowcount

    def delete_user_roles(
        self, user_id: str, role_ids: Optional[Sequence[str]] = None, conn: Optional[Connection] = None
    ) -> int:
        """Hard-delete the user's join rows; all of them when role_ids is None."""
        conditions = [_user_roles.c.user_id == user_id]
        if role_ids is not None:
            conditions.append(_user_roles.c.role_id.in_(list(role_ids)))
        with self.transaction(conn) as c:
            result = c.execute(delete(_user_roles).where(and_(*conditions)))
        return result.rowcount

    def get_effective_roles(self, user_id: str, conn: Optional[Connection] = None) -> list[Role]:
        """Roles linked to the user by an active row AND themselves active, by name."""
        linked = select(_user_roles.c.role_id).where(
            (_user_roles.c.user_id == user_id) & (_user_roles.c.is_active.is_(True))
        )
        with self.transaction(conn) as c:
            rows = c.execute(
                _role_select()
                .where(_roles.c.id.in_(linked) & _roles.c.is_active.is_(True))
                .order_by(_roles.c.name.asc())
            ).fetchall()
        return [_row_to_role(r) for r in rows]

    def has_active_role(self, user_id: str, role_name: str, conn: Optional[Connection] = None) -> bool:
        stmt = (
            select(func.count(_user_roles.c.id))
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(
                (_user_roles.c.user_id == user_id)
                & (_user_roles.c.is_active.is_(True))
                & (_roles.c.is_active.is_(True))
                & (_roles.c.name == role_name)
            )
        )
        with self.transaction(conn) as c:
            return (c.execute(stmt).scalar() or 0) > 0

    def count_active_role_members(self, role_id: str, conn: Optional[Connection] = None) -> int:
        """Active join rows pointing at role_id, regardless of the user's own flag."""
        with self.transaction(conn) as c:
            result = c.execute(
                select(func.count(_user_roles.c.id)).where(
                    (_user_roles.c.role_id == role_id) & (_user_roles.c.is_active.is_(True))
                )
            ).scalar()
        return result or 0

    def get_role_members(self, role_id: str, conn: Optional[Connection] = None) -> list[RoleMember]:
        """Users holding role_id through an active row, skipping inactive users."""
        stmt = (
            _user_select()
            .add_columns(_user_roles.c.assigned_at.label("link_assigned_at"))
            .select_from(_users.join(_user_roles, _users.c.id == _user_roles.c.user_id))
            .where(
                (_user_roles.c.role_id == role_id)
                & (_user_roles.c.is_active.is_(True))
                & (_users.c.is_active.is_(True))
            )
            .order_by(_user_roles.c.assigned_at.asc(), _users.c.email.asc())
        )
        with self.transaction(conn) as c:
            rows = c.execute(stmt).fetchall()
        return [RoleMember(user=_row_to_user(r), assigned_at=r.link_assigned_at) for r in rows]

    # ------------------------------------------------------------------
    # RolePermission join rows
    # ------------------------------------------------------------------

    def get_role_permission_links(
        self,
        role_id: str,
        permission_ids: Optional[Sequence[str]] = None,
        active_only: bool = False,
        conn: Optional[Connection] = None,
    ) -> list[RolePermission]:
        conditions = [_role_permissions.c.role_id == role_id]
        if permission_ids is not None:
            conditions.append(_role_permissions.c.permission_id.in_(list(permission_ids)))
        if active_only:
            conditions.append(_role_permissions.c.is_active.is_(True))
        with self.transaction(conn) as c:
            rows = c.execute(
                _where(select(_role_permissions), conditions).order_by(_role_permissions.c.assigned_at)
            ).fetchall()
        return [_row_to_role_permission(r) for r in rows]

    def insert_role_permissions(
        self, role_id: str, permission_ids: Sequence[str], conn: Optional[Connection] = None
    ) -> None:
        if not permission_ids:
            return
        now = _now_iso()
        with self.transaction(conn) as c:
            c.execute(
                insert(_role_permissions),
                [
                    {"id": _new_id(), "role_id": role_id, "permission_id": pid, "is_active": True, "assigned_at": now}
                    for pid in permission_ids
                ],
            )

    def set_role_permissions_active(
        self, role_id: str, permission_ids: Sequence[str], active: bool, conn: Optional[Connection] = None
    ) -> int:
        if not permission_ids:
            return 0
        values: dict = {"is_active": active}
        if active:
            values["assigned_at"] = _now_iso()
        with self.transaction(conn) as c:
            result = c.execute(
                update(_role_permissions)
                .where(
                    (_role_permissions.c.role_id == role_id)
                    & (_role_permissions.c.permission_id.in_(list(permission_ids)))
                )
                .values(**values)
            )
        return result.rowcount

    def delete_role_permissions(
        self, role_id: str, permission_ids: Optional[Sequence[str]] = None, conn: Optional[Connection] = None
    ) -> int:
        conditions = [_role_permissions.c.role_id == role_id]
        if permission_ids is not None:
            conditions.append(_role_permissions.c.permission_id.in_(list(permission_ids)))
        with self.transaction(conn) as c:
            result = c.execute(delete(_role_permissions).where(and_(*conditions)))
        return result.rowcount

    def get_effective_permissions(self, role_id: str, conn: Optional[Connection] = None) -> list[Permission]:
        """Permissions linked to the role by an active row AND themselves active."""
        linked = select(_role_permissions.c.permission_id).where(
            (_role_permissions.c.role_id == role_id) & (_role_permissions.c.is_active.is_(True))
        )
        with self.transaction(conn) as c:
            rows = c.execute(
                _permission_select()
                .where(_permissions.c.id.in_(linked) & _permissions.c.is_active.is_(True))
                .order_by(_permissions.c.resource.asc(), _permissions.c.action.asc())
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def get_user_permissions(self, user_id: str, conn: Optional[Connection] = None) -> list[Permission]:
        """Distinct permissions reachable through the user's effective roles.

        Every hop must be active: user->role link, role, role->permission
        link, permission.
        """
        effective_roles = (
            select(_user_roles.c.role_id)
            .select_from(_user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id))
            .where(
                (_user_roles.c.user_id == user_id)
                & (_user_roles.c.is_active.is_(True))
                & (_roles.c.is_active.is_(True))
            )
        )
        linked = select(_role_permissions.c.permission_id).where(
            _role_permissions.c.role_id.in_(effective_roles) & _role_permissions.c.is_active.is_(True)
        )
        with self.transaction(conn) as c:
            rows = c.execute(
                _permission_select()
                .where(_permissions.c.id.in_(linked) & _permissions.c.is_active.is_(True))
                .order_by(_permissions.c.resource.asc(), _permissions.c.action.asc())
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def count_active_permission_holders(self, permission_id: str, conn: Optional[Connection] = None) -> int:
        """Active join rows pointing at permission_id, regardless of the role's own flag."""
        with self.transaction(conn) as c:
            result = c.execute(
                select(func.count(_role_permissions.c.id)).where(
                    (_role_permissions.c.permission_id == permission_id) & (_role_permissions.c.is_active.is_(True))
                )
            ).scalar()
        return result or 0

    def get_permission_holders(self, permission_id: str, conn: Optional[Connection] = None) -> list[PermissionHolder]:
        """Roles carrying permission_id through an active row, skipping inactive roles."""
        stmt = (
            _role_select()
            .add_columns(_role_permissions.c.assigned_at.label("link_assigned_at"))
            .select_from(_roles.join(_role_permissions, _roles.c.id == _role_permissions.c.role_id))
            .where(
                (_role_permissions.c.permission_id == permission_id)
                & (_role_permissions.c.is_active.is_(True))
                & (_roles.c.is_active.is_(True))
            )
            .order_by(_roles.c.name.asc())
        )
        with self.transaction(conn) as c:
            rows = c.execute(stmt).fetchall()
        return [PermissionHolder(role=_row_to_role(r), assigned_at=r.link_assigned_at) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        phone=row.phone,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        role_count=getattr(row, "role_count", 0) or 0,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_count=getattr(row, "user_count", 0) or 0,
        permission_count=getattr(row, "permission_count", 0) or 0,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        description=row.description,
        resource=row.resource,
        action=row.action,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        role_count=getattr(row, "role_count", 0) or 0,
    )


def _row_to_user_role(row) -> UserRole:
    return UserRole(
        id=row.id,
        user_id=row.user_id,
        role_id=row.role_id,
        is_active=bool(row.is_active),
        assigned_at=row.assigned_at,
    )


def _row_to_role_permission(row) -> RolePermission:
    return RolePermission(
        id=row.id,
        role_id=row.role_id,
        permission_id=row.permission_id,
        is_active=bool(row.is_active),
        assigned_at=row.assigned_at,
    )
