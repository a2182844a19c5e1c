"""Permission constants and the role → permission table.

Permissions follow the `resource:action[:scope]` convention.
The table is built once at import time and is read-only afterwards;
a different policy means constructing a new RolePermissionMap.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from types import MappingProxyType

from simpleit.rbac.roles import Role


class Permission(str, Enum):
    # Assets
    ASSETS_VIEW_ALL = "assets:view:all"
    ASSETS_VIEW_OWN = "assets:view:own"
    ASSETS_VIEW_SUBORDINATES = "assets:view:subordinates"
    ASSETS_CREATE = "assets:create"
    ASSETS_UPDATE = "assets:update"
    ASSETS_DELETE = "assets:delete"
    ASSETS_ASSIGN = "assets:assign"

    # Users
    USERS_VIEW_ALL = "users:view:all"
    USERS_VIEW_SUBORDINATES = "users:view:subordinates"
    USERS_CREATE = "users:create"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"

    # Employees
    EMPLOYEES_VIEW_ALL = "employees:view:all"
    EMPLOYEES_VIEW_SUBORDINATES = "employees:view:subordinates"
    EMPLOYEES_CREATE = "employees:create"
    EMPLOYEES_UPDATE = "employees:update"
    EMPLOYEES_DELETE = "employees:delete"

    # Tickets
    TICKETS_VIEW_ALL = "tickets:view:all"
    TICKETS_VIEW_OWN = "tickets:view:own"
    TICKETS_VIEW_SUBORDINATES = "tickets:view:subordinates"
    TICKETS_CREATE = "tickets:create"
    TICKETS_UPDATE = "tickets:update"
    TICKETS_DELETE = "tickets:delete"
    TICKETS_ASSIGN = "tickets:assign"
    TICKETS_CLOSE = "tickets:close"

    # System
    SYSTEM_CONFIG = "system:config"
    SYSTEM_LOGS = "system:logs"
    SYSTEM_HEALTH = "system:health"
    SYSTEM_BACKUP = "system:backup"
    REPORTS_VIEW = "reports:view"
    AUDIT_LOGS = "audit:logs"


ALL_PERMISSIONS: frozenset[Permission] = frozenset(Permission)


def parse_permission(raw: str | Permission) -> Permission | None:
    try:
        return Permission(raw)
    except ValueError:
        return None


class RolePermissionMap(Mapping[Role, frozenset[Permission]]):
    """Immutable Role → allowed-permission mapping.

    Every Role must have an entry, even an empty one, so a lookup can
    never fall through to an implicit default.
    """

    __slots__ = ("_table",)

    def __init__(self, table: Mapping[Role, Iterable[Permission]]) -> None:
        missing = [r.value for r in Role if r not in table]
        if missing:
            msg = f"Roles without a permission entry: {', '.join(missing)}"
            raise ValueError(msg)
        self._table: Mapping[Role, frozenset[Permission]] = MappingProxyType(
            {role: frozenset(table[role]) for role in Role}
        )

    def __getitem__(self, role: Role) -> frozenset[Permission]:
        return self._table[role]

    def __iter__(self) -> Iterator[Role]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{r.value}={len(p)}" for r, p in self._table.items())
        return f"RolePermissionMap({sizes})"


_ADMIN_EXCLUDED = {Permission.SYSTEM_LOGS, Permission.SYSTEM_HEALTH, Permission.SYSTEM_BACKUP}

DEFAULT_ROLE_PERMISSIONS = RolePermissionMap(
    {
        Role.SUPER_ADMIN: ALL_PERMISSIONS,
        # Everything except system logs, health and backup
        Role.ADMIN: ALL_PERMISSIONS - _ADMIN_EXCLUDED - {
            Permission.ASSETS_VIEW_OWN,
            Permission.ASSETS_VIEW_SUBORDINATES,
            Permission.USERS_VIEW_SUBORDINATES,
            Permission.EMPLOYEES_VIEW_SUBORDINATES,
            Permission.TICKETS_VIEW_OWN,
            Permission.TICKETS_VIEW_SUBORDINATES,
        },
        Role.MANAGER: {
            Permission.ASSETS_VIEW_ALL,
            Permission.ASSETS_CREATE,
            Permission.ASSETS_UPDATE,
            Permission.ASSETS_ASSIGN,
            Permission.USERS_VIEW_SUBORDINATES,
            Permission.EMPLOYEES_VIEW_SUBORDINATES,
            Permission.EMPLOYEES_UPDATE,
            Permission.TICKETS_VIEW_ALL,
            Permission.TICKETS_CREATE,
            Permission.TICKETS_UPDATE,
            Permission.TICKETS_DELETE,
            Permission.TICKETS_ASSIGN,
            Permission.TICKETS_CLOSE,
            Permission.REPORTS_VIEW,
        },
        Role.AGENT: {
            Permission.ASSETS_VIEW_ALL,
            Permission.TICKETS_VIEW_ALL,
            Permission.TICKETS_CREATE,
            Permission.TICKETS_UPDATE,
            Permission.TICKETS_ASSIGN,
            Permission.TICKETS_CLOSE,
        },
        Role.EMPLOYEE: {
            Permission.ASSETS_VIEW_OWN,
            Permission.TICKETS_VIEW_OWN,
            Permission.TICKETS_CREATE,
        },
    }
)

# ── Permission groups (for UI rendering) ─────────────────────

PERMISSION_GROUPS: MappingProxyType[str, tuple[Permission, ...]] = MappingProxyType(
    {
        resource: tuple(p for p in Permission if p.value.split(":", 1)[0] == resource)
        for resource in dict.fromkeys(p.value.split(":", 1)[0] for p in Permission)
    }
)
