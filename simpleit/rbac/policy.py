"""Permission decisions and resource-visibility rules.

``evaluate`` returns an explicit Decision so callers and tests can tell a
deliberate grant from a fallback: an unknown role yields ``Unrecognized``
carrying the least-privileged role it was judged as.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar

from simpleit.rbac.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    Permission,
    RolePermissionMap,
    parse_permission,
)
from simpleit.rbac.roles import (
    LOWEST_ROLE,
    Role,
    parse_role,
    resolve_role,
    roles_by_level,
)

T = TypeVar("T")

# Roles that bypass ownership checks
_UNRESTRICTED_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


@dataclass(frozen=True)
class Allow:
    role: Role
    permission: Permission

    allowed = True


@dataclass(frozen=True)
class Deny:
    role: Role
    permission: str
    reason: str = "not_granted"

    allowed = False


@dataclass(frozen=True)
class Unrecognized:
    """The role string matched no Role; the answer used the fallback role."""

    raw_role: str | None
    fallback: Role
    permission: str
    allowed: bool


Decision = Allow | Deny | Unrecognized


class PermissionPolicy:
    """Answers permission questions against one immutable permission map."""

    def __init__(self, role_permissions: RolePermissionMap = DEFAULT_ROLE_PERMISSIONS) -> None:
        self._map = role_permissions

    @property
    def role_permissions(self) -> RolePermissionMap:
        return self._map

    def permissions_for(self, role: str | Role | None) -> frozenset[Permission]:
        return self._map[resolve_role(role)]

    def evaluate(self, role: str | Role | None, permission: str | Permission) -> Decision:
        parsed_role = parse_role(role)
        parsed_perm = parse_permission(permission)

        if parsed_role is None:
            # resolve_role logs and counts the anomaly
            fallback = resolve_role(role)
            granted = parsed_perm is not None and parsed_perm in self._map[fallback]
            return Unrecognized(
                raw_role=None if role is None else str(role),
                fallback=fallback,
                permission=str(permission),
                allowed=granted,
            )

        if parsed_perm is None:
            return Deny(role=parsed_role, permission=str(permission), reason="unknown_permission")

        if parsed_perm in self._map[parsed_role]:
            return Allow(role=parsed_role, permission=parsed_perm)
        return Deny(role=parsed_role, permission=parsed_perm.value)

    def has_permission(self, role: str | Role | None, permission: str | Permission) -> bool:
        return self.evaluate(role, permission).allowed

    def has_any_permission(
        self, role: str | Role | None, permissions: Iterable[str | Permission]
    ) -> bool:
        return any(self.has_permission(role, p) for p in permissions)

    def has_all_permissions(
        self, role: str | Role | None, permissions: Iterable[str | Permission]
    ) -> bool:
        return all(self.has_permission(role, p) for p in permissions)

    def minimum_role_for_permission(self, permission: str | Permission) -> Role | None:
        """Lowest-level role holding the permission, or None if no role does."""
        parsed = parse_permission(permission)
        if parsed is None:
            return None
        for role in reversed(roles_by_level()):
            if parsed in self._map[role]:
                return role
        return None


@lru_cache(maxsize=1)
def get_policy() -> PermissionPolicy:
    """Process-wide policy, built once from the default table."""
    return PermissionPolicy(DEFAULT_ROLE_PERMISSIONS)


def evaluate(role: str | Role | None, permission: str | Permission) -> Decision:
    return get_policy().evaluate(role, permission)


def has_permission(role: str | Role | None, permission: str | Permission) -> bool:
    """Whether the role's permission set contains the permission.

    Unknown roles are judged as the least privileged role.
    """
    return get_policy().has_permission(role, permission)


def has_any_permission(role: str | Role | None, permissions: Iterable[str | Permission]) -> bool:
    return get_policy().has_any_permission(role, permissions)


def has_all_permissions(role: str | Role | None, permissions: Iterable[str | Permission]) -> bool:
    return get_policy().has_all_permissions(role, permissions)


def minimum_role_for_permission(permission: str | Permission) -> Role | None:
    return get_policy().minimum_role_for_permission(permission)


def can_access_resource(
    role: str | Role | None,
    actor_id: int,
    resource_owner_id: int | None = None,
    resource_manager_id: int | None = None,
) -> bool:
    """Ownership and hierarchy check for a single resource.

    Any one of these grants access: the role is super_admin/admin, the
    actor owns the resource, or the actor is a manager and manages the
    resource's owner.
    """
    resolved = resolve_role(role)
    if resolved in _UNRESTRICTED_ROLES:
        return True
    if resource_owner_id is not None and resource_owner_id == actor_id:
        return True
    return (
        resolved is Role.MANAGER
        and resource_manager_id is not None
        and resource_manager_id == actor_id
    )


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def filter_by_ownership(
    items: Sequence[T],
    role: str | Role | None,
    actor_id: int,
    owner_field: str = "owner_id",
) -> list[T]:
    """Restrict a collection to what the actor may list.

    super_admin/admin and the mid-tier roles (manager, agent) get the full
    collection; mid-tier roles are not yet narrowed by team or department.
    The employee role only sees items it submitted, is assigned to, or
    owns through ``owner_field``.
    """
    resolved = resolve_role(role)
    if resolved is not LOWEST_ROLE:
        return list(items)

    return [
        item
        for item in items
        if actor_id
        in (
            _field(item, "submitted_by_id"),
            _field(item, "assigned_to_id"),
            _field(item, owner_field),
        )
    ]


def get_subordinate_ids(users: Iterable[Any], manager_id: int) -> list[int]:
    """IDs of users whose manager_id points at the given manager."""
    return [int(_field(u, "id")) for u in users if _field(u, "manager_id") == manager_id]
