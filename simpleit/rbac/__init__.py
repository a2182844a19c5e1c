"""Role-based access control: roles, permissions and visibility rules."""

from __future__ import annotations

from simpleit.rbac.actor import Actor
from simpleit.rbac.permissions import (
    ALL_PERMISSIONS,
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_GROUPS,
    Permission,
    RolePermissionMap,
)
from simpleit.rbac.policy import (
    Allow,
    Decision,
    Deny,
    PermissionPolicy,
    Unrecognized,
    can_access_resource,
    evaluate,
    filter_by_ownership,
    get_policy,
    get_subordinate_ids,
    has_all_permissions,
    has_any_permission,
    has_permission,
    minimum_role_for_permission,
)
from simpleit.rbac.roles import (
    ROLE_LEVELS,
    Role,
    normalize_role_id,
    parse_role,
    resolve_role,
    role_level,
)

__all__ = [
    "ALL_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "PERMISSION_GROUPS",
    "ROLE_LEVELS",
    "Actor",
    "Allow",
    "Decision",
    "Deny",
    "Permission",
    "PermissionPolicy",
    "Role",
    "RolePermissionMap",
    "Unrecognized",
    "can_access_resource",
    "evaluate",
    "filter_by_ownership",
    "get_policy",
    "get_subordinate_ids",
    "has_all_permissions",
    "has_any_permission",
    "has_permission",
    "minimum_role_for_permission",
    "normalize_role_id",
    "parse_role",
    "resolve_role",
    "role_level",
]
