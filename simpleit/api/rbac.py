"""Role catalogue and reporting-line endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from simpleit.api.auth import get_current_actor, require_permission
from simpleit.errors import AuthorizationDenied
from simpleit.rbac.actor import Actor
from simpleit.rbac.permissions import PERMISSION_GROUPS, Permission
from simpleit.rbac.policy import get_policy, get_subordinate_ids
from simpleit.rbac.roles import ROLE_DISPLAY_NAMES, ROLE_LEVELS, roles_by_level
from simpleit.storage import users as user_store

router = APIRouter(prefix="/rbac", tags=["rbac"])

_actor_dep = Depends(get_current_actor)
_users_view_all = Depends(require_permission(Permission.USERS_VIEW_ALL))


@router.get("/roles")
async def list_roles(_: Actor = _users_view_all) -> dict[str, Any]:
    """All roles, most privileged first, with their permission sets."""
    policy = get_policy()
    roles = [
        {
            "id": role.value,
            "level": ROLE_LEVELS[role],
            "display_name": dict(ROLE_DISPLAY_NAMES[role]),
            "permissions": sorted(p.value for p in policy.permissions_for(role)),
        }
        for role in roles_by_level()
    ]
    groups = {name: [p.value for p in perms] for name, perms in PERMISSION_GROUPS.items()}
    return {"roles": roles, "permission_groups": groups}


@router.get("/subordinates")
async def list_subordinates(
    manager_id: int | None = Query(None),
    actor: Actor = _actor_dep,
) -> dict[str, Any]:
    """Users reporting directly to a manager, the caller by default.

    Needs ``users:view:subordinates`` or ``users:view:all``. Naming another
    manager through ``manager_id`` needs ``users:view:all``.
    """
    policy = get_policy()
    if not policy.has_any_permission(
        actor.role, (Permission.USERS_VIEW_ALL, Permission.USERS_VIEW_SUBORDINATES)
    ):
        raise AuthorizationDenied(
            required=Permission.USERS_VIEW_SUBORDINATES.value, actual_role=actor.raw_role
        )

    target = actor.id if manager_id is None else manager_id
    if target != actor.id and not policy.has_permission(actor.role, Permission.USERS_VIEW_ALL):
        raise AuthorizationDenied(
            required=Permission.USERS_VIEW_ALL.value, actual_role=actor.raw_role
        )

    users = await user_store.get_all_users()
    ids = set(get_subordinate_ids(users, target))
    return {
        "manager_id": target,
        "subordinates": [u for u in users if u["id"] in ids],
    }
