"""Role definitions, hierarchy levels and normalization.

Roles are a closed set. Raw role strings arriving from tokens or user
rows go through ``normalize_role_id`` first, so ``"Admin"``,
``" admin "`` and ``"super-admin"`` all resolve.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from types import MappingProxyType
from typing import Literal

from simpleit.monitoring.metrics import unrecognized_roles_total

logger = logging.getLogger(__name__)

Language = Literal["en", "ar"]

_unrecognized_log_level = logging.WARNING


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    EMPLOYEE = "employee"


LOWEST_ROLE = Role.EMPLOYEE

ROLE_LEVELS: MappingProxyType[Role, int] = MappingProxyType(
    {
        Role.SUPER_ADMIN: 5,
        Role.ADMIN: 4,
        Role.MANAGER: 3,
        Role.AGENT: 2,
        Role.EMPLOYEE: 1,
    }
)

ROLE_DISPLAY_NAMES: MappingProxyType[Role, dict[str, str]] = MappingProxyType(
    {
        Role.SUPER_ADMIN: {"en": "Super Admin", "ar": "مسؤول عام"},
        Role.ADMIN: {"en": "Admin", "ar": "مشرف"},
        Role.MANAGER: {"en": "Manager", "ar": "مدير"},
        Role.AGENT: {"en": "Agent", "ar": "وكيل"},
        Role.EMPLOYEE: {"en": "Employee", "ar": "موظف"},
    }
)

_SEPARATORS = re.compile(r"[\s-]+")


def normalize_role_id(raw: str | Role | None) -> str:
    """Lowercase, trim and underscore-join a role string."""
    if raw is None:
        return ""
    if isinstance(raw, Role):
        return raw.value
    return _SEPARATORS.sub("_", str(raw).strip().lower())


def parse_role(raw: str | Role | None) -> Role | None:
    """Return the matching Role, or None when the string is not a known role."""
    try:
        return Role(normalize_role_id(raw))
    except ValueError:
        return None


def is_valid_role_id(raw: str | Role | None) -> bool:
    return parse_role(raw) is not None


def resolve_role(raw: str | Role | None) -> Role:
    """Map any input to a Role, falling back to the least privileged one.

    Unknown roles are a configuration anomaly, not a request error: they
    are logged and counted, then treated as employee.
    """
    role = parse_role(raw)
    if role is not None:
        return role
    unrecognized_roles_total.inc()
    logger.log(
        _unrecognized_log_level,
        "Unrecognized role %r, using %s",
        raw,
        LOWEST_ROLE.value,
        extra={"role": raw},
    )
    return LOWEST_ROLE


def set_unrecognized_role_log_level(level: str | int) -> None:
    """Set the level unknown-role fallbacks are logged at (RBAC_UNRECOGNIZED_ROLE_LOG_LEVEL)."""
    global _unrecognized_log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {level!r}"
        raise ValueError(msg)
    _unrecognized_log_level = level


def role_level(raw: str | Role | None) -> int:
    """Hierarchy level of a role; 0 for anything unrecognized."""
    role = parse_role(raw)
    if role is None:
        return 0
    return ROLE_LEVELS[role]


def has_higher_or_equal_role(role_a: str | Role, role_b: str | Role) -> bool:
    return role_level(role_a) >= role_level(role_b)


def has_higher_role(role_a: str | Role, role_b: str | Role) -> bool:
    return role_level(role_a) > role_level(role_b)


def roles_by_level() -> list[Role]:
    """All roles, most privileged first."""
    return sorted(Role, key=lambda r: ROLE_LEVELS[r], reverse=True)


def accessible_roles(raw: str | Role | None) -> list[Role]:
    """Roles at or below the given role's level (e.g. for role pickers)."""
    level = role_level(raw)
    return [r for r in roles_by_level() if ROLE_LEVELS[r] <= level]


def get_role_display_name(raw: str | Role, language: Language = "en") -> str:
    role = parse_role(raw)
    if role is None:
        return str(raw)
    return ROLE_DISPLAY_NAMES[role][language]


def get_role_id_from_display_name(display_name: str) -> Role | None:
    """Resolve a role from its id or from an English/Arabic display name."""
    role = parse_role(display_name)
    if role is not None:
        return role
    wanted = display_name.strip()
    for candidate, names in ROLE_DISPLAY_NAMES.items():
        if names["en"].lower() == wanted.lower() or names["ar"] == wanted:
            return candidate
    return None
