"""The authenticated caller, built per request from the session token."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from simpleit.rbac.roles import Role, resolve_role, role_level


@dataclass(frozen=True)
class Actor:
    id: int
    username: str
    role: Role
    raw_role: str
    employee_id: int | None = None
    manager_id: int | None = None

    @property
    def level(self) -> int:
        return role_level(self.role)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Actor:
        """Build an Actor from decoded JWT claims."""
        raw_role = str(claims.get("role") or "")
        return cls(
            id=int(claims["user_id"]),
            username=str(claims.get("sub", "")),
            role=resolve_role(raw_role),
            raw_role=raw_role,
            employee_id=_optional_int(claims.get("employee_id")),
            manager_id=_optional_int(claims.get("manager_id")),
        )


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)
