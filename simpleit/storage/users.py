"""User record lookups used to resolve actors and reporting lines."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text

from simpleit.storage.engine import get_engine

_USER_COLUMNS = "id, username, role, employee_id, manager_id, is_active"


async def get_user(user_id: int) -> dict[str, Any] | None:
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"SELECT {_USER_COLUMNS} FROM users WHERE id = :id"),
            {"id": user_id},
        )
        row = result.first()
    return dict(row._mapping) if row else None


async def get_user_by_username(username: str) -> dict[str, Any] | None:
    """Fetch a user including the password hash, for login."""
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text(f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE username = :username"),
            {"username": username},
        )
        row = result.first()
    return dict(row._mapping) if row else None


async def get_all_users() -> list[dict[str, Any]]:
    engine = await get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(text(f"SELECT {_USER_COLUMNS} FROM users ORDER BY id"))
        return [dict(row._mapping) for row in result]


async def touch_last_login(user_id: int) -> None:
    engine = await get_engine()
    async with engine.begin() as conn:
        await conn.execute(
            text("UPDATE users SET last_login_at = now() WHERE id = :id"),
            {"id": user_id},
        )
