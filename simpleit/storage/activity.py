"""Activity log (audit trail) writes."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from sqlalchemy import text

from simpleit.storage.engine import get_engine

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    ASSIGN = "ASSIGN"
    STATUS_CHANGE = "STATUS_CHANGE"


class EntityType(str, Enum):
    USER = "USER"
    EMPLOYEE = "EMPLOYEE"
    ASSET = "ASSET"
    TICKET = "TICKET"
    SESSION = "SESSION"


async def log_activity(
    user_id: int | None,
    action: AuditAction | str,
    entity_type: EntityType | str,
    entity_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> None:
    """Append to activity_logs. Failures are logged, never raised."""
    action_value = action.value if isinstance(action, AuditAction) else action
    entity_value = entity_type.value if isinstance(entity_type, EntityType) else entity_type
    try:
        engine = await get_engine()
        async with engine.begin() as conn:
            await conn.execute(
                text("""
                    INSERT INTO activity_logs
                        (user_id, action, entity_type, entity_id, details, ip_address)
                    VALUES
                        (:user_id, :action, :entity_type, :entity_id,
                         CAST(:details AS jsonb), :ip_address)
                """),
                {
                    "user_id": user_id,
                    "action": action_value,
                    "entity_type": entity_value,
                    "entity_id": None if entity_id is None else str(entity_id),
                    "details": json.dumps(details) if details is not None else None,
                    "ip_address": ip_address,
                },
            )
    except Exception:
        logger.warning(
            "Failed to write activity log %s %s", action_value, entity_value, exc_info=True
        )
