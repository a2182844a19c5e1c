"""Redis Pub/Sub event publisher for ticket notifications.

Route handlers publish via `publish_event()`. The email notifier and the
dashboard websocket subscribe to the channel; neither lives in this repo.

Event format:
    {"type": "ticket:status_changed", "data": {...}, "timestamp": "ISO8601"}
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

CHANNEL = "simpleit:events"

_redis: Any = None


async def _get_redis() -> Any:
    """Lazily create and cache Redis connection for publishing."""
    global _redis
    if _redis is None:
        from redis.asyncio import Redis

        from simpleit.config import get_settings

        settings = get_settings()
        _redis = Redis.from_url(settings.redis.url, decode_responses=True)
    return _redis


async def publish_event(event_type: str, data: dict[str, Any] | None = None) -> None:
    """Publish an event to the Redis Pub/Sub channel.

    Args:
        event_type: Event type (e.g. "ticket:created", "ticket:assigned").
        data: Event payload.
    """
    message = json.dumps(
        {
            "type": event_type,
            "data": data or {},
            "timestamp": datetime.now(UTC).isoformat(),
        },
        default=str,
    )
    try:
        r = await _get_redis()
        await r.publish(CHANNEL, message)
    except Exception:
        logger.debug("Failed to publish event %s", event_type, exc_info=True)
