"""Event fan-out for indexer state changes.

Events go out over Redis pub/sub so the gateway and monitor can push live
updates. Publishing is best effort: a Redis outage is logged and never fails
the indexing or confirmation work that produced the event.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from metagraph_sync.core.settings import settings

logger = logging.getLogger(__name__)

CHANNEL_STATS_UPDATED = "stats:updated"
CHANNEL_ACTIVITY_FEED = "activity:feed"

EVENT_SNAPSHOT_CONFIRMED = "SNAPSHOT_CONFIRMED"
EVENT_SNAPSHOT_INDEXED = "SNAPSHOT_INDEXED"
EVENT_TRANSITION = "TRANSITION"


class EventPublisher(Protocol):
    """Anything that can publish a JSON event to a named channel."""

    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class NullEventPublisher:
    """Publisher used when event fan-out is disabled."""

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        logger.debug("Event fan-out disabled; dropping %s event", channel)


class RedisEventPublisher:
    """Publishes JSON-encoded events on Redis pub/sub channels."""

    def __init__(self, client: Redis | None = None, *, url: str | None = None) -> None:
        self._redis = client or redis_from_url(url or settings.redis_url)

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        message = json.dumps(payload, default=str)
        try:
            await self._redis.publish(channel, message)
        except (RedisError, OSError) as exc:
            logger.warning("Failed to publish %s event: %s", channel, exc)

    async def close(self) -> None:
        await self._redis.aclose()


def build_event_publisher() -> EventPublisher:
    """Return the publisher matching the ``EVENTS_ENABLED`` setting."""
    if settings.events_enabled:
        return RedisEventPublisher()
    return NullEventPublisher()
