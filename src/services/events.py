"""Redis pub/sub publisher for identity domain events."""

import json
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis
import structlog

log = structlog.get_logger()


class EventPublisher:
    """Publishes JSON events on ``<prefix>:<routing key>`` channels.

    The Redis client is created and closed by the process entry point.
    """

    def __init__(self, client: redis.Redis, channel_prefix: str = "events") -> None:
        self._client = client
        self._prefix = channel_prefix

    async def publish(self, routing_key: str, payload: dict[str, Any]) -> int:
        """Publish one event. Returns the number of subscribers that received it."""
        event = {
            "event_type": routing_key,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": payload,
        }
        channel = f"{self._prefix}:{routing_key}"
        receivers = await self._client.publish(channel, json.dumps(event, default=str))
        log.debug("event_published", channel=channel, receivers=receivers)
        return receivers
