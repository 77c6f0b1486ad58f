import logging
from typing import Optional

import redis

from .events import Event

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global:announcements"


class EventPublisher:
    """
    Publishes domain events on Redis channels:
    - user:{id}:notifications for the affected user
    - tournament:{id}:events for the affected tournament
    - global:announcements for tournament lifecycle changes

    Without a Redis client every publish is a no-op.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client

    @classmethod
    def from_url(cls, redis_url: Optional[str]) -> "EventPublisher":
        if not redis_url:
            logger.info("EventPublisher running without Redis (events are not published)")
            return cls(None)
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    def channels_for(self, event: Event) -> list:
        channels = []
        if event.user_id is not None:
            channels.append(f"user:{event.user_id}:notifications")
        if event.tournament_id is not None:
            channels.append(f"tournament:{event.tournament_id}:events")
        if event.user_id is None:
            channels.append(GLOBAL_CHANNEL)
        return channels

    def publish(self, event: Event) -> bool:
        """Publish an event; failures are logged and reported as False."""
        if not self.enabled:
            return False

        payload = event.to_json()
        try:
            for channel in self.channels_for(event):
                self.redis.publish(channel, payload)
        except redis.RedisError as e:
            logger.error(f"Failed to publish {event.type} event: {e}")
            return False

        logger.debug(f"Published {event.type} event: {payload}")
        return True

    def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False
