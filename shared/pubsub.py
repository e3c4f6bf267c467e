import os
import logging
import redis
from typing import Optional
from .events import Event

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global:announcements"


class PubSubClient:
    """
    Publishes server lifecycle events over Redis.

    Publishing is best effort: a Redis outage is logged and never
    propagates into the server lifecycle code that emitted the event.
    """

    def __init__(self, redis_url: str = None, redis_client: redis.Redis = None):
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
        self.redis = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )

    def publish(self, channel: str, event: Event) -> bool:
        try:
            self.redis.publish(channel, event.to_json())
            return True
        except redis.RedisError as e:
            logger.warning(f"Failed to publish {event.type} on {channel}: {e}")
            return False

    def publish_world_event(self, event: Event) -> bool:
        channel = f"world:{event.world_id}:events"
        published = self.publish(channel, event)
        return self.publish(GLOBAL_CHANNEL, event) and published

    def report_server_status(self, world_id: str, status: str, port: Optional[int] = None,
                             exit_code: Optional[int] = None):
        """Store the last known status of a server for other nodes to read."""
        try:
            self.redis.hset(f"server:{world_id}", mapping={
                "status": status,
                "port": str(port) if port else "",
                "exit_code": "" if exit_code is None else str(exit_code)
            })
        except redis.RedisError as e:
            logger.warning(f"Failed to store status of {world_id}: {e}")
