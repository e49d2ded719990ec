"""Socket.IO client manager backed by two injected broker connections."""

from typing import Any

from redis.asyncio import Redis
from socketio import AsyncRedisManager


class RedisPubSubManager(AsyncRedisManager):
    """``AsyncRedisManager`` running on connections created by its owner.

    One client publishes, the other carries the subscription. Publish retries
    and the listener's reconnect backoff stay with the library; a reconnect
    only opens a fresh subscription on the same subscriber client, whose
    connection pool re-dials on its own.
    """

    def __init__(
        self,
        publisher: Redis,
        subscriber: Redis,
        channel: str = "socketio",
        write_only: bool = False,
        logger: Any = None,
    ):
        # Bound before the base class connects
        self.publisher = publisher
        self.subscriber = subscriber
        super().__init__(channel=channel, write_only=write_only, logger=logger)

    def _redis_connect(self) -> None:
        self.redis = self.publisher
        self.pubsub = self.subscriber.pubsub(ignore_subscribe_messages=True)
