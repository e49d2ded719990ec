"""Realtime fan-out bridge.

Wraps a Socket.IO server whose emits are relayed through a shared broker,
so a broadcast on any instance reaches sockets connected to every instance.
The bridge starts ``uninitialized`` and only becomes ``ready`` once both
broker connections are up; callers must not accept traffic before that.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import socketio
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.types import ASGIApp

from ..config import Settings
from ..logging_config import get_logger
from ..metrics import record_socket_connected, record_socket_disconnected
from .pubsub import RedisPubSubManager

logger = get_logger(__name__)

ConnectionHook = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class BridgeState(StrEnum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class BridgeConnectionError(Exception):
    """Raised when the broker cannot be reached while starting the bridge."""


def redis_client(url: str) -> Redis:
    return Redis.from_url(url)


async def no_op_connection_hook(sid: str, environ: dict[str, Any]) -> None:
    """Default per-connection setup: nothing to do."""
    return None


class FanoutBridge:
    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[[str], Redis] = redis_client,
        connection_hook: ConnectionHook = no_op_connection_hook,
    ):
        self.settings = settings
        self.connection_hook = connection_hook
        self.state = BridgeState.UNINITIALIZED

        self.publisher = client_factory(settings.redis_host)
        self.subscriber = client_factory(settings.redis_host)
        self.manager = RedisPubSubManager(
            self.publisher, self.subscriber, channel=settings.broker_channel
        )
        self.server = socketio.AsyncServer(
            async_mode="asgi",
            client_manager=self.manager,
            cors_allowed_origins=[settings.client_url],
            cors_credentials=True,
            logger=False,
            engineio_logger=False,
        )
        self.server.on("connect", self._on_connect)
        self.server.on("disconnect", self._on_disconnect)

    @property
    def is_ready(self) -> bool:
        return self.state is BridgeState.READY

    def wrap(self, app: ASGIApp) -> socketio.ASGIApp:
        """Serve Socket.IO traffic and hand everything else to ``app``."""
        return socketio.ASGIApp(self.server, other_asgi_app=app)

    async def start(self) -> None:
        """Connect publisher and subscriber, then start relaying messages.

        Raises:
            BridgeConnectionError: if either broker connection fails
        """
        if self.is_ready:
            return
        try:
            async with asyncio.timeout(self.settings.broker_connect_timeout):
                await asyncio.gather(self.publisher.ping(), self.subscriber.ping())
        except (RedisError, OSError, TimeoutError) as e:
            logger.error(
                "Could not connect to pub/sub broker",
                broker=self.settings.redis_host,
                error=str(e) or type(e).__name__,
            )
            raise BridgeConnectionError(
                f"Pub/sub broker unreachable at {self.settings.redis_host}"
            ) from e

        # Start the listener now instead of on the first socket connection,
        # so emits from other instances are relayed from the start.
        self.server.manager_initialized = True
        self.manager.initialize()
        self.state = BridgeState.READY
        logger.info("Realtime bridge ready", channel=self.settings.broker_channel)

    async def emit(self, event: str, data: Any = None, **kwargs: Any) -> None:
        """Broadcast to matching sockets on every instance."""
        await self.server.emit(event, data, **kwargs)

    async def _on_connect(self, sid: str, environ: dict[str, Any], auth: Any = None):
        logger.debug("Socket connected", sid=sid)
        record_socket_connected()
        result = self.connection_hook(sid, environ)
        if asyncio.iscoroutine(result):
            await result

    async def _on_disconnect(self, sid: str, *args: Any) -> None:
        logger.debug("Socket disconnected", sid=sid)
        record_socket_disconnected()

    async def close(self) -> None:
        listener = getattr(self.manager, "thread", None)
        if listener is not None and not listener.done():
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)
        await asyncio.gather(
            self.manager.pubsub.aclose(),
            self.publisher.aclose(),
            self.subscriber.aclose(),
            return_exceptions=True,
        )
        self.state = BridgeState.UNINITIALIZED
