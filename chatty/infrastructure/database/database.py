"""Database connection lifecycle.

``DatabaseConnector`` owns the async engine. The first connection attempt is
fail-fast: if the store is unreachable at boot the failure is recorded on
``boot_error`` and the server shuts down with a non-zero exit. Once
connected, a monitor pings the store and reconnects with bounded exponential
backoff whenever the connection is lost; after too many consecutive failures
the circuit opens for a cool-down period before retries resume.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ...config import Settings
from ...logging_config import get_logger
from ...metrics import record_db_disconnect, record_db_reconnect_attempt

logger = get_logger(__name__)

CONNECTION_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class DatabaseConnectionError(Exception):
    """Raised when the database could not be reached at boot."""


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


def create_engine_for(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database URL."""
    database_url = settings.async_database_url
    engine_kwargs: dict[str, Any] = {}

    if database_url.startswith("postgresql"):
        engine_kwargs = {
            "pool_size": 20,
            "max_overflow": 15,
            "pool_recycle": 3600,  # Recycle connections every hour
            "pool_pre_ping": True,  # Validate connections before use
        }

    return create_async_engine(database_url, **engine_kwargs)


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Delay before reconnect ``attempt`` (1-based): base * 2**(attempt-1), capped."""
    return min(base * 2 ** (attempt - 1), maximum)


class DatabaseConnector:
    def __init__(
        self,
        settings: Settings,
        engine_factory: Callable[[Settings], AsyncEngine] = create_engine_for,
    ):
        self.settings = settings
        self._engine_factory = engine_factory
        self.engine: AsyncEngine | None = None
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.last_error: str | None = None
        self.connected_at: datetime | None = None
        self.boot_error: Exception | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def boot_failed(self) -> bool:
        return self.boot_error is not None

    def raise_for_boot_failure(self) -> None:
        if self.boot_error is not None:
            raise DatabaseConnectionError(
                f"Database unreachable at boot: {self.boot_error}"
            ) from self.boot_error

    def health(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "reconnect_attempts": self.attempts,
            "last_error": self.last_error,
            "connected_at": (
                self.connected_at.isoformat() if self.connected_at else None
            ),
        }

    def start(self) -> asyncio.Task:
        """Connect and keep the connection alive in the background."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="database-connector")
        return self._task

    async def ping(self) -> None:
        if self.engine is None:
            self.engine = self._engine_factory(self.settings)
        async with asyncio.timeout(self.settings.db_connect_timeout):
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

    async def connect(self) -> bool:
        """Open the initial connection.

        A failure is kept on ``boot_error`` for the server to act on; no
        reconnects are attempted for a store that was never reached.
        """
        self.state = ConnectionState.CONNECTING
        try:
            await self.ping()
        except CONNECTION_ERRORS as e:
            self.state = ConnectionState.FAILED
            self.last_error = str(e) or type(e).__name__
            self.boot_error = e
            logger.error("Error connecting to database", error=self.last_error)
            return False

        self._mark_connected()
        logger.info("Successfully connected to database")
        return True

    async def _run(self) -> None:
        if not await self.connect():
            return
        while True:
            await asyncio.sleep(self.settings.db_health_check_interval)
            try:
                await self.ping()
            except CONNECTION_ERRORS as e:
                self.last_error = str(e) or type(e).__name__
                record_db_disconnect()
                logger.warning("Database connection lost", error=self.last_error)
                await self.reconnect()

    async def reconnect(self) -> None:
        """Retry until the store answers again. Never exits the process."""
        self.attempts = 0
        self.state = ConnectionState.RECONNECTING
        while True:
            self.attempts += 1
            delay = backoff_delay(
                self.attempts,
                self.settings.db_reconnect_base_delay,
                self.settings.db_reconnect_max_delay,
            )
            await asyncio.sleep(delay)
            try:
                await self._reset_engine()
                await self.ping()
            except CONNECTION_ERRORS as e:
                self.last_error = str(e) or type(e).__name__
                record_db_reconnect_attempt(succeeded=False)
                logger.warning(
                    "Database reconnect attempt failed",
                    attempt=self.attempts,
                    error=self.last_error,
                )
                if self.attempts >= self.settings.db_reconnect_max_attempts:
                    await self._open_circuit()
                continue

            record_db_reconnect_attempt(succeeded=True)
            logger.info("Reconnected to database", attempts=self.attempts)
            self._mark_connected()
            return

    async def _open_circuit(self) -> None:
        self.state = ConnectionState.FAILED
        logger.error(
            "Database unreachable, pausing reconnects",
            attempts=self.attempts,
            retry_in=self.settings.db_circuit_reset_seconds,
        )
        await asyncio.sleep(self.settings.db_circuit_reset_seconds)
        self.attempts = 0
        self.state = ConnectionState.RECONNECTING

    async def _reset_engine(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    def _mark_connected(self) -> None:
        self.state = ConnectionState.CONNECTED
        self.attempts = 0
        self.last_error = None
        self.connected_at = datetime.now(UTC)

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        self.state = ConnectionState.DISCONNECTED
