"""Process bootstrap.

Startup order: validate settings, start the database connector, build the
HTTP application (security and standard middleware, routes, error
boundary), bring the realtime bridge up, and only then bind the port.
"""

import os
import socket
import sys
from collections.abc import Callable
from contextlib import asynccontextmanager

import socketio
import uvicorn
from fastapi import FastAPI

from .config import ConfigurationError, Settings, load_settings
from .infrastructure.database.database import DatabaseConnector
from .logging_config import get_logger, setup_logging
from .logging_utils import log_system_info
from .middleware import apply_security, apply_standard, log_requests_middleware
from .presentation.error_handlers import install_error_boundary
from .realtime.bridge import FanoutBridge
from .routes import application_routes
from .telemetry import setup_telemetry

RouteMounter = Callable[[FastAPI], None]


def create_app(
    settings: Settings,
    *,
    mount_routes: RouteMounter = application_routes,
    connector: DatabaseConnector | None = None,
    bridge: FanoutBridge | None = None,
) -> FastAPI:
    """Build the HTTP application.

    The lifespan starts the database connector without waiting for it, then
    waits for the realtime bridge. A bridge failure, or a database that was
    already found unreachable by then, aborts startup so the server never
    listens with fan-out half wired.
    """
    connector = connector or DatabaseConnector(settings)
    bridge = bridge or FanoutBridge(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger = get_logger(__name__)

        connector.start()
        try:
            await bridge.start()
            connector.raise_for_boot_failure()
        except Exception as e:
            logger.error("Startup failed, aborting", error=str(e))
            await bridge.close()
            await connector.close()
            raise

        logger.info("Server has started", pid=os.getpid())

        yield

        await bridge.close()
        await connector.close()
        logger.info("Application shutdown completed")

    # debug stays off: tracebacks must never reach clients
    app = FastAPI(title="Chatty", version="0.1.0", debug=False, lifespan=lifespan)
    app.state.settings = settings
    app.state.connector = connector
    app.state.bridge = bridge

    apply_security(app, settings)
    apply_standard(app, settings)
    app.middleware("http")(log_requests_middleware)

    mount_routes(app)
    install_error_boundary(app)

    setup_telemetry(app, settings)
    return app


def create_asgi_app(
    settings: Settings,
    *,
    mount_routes: RouteMounter = application_routes,
    connector: DatabaseConnector | None = None,
    bridge: FanoutBridge | None = None,
) -> socketio.ASGIApp:
    """HTTP application with the Socket.IO endpoint mounted in front of it."""
    bridge = bridge or FanoutBridge(settings)
    app = create_app(
        settings, mount_routes=mount_routes, connector=connector, bridge=bridge
    )
    return bridge.wrap(app)


class ChatServer(uvicorn.Server):
    """uvicorn server that reports readiness once the socket is bound.

    It also stops, with ``exit_code`` 1, if the database turns out to be
    unreachable at boot after the port is already open.
    """

    def __init__(
        self,
        config: uvicorn.Config,
        settings: Settings,
        connector: DatabaseConnector | None = None,
    ):
        super().__init__(config)
        self.settings = settings
        self.connector = connector
        self.exit_code = 0

    async def on_tick(self, counter: int) -> bool:
        if self.connector is not None and self.connector.boot_failed:
            get_logger(__name__).error("Database unreachable at boot, shutting down")
            self.exit_code = 1
            return True
        return await super().on_tick(counter)

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if not self.should_exit:
            log_system_info(
                hostname=socket.gethostname(),
                pid=os.getpid(),
                port=self.config.port,
                environment=self.settings.environment,
            )


def main() -> None:
    logger = get_logger(__name__)
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error("Invalid configuration", problems=e.problems)
        sys.exit(1)

    setup_logging(settings)
    logger = get_logger(__name__)

    try:
        connector = DatabaseConnector(settings)
        app = create_asgi_app(settings, connector=connector)
        server = ChatServer(
            uvicorn.Config(
                app,
                host=settings.host,
                port=settings.port,
                lifespan="on",
                log_config=None,
            ),
            settings,
            connector,
        )
        server.run()
    except Exception:
        logger.exception("Server bootstrap failed")
        sys.exit(1)

    if not server.started:
        logger.error("Server did not start")
        sys.exit(1)
    if server.exit_code:
        sys.exit(server.exit_code)


if __name__ == "__main__":
    main()
