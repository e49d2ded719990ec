"""Tests for application assembly and startup ordering."""

import asyncio

import fakeredis
import pytest
import uvicorn
from fastapi.testclient import TestClient

from chatty.infrastructure.database.database import (
    ConnectionState,
    DatabaseConnectionError,
    DatabaseConnector,
)
from chatty.main import ChatServer, create_app, create_asgi_app, main
from chatty.realtime.bridge import BridgeConnectionError, FanoutBridge
from helpers import (
    CLIENT_URL,
    SECRET_ONE,
    SECRET_TWO,
    StubBridge,
    StubConnector,
    make_settings,
    mount_test_routes,
    wait_until,
)

REQUIRED = [
    "DATABASE_URL",
    "REDIS_HOST",
    "CLIENT_URL",
    "SECRET_KEY_ONE",
    "SECRET_KEY_TWO",
]


class BridgeAwaitingDatabase(StubBridge):
    """Bridge that finishes starting only after the first database attempt failed."""

    def __init__(self, connector: DatabaseConnector):
        super().__init__()
        self.connector = connector

    async def start(self):
        await wait_until(lambda: self.connector.boot_failed)
        await super().start()


class HeldConnector(DatabaseConnector):
    """Connector whose first ping fails once ``release`` is set."""

    def __init__(self, settings):
        super().__init__(settings)
        self.release = asyncio.Event()

    async def ping(self):
        await self.release.wait()
        raise OSError("connection refused")


def unreachable_database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'no-such-dir' / 'chat.db'}"


def test_lifespan_starts_connector_and_bridge():
    connector, bridge = StubConnector(), StubBridge()
    app = create_app(
        make_settings(),
        mount_routes=mount_test_routes,
        connector=connector,
        bridge=bridge,
    )

    with TestClient(app) as client:
        assert connector.started
        assert bridge.is_ready
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["realtime"] == {"state": "ready"}
    assert bridge.closed
    assert connector.closed


def test_bridge_failure_aborts_startup():
    connector, bridge = StubConnector(), StubBridge(fail=True)
    app = create_app(make_settings(), connector=connector, bridge=bridge)

    with pytest.raises(BridgeConnectionError):
        with TestClient(app):
            pass

    assert connector.started
    assert connector.closed
    assert not bridge.is_ready


def test_unreachable_database_aborts_startup(tmp_path):
    connector = DatabaseConnector(
        make_settings(database_url=unreachable_database_url(tmp_path))
    )
    bridge = BridgeAwaitingDatabase(connector)
    app = create_app(make_settings(), connector=connector, bridge=bridge)

    with pytest.raises(DatabaseConnectionError):
        with TestClient(app):
            pass

    assert bridge.closed
    assert connector.state is ConnectionState.DISCONNECTED


async def test_server_stops_when_database_fails_after_bind():
    settings = make_settings(host="127.0.0.1", port=0)
    connector = HeldConnector(settings)
    bridge = StubBridge()
    app = create_app(settings, connector=connector, bridge=bridge)
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

    serving = asyncio.create_task(server.serve())
    await wait_until(lambda: server.started, timeout=5)
    connector.release.set()
    await asyncio.wait_for(serving, timeout=5)

    assert server.exit_code == 1
    assert bridge.closed
    assert connector.state is ConnectionState.DISCONNECTED


def test_health_reports_degraded_database():
    app = create_app(
        make_settings(),
        connector=StubConnector(connected=False),
        bridge=StubBridge(),
    )

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"
    assert response.json()["database"] == {"state": "reconnecting"}


def test_routes_are_mounted_before_error_boundary():
    app = create_app(
        make_settings(),
        mount_routes=mount_test_routes,
        connector=StubConnector(),
        bridge=StubBridge(),
    )
    paths = [getattr(route, "path", None) for route in app.routes]

    assert paths[-1] == "/{unmatched_path:path}"
    with TestClient(app) as client:
        assert client.get("/test/large").status_code == 200
        missing = client.get("/test/nothing-here")
    assert missing.status_code == 404
    assert missing.json() == {"message": "/test/nothing-here not found"}


def test_asgi_app_runs_bridge_lifespan_behind_socketio():
    broker = fakeredis.FakeServer()
    settings = make_settings()
    bridge = FanoutBridge(
        settings, client_factory=lambda url: fakeredis.FakeAsyncRedis(server=broker)
    )
    connector = StubConnector()

    asgi_app = create_asgi_app(settings, connector=connector, bridge=bridge)

    with TestClient(asgi_app) as client:
        assert bridge.is_ready
        response = client.get("/health")
        missing = client.get("/nowhere")

    assert response.status_code == 200
    assert missing.status_code == 404
    assert not bridge.is_ready


def test_main_exits_when_configuration_is_missing(monkeypatch, tmp_path):
    for name in REQUIRED:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 1


def test_main_exits_when_database_is_unreachable(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name, value in {
        "DATABASE_URL": unreachable_database_url(tmp_path),
        "REDIS_HOST": "redis://localhost:6379/0",
        "CLIENT_URL": CLIENT_URL,
        "SECRET_KEY_ONE": SECRET_ONE,
        "SECRET_KEY_TWO": SECRET_TWO,
        "ENVIRONMENT": "development",
        "HOST": "127.0.0.1",
        "PORT": "0",
    }.items():
        monkeypatch.setenv(name, value)
    bridges: list[StubBridge] = []

    def stub_bridge(settings):
        bridges.append(StubBridge())
        return bridges[-1]

    monkeypatch.setattr("chatty.main.FanoutBridge", stub_bridge)

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 1
    assert bridges[0].closed
