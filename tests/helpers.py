"""Settings builders, stand-ins and test-only routes shared by the tests."""

import asyncio
import time
from collections.abc import Callable

from fastapi import APIRouter, FastAPI, Request
from pydantic import BaseModel, Field

from chatty.config import Settings
from chatty.domain.exceptions import NotFoundError, ValidationError
from chatty.infrastructure.database.database import (
    ConnectionState,
    DatabaseConnectionError,
)
from chatty.realtime.bridge import BridgeConnectionError, BridgeState
from chatty.routes import application_routes

SECRET_ONE = "current-signing-secret-0123456789abcdef"
SECRET_TWO = "previous-signing-secret-0123456789abcdef"
CLIENT_URL = "http://client.test"


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "redis_host": "redis://localhost:6379/0",
        "client_url": CLIENT_URL,
        "secret_key_one": SECRET_ONE,
        "secret_key_two": SECRET_TWO,
        "environment": "development",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class StubConnector:
    """Stands in for the database connector in HTTP tests."""

    def __init__(self, connected: bool = True):
        self.state = (
            ConnectionState.CONNECTED if connected else ConnectionState.RECONNECTING
        )
        self.boot_error: Exception | None = None
        self.started = False
        self.closed = False

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def boot_failed(self) -> bool:
        return self.boot_error is not None

    def raise_for_boot_failure(self):
        if self.boot_error is not None:
            raise DatabaseConnectionError(str(self.boot_error))

    def health(self):
        return {"state": self.state.value}

    def start(self):
        self.started = True

    async def close(self):
        self.closed = True


class StubBridge:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.state = BridgeState.UNINITIALIZED
        self.closed = False

    @property
    def is_ready(self) -> bool:
        return self.state is BridgeState.READY

    def wrap(self, app):
        return app

    async def start(self):
        if self.fail:
            raise BridgeConnectionError("Pub/sub broker unreachable")
        self.state = BridgeState.READY

    async def close(self):
        self.closed = True
        self.state = BridgeState.UNINITIALIZED


class MessageIn(BaseModel):
    text: str = Field(..., min_length=1)


def mount_test_routes(app: FastAPI) -> None:
    application_routes(app)
    router = APIRouter(prefix="/test")

    @router.get("/app-error")
    async def app_error():
        raise NotFoundError("Conversation not found", field="conversation_id")

    @router.get("/validation-error")
    async def validation_error():
        raise ValidationError(
            errors=[
                {"message": "Username is too short", "field": "username"},
                {"message": "Email is invalid", "field": "email"},
            ]
        )

    @router.get("/boom")
    async def boom():
        raise RuntimeError("internal detail: password=hunter2")

    @router.post("/echo")
    async def echo(request: Request):
        raw = await request.body()
        return {"body": getattr(request.state, "body", None), "raw": raw.decode()}

    @router.post("/messages")
    async def create_message(message: MessageIn):
        return {"text": message.text}

    @router.get("/query")
    async def query(request: Request):
        return {
            "params": request.query_params.multi_items(),
            "polluted": getattr(request.state, "query_polluted", {}),
        }

    @router.get("/large")
    async def large():
        return {"data": "x" * 5000}

    @router.post("/session/login")
    async def login(request: Request):
        request.session["user"] = "alice"
        return {"ok": True}

    @router.get("/session")
    async def read_session(request: Request):
        return dict(request.session)

    @router.post("/session/logout")
    async def logout(request: Request):
        request.session.clear()
        return {"ok": True}

    app.include_router(router)
