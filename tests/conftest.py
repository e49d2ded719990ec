import pytest
from fastapi import FastAPI

from chatty.config import Settings
from chatty.main import create_app
from helpers import StubBridge, StubConnector, make_settings, mount_test_routes


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return make_settings()


@pytest.fixture(name="app")
def app_fixture(settings: Settings) -> FastAPI:
    return create_app(
        settings,
        mount_routes=mount_test_routes,
        connector=StubConnector(),
        bridge=StubBridge(),
    )
