"""Root conftest: config factory, fake clock, store, manager and app client."""
from __future__ import annotations

import pytest
import pytest_asyncio

from sessionkit.config import SessionConfig
from sessionkit.services.serializers import StringSerializer
from sessionkit.services.session_manager import SessionManager
from sessionkit.stores.memory import InMemoryRefreshTokenStore
from tests.helpers import REFRESH_TTL, SECRET, SESSION_TTL, FakeClock, make_client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_config():
    """SessionConfig factory with test defaults; keyword overrides win."""

    def _make(**overrides) -> SessionConfig:
        values = {
            "server_secret": SECRET,
            "session_max_age": SESSION_TTL,
            "refresh_max_age": REFRESH_TTL,
        }
        values.update(overrides)
        return SessionConfig(**values)

    return _make


@pytest.fixture
def config(make_config) -> SessionConfig:
    return make_config()


@pytest.fixture
def store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture
def manager(config, store, clock) -> SessionManager:
    return SessionManager(config, StringSerializer(), store=store, clock=clock)


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """slowapi keeps counters in process memory; start every test from zero."""
    from sessionkit.dependencies import limiter

    limiter.reset()
    yield


@pytest.fixture
def app(config, store, clock):
    """Demo app wired to the test config, store and clock."""
    from sessionkit.demo.main import create_app

    return create_app(config, store=store, clock=clock)


@pytest_asyncio.fixture
async def app_client(app):
    """httpx AsyncClient bound to the demo app."""
    async with make_client(app) as client:
        yield client
