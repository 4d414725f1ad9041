"""Shared pytest fixtures for OpenWAPI tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from openwapi.api.factory import create_app  # noqa: E402

from .helpers import FakeSessionFactory, MemoryStore, basic_auth_header, make_settings  # noqa: E402


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def app(settings, store, session_factory):
    return create_app(settings, store=store, session_factory=session_factory)


@pytest.fixture
def client(app):
    """TestClient with the lifespan running, so the first session is open."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def connection(app):
    return app.state.connection


@pytest.fixture
def api_headers(client, store):
    return {"X-API-Key": store.ensure_api_key()}


@pytest.fixture
def dashboard_headers(settings):
    return basic_auth_header(settings.dashboard_user, settings.dashboard_password)
