"""
Shared pytest fixtures for API tests.

The notification engine dependency is overridden with an engine wired to the
mock provider and in-memory store from the top-level conftest.
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from herald.api.v1.notifications import notification_engine_dependency


@pytest.fixture
def api_client(engine):
    """TestClient with the notification engine dependency overridden."""
    app.dependency_overrides[notification_engine_dependency] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(notification_engine_dependency, None)
