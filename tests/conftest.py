"""
Pytest configuration and fixtures for SafeCircle tests.
"""

import os

# Must be set before the settings singleton is first imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("DISPATCH_RETRY_SCALE", "0")
os.environ.setdefault("NOTIFY_PROVIDER", "simulation")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from safecircle.app.api.deps import build_context
from safecircle.app.location.geo import Coordinate
from safecircle.app.location.provider import SimulatedPositionSource
from safecircle.app.main import create_app
from safecircle.app.state.container import StateContainer
from safecircle.app.state.storage import MemoryStorage

# Panadura, Sri Lanka
HOME = Coordinate(6.7106, 79.9074)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def container(storage):
    """Fresh state container over in-memory storage."""
    return StateContainer(storage, persist_alerts=False)


@pytest.fixture
def source():
    return SimulatedPositionSource([HOME], poll_seconds=0.05)


@pytest.fixture
def app_context(storage, source):
    # An hour-long tick keeps background countdowns parked; tests tick by hand
    return build_context(storage=storage, source=source, tick_interval=3600)


@pytest.fixture
def client(app_context):
    """Test client with the lifespan running (state rehydrated, tracker started)."""
    with TestClient(create_app(app_context)) as test_client:
        yield test_client
