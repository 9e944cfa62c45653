# tests/conftest.py
import os
import sys

import pytest

# Test environment must be in place before the app modules are imported
os.environ["DATABASE_BACKEND"] = "memory"
os.environ["METRICS_PATH"] = ""
os.environ.pop("FIREBASE_DATABASE_URL", None)
os.environ.pop("POSTHOG_API_KEY", None)
os.environ.pop("GEMINI_API_KEY", None)

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from unittest.mock import Mock

from fastapi.testclient import TestClient

from nexus_agent import config
from nexus_agent.main import app
from nexus_agent.models import ApiKeyEntry


class FixedOrder:
    """rng stand-in that leaves the key order untouched."""

    def shuffle(self, items):
        pass


@pytest.fixture
def client():
    """
    FastAPI test client.

    Entered as a context manager so startup/shutdown handlers run.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_app_state(monkeypatch):
    """
    Reset application state between tests.

    Clears the in-memory database, metrics and the fallback key.
    """
    from nexus_agent.api import routes
    from nexus_agent.observability.metrics import metrics_tracker

    routes.database.set("", None)
    metrics_tracker.reset()
    monkeypatch.setattr(config, "GEMINI_API_KEY", None)

    yield

    routes.database.set("", None)


@pytest.fixture
def mock_llm(monkeypatch):
    """
    Replace Gemini calls made by the API with a Mock.

    Usage:
        def test_something(mock_llm):
            mock_llm.return_value = "drafted reply"
    """
    from nexus_agent.api import routes

    mock = Mock(return_value="Mocked summary")
    monkeypatch.setattr(routes.llm_client, "generate", mock)

    return mock


@pytest.fixture
def add_key(client):
    """Store an API key through the API and return its listing entry."""

    def _add(label="Account 1", key="AIzaSyTEST-key-0001"):
        response = client.post("/keys", json={"label": label, "key": key})
        assert response.status_code == 200, response.json()
        return response.json()

    return _add


@pytest.fixture
def key_pool():
    return [
        ApiKeyEntry(id=f"k{i}", label=f"Account {i}", key=f"secret-{i}", created_at=i)
        for i in range(1, 4)
    ]


@pytest.fixture
def fixed_order():
    return FixedOrder()


@pytest.fixture
def png_bytes():
    """Smallest valid PNG header plus padding; content is never decoded."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
