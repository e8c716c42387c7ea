"""Pytest fixtures for the admin API tests."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fakes import MemoryStore


@pytest.fixture
def store():
    """An empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def client(store):
    """Test client whose routes all talk to ``store``."""
    from database import get_store
    from main import app

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def now():
    """A fixed mid-month instant so month and week windows are unambiguous."""
    return datetime(2026, 10, 18, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def signed_in(store):
    """A user with a live bearer token; returns (user, headers)."""
    user = store.add_user(
        name="Asha",
        email="asha@example.com",
        token="secret-token",
        token_expires=datetime.now(timezone.utc) + timedelta(days=1),
    )
    return user, {"Authorization": "Bearer secret-token"}
