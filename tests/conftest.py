"""Fixtures compartilhadas: store em memoria e TestClient com o store injetado."""

import pytest
from fastapi.testclient import TestClient

from crm_service.app.main import app
from crm_service.app.store import MemoryStore, get_store


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def client(store):
    """TestClient com get_store sobrescrito pelo MemoryStore do teste."""
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"X-User-Id": "owner-a"}
