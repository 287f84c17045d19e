"""
Configuration and fixtures for HTTP integration tests.

Runs the FastAPI application in-process against an in-memory note store.
"""

import pytest
from fastapi.testclient import TestClient

from ghichu.core.config import Settings
from ghichu.infrastructure.repositories import create_memory_repositories
from ghichu.main import create_app
from ghichu.services.note_store import NoteStore, StoreConfig


@pytest.fixture
def test_settings():
    """Settings for an in-process API with the sweeper disabled."""
    return Settings(
        ENVIRONMENT="test",
        STORAGE_BACKEND="memory",
        SWEEP_ENABLED=False,
        MIN_TTL_SECONDS=60,
        MAX_TTL_SECONDS=86400,
        DEFAULT_TTL_SECONDS=3600,
    )


@pytest.fixture
def api_store(test_settings):
    return NoteStore(create_memory_repositories(), StoreConfig.from_settings(test_settings))


@pytest.fixture
def client(test_settings, api_store):
    """Test client with the application lifespan running."""
    with TestClient(create_app(test_settings, api_store)) as test_client:
        yield test_client
