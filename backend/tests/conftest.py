"""
Main pytest configuration for all backend tests.

Fixtures, configuration, and utilities for unit and integration tests.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "console"

from ghichu.domain.notes.entities import NoteMeta
from ghichu.domain.notes.repository_interfaces import NoteRepositories
from ghichu.infrastructure.repositories.memory_repository import (
    InMemoryMetadataRepository,
    InMemoryContentStore,
    InMemoryAliasRepository,
)
from ghichu.services.note_store import NoteStore, StoreConfig

KEY_A = "11111111-1111-4111-8111-111111111111"
KEY_B = "22222222-2222-4222-8222-222222222222"
KEY_C = "33333333-3333-4333-8333-333333333333"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class CountingMetadataRepository(InMemoryMetadataRepository):
    """In-memory metadata collection that counts backing reads."""

    def __init__(self):
        super().__init__()
        self.find_calls = 0

    async def find(self, key: str) -> Optional[NoteMeta]:
        self.find_calls += 1
        return await super().find(key)


class CountingContentStore(InMemoryContentStore):
    """In-memory content collection that counts backing reads."""

    def __init__(self):
        super().__init__()
        self.find_calls = 0

    async def find(self, key: str) -> Optional[bytes]:
        self.find_calls += 1
        return await super().find(key)


@pytest.fixture
def clock():
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def repositories():
    """Provide isolated read-counting in-memory collections."""
    return NoteRepositories(
        backend="memory",
        metadata=CountingMetadataRepository(),
        content=CountingContentStore(),
        aliases=InMemoryAliasRepository(),
    )


@pytest.fixture
def store_config():
    """Store configuration with the background sweeper disabled."""
    return StoreConfig(
        min_ttl_seconds=60,
        max_ttl_seconds=86400,
        default_ttl_seconds=3600,
        cache_freshness_window_seconds=30,
        sweep_enabled=False,
    )


@pytest.fixture
def note_store(repositories, store_config, clock):
    """Provide a note store over isolated in-memory collections."""
    return NoteStore(repositories, store_config, clock=clock)
