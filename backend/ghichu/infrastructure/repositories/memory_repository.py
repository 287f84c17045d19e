"""
In-Memory Note Repository Implementation

Dictionary-backed implementations of the note repository interfaces.
Used by tests and by ephemeral single-process deployments.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from ...domain.notes.entities import NoteMeta
from ...domain.notes.repository_interfaces import (
    MetadataRepository,
    ContentStore,
    AliasRepository,
    NoteRepositories,
)

logger = logging.getLogger(__name__)


class InMemoryMetadataRepository(MetadataRepository):
    """In-memory metadata collection."""

    def __init__(self):
        self._records: Dict[str, NoteMeta] = {}

    async def save(self, meta: NoteMeta) -> None:
        self._records[meta.key] = meta

    async def find(self, key: str) -> Optional[NoteMeta]:
        return self._records.get(key)

    async def touch(self, key: str, accessed_at: datetime) -> Optional[NoteMeta]:
        meta = self._records.get(key)
        if meta is None:
            return None
        touched = self._records[key] = meta.touched(accessed_at)
        return touched

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def list_all(self) -> List[NoteMeta]:
        return list(self._records.values())


class InMemoryContentStore(ContentStore):
    """In-memory content collection."""

    def __init__(self):
        self._bodies: Dict[str, bytes] = {}

    async def save(self, key: str, content: bytes) -> None:
        self._bodies[key] = bytes(content)

    async def find(self, key: str) -> Optional[bytes]:
        return self._bodies.get(key)

    async def delete(self, key: str) -> bool:
        return self._bodies.pop(key, None) is not None


class InMemoryAliasRepository(AliasRepository):
    """In-memory alias collection."""

    def __init__(self):
        self._aliases: Dict[str, str] = {}

    async def create(self, source_key: str, target_key: str) -> bool:
        # No await between check and set, so this is atomic on the event loop
        if source_key in self._aliases:
            return False
        self._aliases[source_key] = target_key
        return True

    async def find(self, source_key: str) -> Optional[str]:
        return self._aliases.get(source_key)

    async def delete(self, source_key: str) -> bool:
        return self._aliases.pop(source_key, None) is not None


def create_memory_repositories() -> NoteRepositories:
    """Build an isolated set of in-memory collections."""
    logger.info("Using in-memory note storage")
    return NoteRepositories(
        backend="memory",
        metadata=InMemoryMetadataRepository(),
        content=InMemoryContentStore(),
        aliases=InMemoryAliasRepository(),
    )
