"""
Note Repository Interfaces

Abstract repository interfaces following the DDD Repository pattern.
Defines contracts for the three keyed collections behind the note store:
metadata, content and aliases. Any layout satisfying these contracts is
conformant (in-memory maps, a file tree, Redis).

Absent keys are a normal result (``None`` / ``False``). Persistence failures
are raised as ``StorageFailureException``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .entities import NoteMeta


class MetadataRepository(ABC):
    """Persistence contract for per-note lifecycle metadata."""

    @abstractmethod
    async def save(self, meta: NoteMeta) -> None:
        """Persist metadata, replacing any previous record for the key."""
        pass

    @abstractmethod
    async def find(self, key: str) -> Optional[NoteMeta]:
        """Find metadata by key."""
        pass

    @abstractmethod
    async def touch(self, key: str, accessed_at: datetime) -> Optional[NoteMeta]:
        """Set ``last_accessed_at`` on an existing record, leaving expiry alone.

        Returns the updated record, or None if the key has no metadata.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete metadata. Returns True if a record existed."""
        pass

    @abstractmethod
    async def list_all(self) -> List[NoteMeta]:
        """Enumerate every metadata record."""
        pass


class ContentStore(ABC):
    """Persistence contract for raw note bodies. No policy logic."""

    @abstractmethod
    async def save(self, key: str, content: bytes) -> None:
        """Persist content bytes for key."""
        pass

    @abstractmethod
    async def find(self, key: str) -> Optional[bytes]:
        """Read content bytes for key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete content. Returns True if content existed."""
        pass


class AliasRepository(ABC):
    """Persistence contract for one-hop ``source -> target`` redirects."""

    @abstractmethod
    async def create(self, source_key: str, target_key: str) -> bool:
        """Persist the mapping unless one exists for ``source_key``.

        Returns True if the mapping was created, False if the source was
        already aliased. Must be atomic with respect to concurrent creates.
        """
        pass

    @abstractmethod
    async def find(self, source_key: str) -> Optional[str]:
        """Return the target key for ``source_key``, if aliased."""
        pass

    @abstractmethod
    async def delete(self, source_key: str) -> bool:
        """Delete the alias sourced from ``source_key``."""
        pass


@dataclass
class NoteRepositories:
    """The three collections of one storage backend."""

    backend: str
    metadata: MetadataRepository
    content: ContentStore
    aliases: AliasRepository
    on_open: Optional[Callable[[], Awaitable[None]]] = None
    on_close: Optional[Callable[[], Awaitable[None]]] = None
    on_health_check: Optional[Callable[[], Awaitable[Dict[str, Any]]]] = None

    async def open(self) -> None:
        """Acquire backend resources before first use."""
        if self.on_open is not None:
            await self.on_open()

    async def close(self) -> None:
        """Release backend resources (connection pools and the like)."""
        if self.on_close is not None:
            await self.on_close()

    async def health_check(self) -> Dict[str, Any]:
        """Report backend connectivity. Local backends are always healthy."""
        if self.on_health_check is None:
            return {"status": "healthy"}
        return await self.on_health_check()
