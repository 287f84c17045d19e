"""
Note Domain Services

Business logic services for the note domain.
Wraps the metadata and alias repositories with lifecycle policy:
TTL clamping, created-at preservation, access tracking and one-shot aliases.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from opentelemetry import trace

from .entities import NoteMeta
from .value_objects import TTL, AliasResult
from .repository_interfaces import MetadataRepository, AliasRepository
from ...constants import get_current_timestamp

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], datetime]


class AliasIndex:
    """
    Domain service for one-hop note aliases.

    An alias is created at most once per source key; later requests are
    no-ops. Resolution never follows alias-of-alias chains.
    """

    def __init__(self, repository: AliasRepository):
        self.repository = repository

    async def create_alias(self, source_key: str, target_key: str) -> AliasResult:
        """Create ``source_key -> target_key`` unless the source is already aliased."""
        created = await self.repository.create(source_key, target_key)
        if not created:
            logger.debug(
                f"Alias already present for {source_key}",
                extra={"source_key": source_key, "target_key": target_key},
            )
            return AliasResult.ALREADY_ALIASED
        return AliasResult.CREATED

    async def resolve_alias(self, key: str) -> Optional[str]:
        """Return the target key of ``key``, or None if it is not aliased."""
        return await self.repository.find(key)

    async def delete_alias(self, key: str) -> bool:
        return await self.repository.delete(key)


class MetadataLedger:
    """
    Domain service for per-note lifecycle metadata.

    Clamps TTLs into ``[min_ttl_seconds, max_ttl_seconds]`` and keeps
    ``expires_at = updated_at + ttl`` after each write. Deleting a key's
    metadata cascades to the alias sourced from that key.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        alias_index: AliasIndex,
        min_ttl_seconds: int,
        max_ttl_seconds: int,
        preserve_created_at: bool = True,
        clock: Clock = get_current_timestamp,
    ):
        if min_ttl_seconds > max_ttl_seconds:
            raise ValueError("min_ttl_seconds must not exceed max_ttl_seconds")

        self.repository = repository
        self.alias_index = alias_index
        self.min_ttl_seconds = min_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.preserve_created_at = preserve_created_at
        self.clock = clock

    def clamp_ttl(self, ttl_seconds: float) -> TTL:
        """Clamp a requested TTL into the configured bounds."""
        return TTL.clamped(ttl_seconds, self.min_ttl_seconds, self.max_ttl_seconds)

    async def write_meta(self, key: str, ttl_seconds: float) -> NoteMeta:
        """
        Write metadata for a note written now.

        Args:
            key: Note key
            ttl_seconds: Requested TTL, clamped before use

        Returns:
            The persisted metadata
        """
        with tracer.start_as_current_span("ledger.write_meta") as span:
            span.set_attribute("note_key", key)

            ttl = self.clamp_ttl(ttl_seconds)
            previous = None
            if self.preserve_created_at:
                previous = await self.repository.find(key)

            meta = NoteMeta.create(
                key,
                ttl,
                self.clock(),
                previous=previous,
                preserve_created_at=self.preserve_created_at,
            )
            await self.repository.save(meta)

            span.set_attribute("ttl_seconds", ttl.seconds)
            if ttl.seconds != ttl_seconds:
                logger.debug(
                    f"Clamped TTL for {key} from {ttl_seconds} to {ttl.seconds}",
                    extra={"note_key": key, "ttl_seconds": ttl.seconds},
                )
            return meta

    async def read_meta(self, key: str) -> Optional[NoteMeta]:
        return await self.repository.find(key)

    async def list_meta(self) -> List[NoteMeta]:
        return await self.repository.list_all()

    async def touch_access(self, key: str) -> Optional[NoteMeta]:
        """Move ``last_accessed_at`` to now without altering expiry."""
        return await self.repository.touch(key, self.clock())

    async def delete_meta(self, key: str) -> bool:
        """Delete metadata for key and the alias it sources.

        Returns True if either record existed.
        """
        deleted = await self.repository.delete(key)
        alias_deleted = await self.alias_index.delete_alias(key)
        return deleted or alias_deleted
