"""
Note Store Service

Single entry point of the note store. Composes key validation, the alias
index, the write-through cache, the metadata ledger, the content store and
the expiry sweeper, and exposes get/put/delete/alias operations to the
transport layer.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import structlog
from opentelemetry import trace

from ..constants import get_current_timestamp
from ..core.config import Settings
from ..domain.notes.domain_services import AliasIndex, MetadataLedger
from ..domain.notes.entities import Note, NoteMeta, NoteSummary
from ..domain.notes.exceptions import InvalidKeyException, NoteNotFoundException
from ..domain.notes.repository_interfaces import NoteRepositories
from ..domain.notes.value_objects import AliasResult, DeleteResult, is_valid_key
from .cache.write_through_cache import WriteThroughCache
from .key_locks import KeyedLocks
from .sweeper import ExpirySweeper, SweepReport

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


@dataclass
class StoreConfig:
    """Store-side view of the lifetime, cache and sweeper settings."""

    min_ttl_seconds: int = 60
    max_ttl_seconds: int = 30 * 86400
    default_ttl_seconds: int = 7 * 86400
    preserve_created_at: bool = True
    cache_freshness_window_seconds: float = 30
    cache_max_entries: int = 0
    sweep_enabled: bool = True
    sweep_interval_seconds: float = 3600
    sweep_on_startup: bool = False
    sweep_startup_delay_seconds: float = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreConfig":
        return cls(
            min_ttl_seconds=settings.MIN_TTL_SECONDS,
            max_ttl_seconds=settings.MAX_TTL_SECONDS,
            default_ttl_seconds=settings.DEFAULT_TTL_SECONDS,
            preserve_created_at=settings.PRESERVE_CREATED_AT,
            cache_freshness_window_seconds=settings.CACHE_FRESHNESS_WINDOW_SECONDS,
            cache_max_entries=settings.CACHE_MAX_ENTRIES,
            sweep_enabled=settings.SWEEP_ENABLED,
            sweep_interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
            sweep_on_startup=settings.SWEEP_ON_STARTUP,
            sweep_startup_delay_seconds=settings.SWEEP_STARTUP_DELAY_SECONDS,
        )


class NoteStore:
    """
    Ephemeral, alias-capable note store.

    Writes to one key are serialized by a per-key lock: content lands before
    metadata, and the cache is updated while the lock is still held. Reads
    that miss the cache load metadata and content under the same lock, so
    they never observe a mix of two writes.
    """

    def __init__(
        self,
        repositories: NoteRepositories,
        config: Optional[StoreConfig] = None,
        cache: Optional[WriteThroughCache] = None,
        clock: Callable[[], datetime] = get_current_timestamp,
    ):
        self.repositories = repositories
        self.config = config or StoreConfig()
        self.clock = clock

        self.alias_index = AliasIndex(repositories.aliases)
        self.ledger = MetadataLedger(
            repositories.metadata,
            self.alias_index,
            min_ttl_seconds=self.config.min_ttl_seconds,
            max_ttl_seconds=self.config.max_ttl_seconds,
            preserve_created_at=self.config.preserve_created_at,
            clock=clock,
        )
        self.content_store = repositories.content
        self.cache: WriteThroughCache[Note] = cache or WriteThroughCache(
            timedelta(seconds=self.config.cache_freshness_window_seconds),
            max_entries=self.config.cache_max_entries,
            clock=clock,
        )
        self.locks = KeyedLocks()
        self.sweeper = ExpirySweeper(
            self.ledger,
            self.content_store,
            self.cache,
            self.locks,
            interval_seconds=self.config.sweep_interval_seconds,
            run_on_start=self.config.sweep_on_startup,
            startup_delay_seconds=self.config.sweep_startup_delay_seconds,
            clock=clock,
        )
        self._pending_touches: Set[asyncio.Task] = set()

    # Lifecycle

    async def start(self) -> None:
        """Open the backend and start the expiry sweeper."""
        await self.repositories.open()
        if self.config.sweep_enabled:
            await self.sweeper.start()
        logger.info("Note store started", backend=self.repositories.backend)

    async def stop(self) -> None:
        """Stop the sweeper, drain access-time updates and close the backend."""
        await self.sweeper.stop()
        if self._pending_touches:
            await asyncio.gather(*self._pending_touches, return_exceptions=True)
        await self.repositories.close()
        logger.info("Note store stopped", backend=self.repositories.backend)

    async def __aenter__(self) -> "NoteStore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # Operations

    async def get(self, key: str) -> bytes:
        """Return the content served under ``key``."""
        note = await self.get_note(key)
        return note.content

    async def get_note(self, key: str) -> Note:
        """
        Return the live note served under ``key``.

        If ``key`` is aliased, the alias target's note is returned (one hop)
        for as long as ``key``'s own entry has not expired.

        Raises:
            InvalidKeyException: If the key is malformed
            NoteNotFoundException: If there is no live note
        """
        self._require_valid(key)

        with tracer.start_as_current_span("note_store.get") as span:
            span.set_attribute("note_key", key)

            target, note = await self._load_served(key)
            if target != key:
                span.set_attribute("alias_target", target)
            if note is None:
                span.set_attribute("found", False)
                raise NoteNotFoundException(key, resolved_key=target)

            span.set_attribute("found", True)
            self._schedule_touch(target)
            return note

    async def put(
        self,
        key: str,
        content: Union[bytes, str],
        ttl_seconds: Optional[float] = None,
    ) -> NoteMeta:
        """
        Write ``content`` under ``key``.

        Args:
            key: Note key
            content: Note body; text is stored UTF-8 encoded
            ttl_seconds: Requested TTL (default TTL if omitted), clamped

        Returns:
            Metadata of the write

        Raises:
            InvalidKeyException: If the key is malformed
            StorageFailureException: If either backing write fails
        """
        self._require_valid(key)
        if isinstance(content, str):
            content = content.encode("utf-8")
        if ttl_seconds is None:
            ttl_seconds = self.config.default_ttl_seconds

        with tracer.start_as_current_span("note_store.put") as span:
            span.set_attribute("note_key", key)
            span.set_attribute("content_size", len(content))

            async with self.locks.hold(key):
                meta = await self._write(key, content, ttl_seconds)

            logger.debug(
                "Stored note",
                note_key=key,
                size_bytes=len(content),
                ttl_seconds=meta.ttl_seconds,
            )
            return meta

    async def delete(self, key: str) -> DeleteResult:
        """Remove the content, metadata and alias of ``key``."""
        self._require_valid(key)

        with tracer.start_as_current_span("note_store.delete") as span:
            span.set_attribute("note_key", key)

            async with self.locks.hold(key):
                try:
                    content_deleted = await self.content_store.delete(key)
                    meta_deleted = await self.ledger.delete_meta(key)
                finally:
                    self.cache.invalidate(key)

            if content_deleted or meta_deleted:
                logger.info("Deleted note", note_key=key)
                return DeleteResult.DELETED
            return DeleteResult.NOT_FOUND

    async def create_alias(self, source_key: str, target_key: str) -> AliasResult:
        """
        Make ``source_key`` serve ``target_key``'s content.

        Idempotent: a source that already has an alias keeps it. A source
        without a note gets an empty one with the default TTL, so the alias
        expires with it.
        """
        self._require_valid(source_key)
        self._require_valid(target_key)

        with tracer.start_as_current_span("note_store.create_alias") as span:
            span.set_attribute("source_key", source_key)
            span.set_attribute("target_key", target_key)

            async with self.locks.hold(source_key):
                if await self.alias_index.resolve_alias(source_key) is not None:
                    span.set_attribute("result", AliasResult.ALREADY_ALIASED.value)
                    return AliasResult.ALREADY_ALIASED

                if await self.ledger.read_meta(source_key) is None:
                    await self._write(source_key, b"", self.config.default_ttl_seconds)

                result = await self.alias_index.create_alias(source_key, target_key)

            span.set_attribute("result", result.value)
            if result is AliasResult.CREATED:
                logger.info("Created alias", source_key=source_key, target_key=target_key)
            return result

    async def resolve_alias(self, key: str) -> Optional[str]:
        """Return the alias target of ``key``, if any."""
        self._require_valid(key)
        return await self.alias_index.resolve_alias(key)

    async def list_recent(self, limit: int = 6) -> List[NoteSummary]:
        """Summaries of the most recently written live notes, newest first."""
        now = self.clock()
        records = [meta for meta in await self.ledger.list_meta() if not meta.is_expired(now)]
        records.sort(key=lambda meta: meta.updated_at, reverse=True)

        summaries = []
        for meta in records:
            if len(summaries) >= limit:
                break
            # Summarize what a read of the key serves, i.e. the alias target
            _, note = await self._load_served(meta.key)
            if note is not None:
                summaries.append(
                    replace(
                        NoteSummary.from_note(note),
                        key=meta.key,
                        updated_at=meta.updated_at,
                    )
                )
        return summaries

    async def sweep(self) -> SweepReport:
        """Run one expiry sweep now."""
        return await self.sweeper.sweep_once()

    def stats(self) -> Dict[str, Any]:
        last_report = self.sweeper.last_report
        return {
            "backend": self.repositories.backend,
            "cache": {
                "entries": len(self.cache),
                "hits": self.cache.stats.hits,
                "misses": self.cache.stats.misses,
                "evictions": self.cache.stats.evictions,
            },
            "sweeper": {
                "state": self.sweeper.state.value,
                "running": self.sweeper.is_running,
                "last_sweep": last_report.to_dict() if last_report else None,
            },
        }

    # Internals

    @staticmethod
    def _require_valid(key: str) -> None:
        if not is_valid_key(key):
            raise InvalidKeyException(key)

    async def _write(self, key: str, content: bytes, ttl_seconds: float) -> NoteMeta:
        # Caller holds the key lock. Content first, so metadata never points
        # at absent content.
        try:
            await self.content_store.save(key, content)
            meta = await self.ledger.write_meta(key, ttl_seconds)
        except Exception:
            self.cache.invalidate(key)
            raise
        self.cache.put(key, Note(meta=meta, content=content))
        return meta

    async def _load_served(self, key: str) -> Tuple[str, Optional[Note]]:
        """
        Resolve ``key`` one alias hop and load the live note it serves.

        Returns the resolved key and the note. The note is None when nothing
        live is served; an aliased key also needs its own entry to be live.
        """
        now = self.clock()
        target = await self.alias_index.resolve_alias(key) or key
        if target != key:
            # An expired alias source stops serving before the sweeper runs
            source = await self._load(key)
            if source is None or source.meta.is_expired(now):
                return target, None
            if not is_valid_key(target):
                logger.warning("Alias points at malformed key", note_key=key)
                return target, None

        note = await self._load(target)
        if note is None or note.meta.is_expired(now):
            return target, None
        return target, note

    async def _load(self, key: str) -> Optional[Note]:
        note = self.cache.get(key)
        if note is not None:
            return note

        async with self.locks.hold(key):
            meta = await self.ledger.read_meta(key)
            if meta is None:
                return None
            content = await self.content_store.find(key)
            if content is None:
                logger.warning("Note metadata without content", note_key=key)
                return None

            note = Note(meta=meta, content=content)
            self.cache.put(key, note)
            return note

    def _schedule_touch(self, key: str) -> None:
        task = asyncio.create_task(self._touch(key))
        self._pending_touches.add(task)
        task.add_done_callback(self._pending_touches.discard)

    async def _touch(self, key: str) -> None:
        try:
            async with self.locks.hold(key):
                await self.ledger.touch_access(key)
        except Exception as e:
            logger.warning("Failed to update access time", note_key=key, error=str(e))
