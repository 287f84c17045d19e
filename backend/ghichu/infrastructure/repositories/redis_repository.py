"""
Redis Note Repository Implementation

Infrastructure implementation of the note repository interfaces using Redis.
Keys are namespaced by a configurable prefix:

- ``<prefix>:content:<key>``  raw note bytes
- ``<prefix>:meta:<key>``     JSON metadata
- ``<prefix>:alias:<key>``    alias target key (created with SET NX)

Expiry is handled by the note store's sweeper, not by Redis TTLs, so that
content, metadata and aliases always disappear together.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from redis.exceptions import RedisError

from ...domain.notes.entities import NoteMeta
from ...domain.notes.exceptions import StorageFailureException
from ...domain.notes.repository_interfaces import (
    MetadataRepository,
    ContentStore,
    AliasRepository,
    NoteRepositories,
)
from ..redis.redis_service import RedisService

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 100


@contextmanager
def _storage_errors(operation: str, key: Optional[str] = None):
    """Translate Redis and decoding errors into StorageFailureException."""
    try:
        yield
    except (RedisError, ValueError, KeyError) as e:
        logger.error(f"Redis {operation} failed for {key}: {e}")
        raise StorageFailureException(
            f"Redis {operation} failed: {e}",
            operation=operation,
            key=key,
            original_error=e,
        ) from e


class RedisKeyspace:
    """Key naming for the three note collections."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def content(self, key: str) -> str:
        return f"{self.prefix}:content:{key}"

    def meta(self, key: str) -> str:
        return f"{self.prefix}:meta:{key}"

    def alias(self, key: str) -> str:
        return f"{self.prefix}:alias:{key}"

    @property
    def meta_pattern(self) -> str:
        return f"{self.prefix}:meta:*"


class RedisMetadataRepository(MetadataRepository):
    """Redis implementation of the metadata collection."""

    def __init__(self, service: RedisService, keyspace: RedisKeyspace):
        self.service = service
        self.keyspace = keyspace

    async def save(self, meta: NoteMeta) -> None:
        with _storage_errors("write_meta", meta.key):
            await self.service.client.set(
                self.keyspace.meta(meta.key), json.dumps(meta.to_dict())
            )

    async def find(self, key: str) -> Optional[NoteMeta]:
        with _storage_errors("read_meta", key):
            raw = await self.service.client.get(self.keyspace.meta(key))
            if raw is None:
                return None
            return NoteMeta.from_dict(json.loads(raw))

    async def touch(self, key: str, accessed_at: datetime) -> Optional[NoteMeta]:
        # Read-modify-write; callers hold the key's write lock
        meta = await self.find(key)
        if meta is None:
            return None
        touched = meta.touched(accessed_at)
        await self.save(touched)
        return touched

    async def delete(self, key: str) -> bool:
        with _storage_errors("delete_meta", key):
            return bool(await self.service.client.delete(self.keyspace.meta(key)))

    async def list_all(self) -> List[NoteMeta]:
        """Enumerate metadata with cursor-based SCAN."""
        redis_keys = []
        with _storage_errors("list_meta"):
            cursor = 0
            while True:
                cursor, batch = await self.service.client.scan(
                    cursor, match=self.keyspace.meta_pattern, count=SCAN_BATCH_SIZE
                )
                redis_keys.extend(batch)
                if cursor == 0:
                    break

            if not redis_keys:
                return []
            values = await self.service.client.mget(redis_keys)

        records = []
        for redis_key, raw in zip(redis_keys, values):
            if raw is None:
                continue
            try:
                records.append(NoteMeta.from_dict(json.loads(raw)))
            except (ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable metadata record {redis_key}: {e}")
        return records


class RedisContentStore(ContentStore):
    """Redis implementation of the content collection."""

    def __init__(self, service: RedisService, keyspace: RedisKeyspace):
        self.service = service
        self.keyspace = keyspace

    async def save(self, key: str, content: bytes) -> None:
        with _storage_errors("write_content", key):
            await self.service.client.set(self.keyspace.content(key), bytes(content))

    async def find(self, key: str) -> Optional[bytes]:
        with _storage_errors("read_content", key):
            return await self.service.client.get(self.keyspace.content(key))

    async def delete(self, key: str) -> bool:
        with _storage_errors("delete_content", key):
            return bool(await self.service.client.delete(self.keyspace.content(key)))


class RedisAliasRepository(AliasRepository):
    """Redis implementation of the alias collection."""

    def __init__(self, service: RedisService, keyspace: RedisKeyspace):
        self.service = service
        self.keyspace = keyspace

    async def create(self, source_key: str, target_key: str) -> bool:
        with _storage_errors("create_alias", source_key):
            created = await self.service.client.set(
                self.keyspace.alias(source_key), target_key, nx=True
            )
            return bool(created)

    async def find(self, source_key: str) -> Optional[str]:
        with _storage_errors("resolve_alias", source_key):
            raw = await self.service.client.get(self.keyspace.alias(source_key))
            if raw is None:
                return None
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return raw or None

    async def delete(self, source_key: str) -> bool:
        with _storage_errors("delete_alias", source_key):
            return bool(await self.service.client.delete(self.keyspace.alias(source_key)))


def create_redis_repositories(
    redis_url: str, prefix: str, max_connections: int = 10
) -> NoteRepositories:
    """Build the three collections over one Redis connection pool.

    The pool is opened lazily by ``RedisService.initialize``; callers open it
    through ``NoteStore.start``.
    """
    service = RedisService(redis_url, max_connections=max_connections)
    keyspace = RedisKeyspace(prefix)
    logger.info(f"Using Redis note storage with prefix {prefix!r}")
    return NoteRepositories(
        backend="redis",
        metadata=RedisMetadataRepository(service, keyspace),
        content=RedisContentStore(service, keyspace),
        aliases=RedisAliasRepository(service, keyspace),
        on_open=service.initialize,
        on_close=service.close,
        on_health_check=service.health_check,
    )
