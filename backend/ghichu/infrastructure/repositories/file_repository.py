"""
File Tree Note Repository Implementation

Infrastructure implementation of the note repository interfaces using one
file per record in a notes directory:

- ``<key>.txt``        note content
- ``<key>.meta.json``  note metadata
- ``<key>.txt.raw``    alias target key

Blocking file I/O runs in worker threads. Content and metadata files are
replaced atomically (temporary file + ``os.replace``); alias files use
exclusive creation so the first writer wins. Temp files left behind by an
interrupted write are removed when the backend is opened.
"""

import asyncio
import json
import logging
import os
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ...domain.notes.entities import NoteMeta
from ...domain.notes.exceptions import StorageFailureException
from ...domain.notes.repository_interfaces import (
    MetadataRepository,
    ContentStore,
    AliasRepository,
    NoteRepositories,
)

logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".txt"
META_SUFFIX = ".meta.json"
ALIAS_SUFFIX = ".txt.raw"
TEMP_PREFIX = ".tmp-"

# Temp files older than this are leftovers of an interrupted write
STALE_TEMP_FILE_AGE_SECONDS = 3600


class NotesDirectory:
    """Path resolution and atomic file primitives for the notes directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str, suffix: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Unsafe note key for file storage: {key!r}")
        return self.root / f"{key}{suffix}"

    def write_atomic(self, path: Path, data: bytes) -> None:
        self.ensure()
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=TEMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def remove_stale_temp_files(self, max_age_seconds: float) -> int:
        """Delete temp files whose last modification is older than ``max_age_seconds``."""
        if not self.root.exists():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self.root.glob(f"{TEMP_PREFIX}*"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        return removed

    @staticmethod
    def read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False


class FileMetadataRepository(MetadataRepository):
    """Metadata records stored as ``<key>.meta.json``."""

    def __init__(self, directory: NotesDirectory):
        self.directory = directory

    async def save(self, meta: NoteMeta) -> None:
        path = self.directory.path_for(meta.key, META_SUFFIX)
        payload = json.dumps(meta.to_dict()).encode("utf-8")
        try:
            await asyncio.to_thread(self.directory.write_atomic, path, payload)
        except OSError as e:
            logger.error(f"Failed to write metadata {path}: {e}")
            raise StorageFailureException(
                f"Failed to write metadata: {e}",
                operation="write_meta",
                key=meta.key,
                original_error=e,
            ) from e

    async def find(self, key: str) -> Optional[NoteMeta]:
        path = self.directory.path_for(key, META_SUFFIX)
        try:
            raw = await asyncio.to_thread(self.directory.read, path)
            if raw is None:
                return None
            return NoteMeta.from_dict(json.loads(raw))
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to read metadata {path}: {e}")
            raise StorageFailureException(
                f"Failed to read metadata: {e}",
                operation="read_meta",
                key=key,
                original_error=e,
            ) from e

    async def touch(self, key: str, accessed_at: datetime) -> Optional[NoteMeta]:
        # Read-modify-write; callers hold the key's write lock
        meta = await self.find(key)
        if meta is None:
            return None
        touched = meta.touched(accessed_at)
        await self.save(touched)
        return touched

    async def delete(self, key: str) -> bool:
        path = self.directory.path_for(key, META_SUFFIX)
        try:
            return await asyncio.to_thread(self.directory.unlink, path)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to delete metadata: {e}",
                operation="delete_meta",
                key=key,
                original_error=e,
            ) from e

    async def list_all(self) -> List[NoteMeta]:
        try:
            paths = await asyncio.to_thread(self._meta_paths)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to list metadata: {e}",
                operation="list_meta",
                original_error=e,
            ) from e

        records = []
        for path in paths:
            key = path.name[: -len(META_SUFFIX)]
            try:
                meta = await self.find(key)
            except StorageFailureException:
                # One unreadable record must not hide the others
                logger.warning(f"Skipping unreadable metadata record {path}")
                continue
            if meta is not None:
                records.append(meta)
        return records

    def _meta_paths(self) -> List[Path]:
        if not self.directory.root.exists():
            return []
        return sorted(self.directory.root.glob(f"*{META_SUFFIX}"))


class FileContentStore(ContentStore):
    """Note bodies stored as ``<key>.txt``."""

    def __init__(self, directory: NotesDirectory):
        self.directory = directory

    async def save(self, key: str, content: bytes) -> None:
        path = self.directory.path_for(key, CONTENT_SUFFIX)
        try:
            await asyncio.to_thread(self.directory.write_atomic, path, bytes(content))
        except OSError as e:
            logger.error(f"Failed to write content {path}: {e}")
            raise StorageFailureException(
                f"Failed to write content: {e}",
                operation="write_content",
                key=key,
                original_error=e,
            ) from e

    async def find(self, key: str) -> Optional[bytes]:
        path = self.directory.path_for(key, CONTENT_SUFFIX)
        try:
            return await asyncio.to_thread(self.directory.read, path)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to read content: {e}",
                operation="read_content",
                key=key,
                original_error=e,
            ) from e

    async def delete(self, key: str) -> bool:
        path = self.directory.path_for(key, CONTENT_SUFFIX)
        try:
            return await asyncio.to_thread(self.directory.unlink, path)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to delete content: {e}",
                operation="delete_content",
                key=key,
                original_error=e,
            ) from e


class FileAliasRepository(AliasRepository):
    """Alias targets stored as ``<key>.txt.raw``."""

    def __init__(self, directory: NotesDirectory):
        self.directory = directory

    def _create_exclusive(self, path: Path, target_key: str) -> bool:
        self.directory.ensure()
        try:
            with open(path, "x", encoding="utf-8") as handle:
                handle.write(target_key)
            return True
        except FileExistsError:
            return False

    async def create(self, source_key: str, target_key: str) -> bool:
        path = self.directory.path_for(source_key, ALIAS_SUFFIX)
        try:
            return await asyncio.to_thread(self._create_exclusive, path, target_key)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to create alias: {e}",
                operation="create_alias",
                key=source_key,
                original_error=e,
            ) from e

    async def find(self, source_key: str) -> Optional[str]:
        path = self.directory.path_for(source_key, ALIAS_SUFFIX)
        try:
            raw = await asyncio.to_thread(self.directory.read, path)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to read alias: {e}",
                operation="resolve_alias",
                key=source_key,
                original_error=e,
            ) from e
        if raw is None:
            return None
        target = raw.decode("utf-8").strip()
        return target or None

    async def delete(self, source_key: str) -> bool:
        path = self.directory.path_for(source_key, ALIAS_SUFFIX)
        try:
            return await asyncio.to_thread(self.directory.unlink, path)
        except OSError as e:
            raise StorageFailureException(
                f"Failed to delete alias: {e}",
                operation="delete_alias",
                key=source_key,
                original_error=e,
            ) from e


def create_file_repositories(root: Union[str, Path]) -> NoteRepositories:
    """Build the three collections over one notes directory."""
    directory = NotesDirectory(root)
    directory.ensure()
    logger.info(f"Using file note storage at {directory.root}")

    async def remove_stale_temp_files() -> None:
        try:
            removed = await asyncio.to_thread(
                directory.remove_stale_temp_files, STALE_TEMP_FILE_AGE_SECONDS
            )
        except OSError as e:
            logger.warning(f"Failed to clean temp files in {directory.root}: {e}")
            return
        if removed:
            logger.info(f"Removed {removed} stale temp files from {directory.root}")

    return NoteRepositories(
        backend="file",
        metadata=FileMetadataRepository(directory),
        content=FileContentStore(directory),
        aliases=FileAliasRepository(directory),
        on_open=remove_stale_temp_files,
    )
