"""
Unit tests for the file tree note repositories.
"""

import os
import time
from datetime import timedelta
from unittest.mock import patch

import pytest

from ghichu.domain.notes.entities import NoteMeta
from ghichu.domain.notes.exceptions import StorageFailureException
from ghichu.domain.notes.value_objects import TTL
from ghichu.infrastructure.repositories.file_repository import (
    NotesDirectory,
    create_file_repositories,
)
from ghichu.services.note_store import NoteStore

from tests.conftest import FakeClock, KEY_A, KEY_B


@pytest.fixture
def notes_dir(tmp_path):
    return tmp_path / "note"


@pytest.fixture
def file_repositories(notes_dir):
    return create_file_repositories(notes_dir)


class TestNotesDirectory:
    """Test path resolution and atomic writes."""

    def test_path_for(self, notes_dir):
        directory = NotesDirectory(notes_dir)

        assert directory.path_for(KEY_A, ".txt") == notes_dir / f"{KEY_A}.txt"

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", "a\\b", ".hidden"])
    def test_unsafe_keys_rejected(self, notes_dir, key):
        with pytest.raises(ValueError):
            NotesDirectory(notes_dir).path_for(key, ".txt")

    def test_write_atomic_replaces_file(self, notes_dir):
        directory = NotesDirectory(notes_dir)
        path = directory.path_for(KEY_A, ".txt")

        directory.write_atomic(path, b"one")
        directory.write_atomic(path, b"two")

        assert path.read_bytes() == b"two"
        assert [p.name for p in notes_dir.iterdir()] == [f"{KEY_A}.txt"]

    def test_failed_replace_leaves_no_temp_file(self, notes_dir):
        directory = NotesDirectory(notes_dir)
        path = directory.path_for(KEY_A, ".txt")
        directory.write_atomic(path, b"original")

        with patch("os.replace", side_effect=OSError("read-only")):
            with pytest.raises(OSError):
                directory.write_atomic(path, b"new")

        assert path.read_bytes() == b"original"
        assert [p.name for p in notes_dir.iterdir()] == [f"{KEY_A}.txt"]

    def test_remove_stale_temp_files(self, notes_dir):
        directory = NotesDirectory(notes_dir)
        directory.ensure()
        old = notes_dir / ".tmp-old"
        old.write_bytes(b"partial")
        two_hours_ago = time.time() - 7200
        os.utime(old, (two_hours_ago, two_hours_ago))
        fresh = notes_dir / ".tmp-fresh"
        fresh.write_bytes(b"in flight")

        assert directory.remove_stale_temp_files(3600) == 1

        assert not old.exists()
        assert fresh.exists()

    def test_remove_stale_temp_files_on_missing_directory(self, tmp_path):
        directory = NotesDirectory(tmp_path / "absent")

        assert directory.remove_stale_temp_files(0) == 0


class TestFileRepositories:
    """Test the three file-backed collections."""

    @pytest.mark.asyncio
    async def test_file_layout(self, file_repositories, notes_dir):
        clock = FakeClock()
        store = NoteStore(file_repositories, clock=clock)

        await store.put(KEY_B, b"target")
        await store.create_alias(KEY_A, KEY_B)

        assert (notes_dir / f"{KEY_B}.txt").read_bytes() == b"target"
        assert (notes_dir / f"{KEY_B}.meta.json").exists()
        assert (notes_dir / f"{KEY_A}.txt.raw").read_text() == KEY_B
        assert (notes_dir / f"{KEY_A}.txt").read_bytes() == b""

    @pytest.mark.asyncio
    async def test_metadata_round_trip(self, file_repositories):
        meta = NoteMeta.create(KEY_A, TTL(60), FakeClock()())

        await file_repositories.metadata.save(meta)

        assert await file_repositories.metadata.find(KEY_A) == meta
        assert await file_repositories.metadata.find(KEY_B) is None

    @pytest.mark.asyncio
    async def test_touch_keeps_expiry(self, file_repositories):
        clock = FakeClock()
        meta = NoteMeta.create(KEY_A, TTL(60), clock())
        await file_repositories.metadata.save(meta)

        touched = await file_repositories.metadata.touch(KEY_A, clock.advance(5))

        assert touched.last_accessed_at == meta.last_accessed_at + timedelta(seconds=5)
        assert (await file_repositories.metadata.find(KEY_A)).expires_at == meta.expires_at
        assert await file_repositories.metadata.touch(KEY_B, clock()) is None

    @pytest.mark.asyncio
    async def test_corrupt_metadata_is_storage_failure(self, file_repositories, notes_dir):
        (notes_dir / f"{KEY_A}.meta.json").write_text("{not json")

        with pytest.raises(StorageFailureException) as exc_info:
            await file_repositories.metadata.find(KEY_A)

        assert exc_info.value.details["operation"] == "read_meta"

    @pytest.mark.asyncio
    async def test_list_all_skips_corrupt_records(self, file_repositories, notes_dir):
        meta = NoteMeta.create(KEY_B, TTL(60), FakeClock()())
        await file_repositories.metadata.save(meta)
        (notes_dir / f"{KEY_A}.meta.json").write_text("{not json")

        assert await file_repositories.metadata.list_all() == [meta]

    @pytest.mark.asyncio
    async def test_list_all_on_missing_directory(self, tmp_path):
        repositories = create_file_repositories(tmp_path / "gone")
        (tmp_path / "gone").rmdir()

        assert await repositories.metadata.list_all() == []

    @pytest.mark.asyncio
    async def test_content_round_trip_and_delete(self, file_repositories):
        await file_repositories.content.save(KEY_A, b"\x00binary\xff")

        assert await file_repositories.content.find(KEY_A) == b"\x00binary\xff"
        assert await file_repositories.content.delete(KEY_A) is True
        assert await file_repositories.content.delete(KEY_A) is False
        assert await file_repositories.content.find(KEY_A) is None

    @pytest.mark.asyncio
    async def test_write_failure_is_storage_failure(self, file_repositories):
        with patch("os.replace", side_effect=PermissionError("denied")):
            with pytest.raises(StorageFailureException) as exc_info:
                await file_repositories.content.save(KEY_A, b"x")

        assert exc_info.value.details["operation"] == "write_content"
        assert isinstance(exc_info.value.__cause__, PermissionError)

    @pytest.mark.asyncio
    async def test_alias_exclusive_create(self, file_repositories):
        aliases = file_repositories.aliases

        assert await aliases.create(KEY_A, KEY_B) is True
        assert await aliases.create(KEY_A, "33333333-3333-4333-8333-333333333333") is False
        assert await aliases.find(KEY_A) == KEY_B

    @pytest.mark.asyncio
    async def test_empty_alias_file_is_no_alias(self, file_repositories, notes_dir):
        (notes_dir / f"{KEY_A}.txt.raw").write_text("  \n")

        assert await file_repositories.aliases.find(KEY_A) is None

    @pytest.mark.asyncio
    async def test_store_over_files_survives_restart(self, notes_dir):
        clock = FakeClock()
        first = NoteStore(create_file_repositories(notes_dir), clock=clock)
        await first.put(KEY_A, "persisted", ttl_seconds=600)

        second = NoteStore(create_file_repositories(notes_dir), clock=clock)

        assert await second.get(KEY_A) == b"persisted"
        await second.stop()

    @pytest.mark.asyncio
    async def test_open_removes_interrupted_writes(self, file_repositories, notes_dir):
        leftover = notes_dir / ".tmp-leftover"
        leftover.write_bytes(b"partial")
        two_hours_ago = time.time() - 7200
        os.utime(leftover, (two_hours_ago, two_hours_ago))
        await file_repositories.content.save(KEY_A, b"kept")

        await file_repositories.open()

        assert not leftover.exists()
        assert await file_repositories.content.find(KEY_A) == b"kept"

    @pytest.mark.asyncio
    async def test_sweep_removes_all_files(self, file_repositories, notes_dir):
        clock = FakeClock()
        store = NoteStore(file_repositories, clock=clock)
        await store.create_alias(KEY_A, KEY_B)
        clock.advance(8 * 86400)

        report = await store.sweep()

        assert report.removed == 1
        assert list(notes_dir.iterdir()) == []
