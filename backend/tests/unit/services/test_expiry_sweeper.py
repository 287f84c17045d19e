"""
Unit tests for the ExpirySweeper background task.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from ghichu.domain.notes.exceptions import NoteNotFoundException, StorageFailureException
from ghichu.services.note_store import NoteStore, StoreConfig
from ghichu.services.sweeper import ExpirySweeper, SweeperState

from tests.conftest import KEY_A, KEY_B, KEY_C


class TestSweepOnce:
    """Test a single scan-and-delete cycle."""

    @pytest.mark.asyncio
    async def test_removes_only_expired_notes(self, note_store, repositories, clock):
        await note_store.put(KEY_A, b"short", ttl_seconds=60)
        await note_store.put(KEY_B, b"long", ttl_seconds=3600)
        clock.advance(61)

        report = await note_store.sweep()

        assert report.scanned == 2
        assert report.expired == 1
        assert report.removed == 1
        assert report.failed_keys == []
        assert await repositories.content.find(KEY_A) is None
        assert await repositories.metadata.find(KEY_A) is None
        assert KEY_A not in note_store.cache
        assert await note_store.get(KEY_B) == b"long"

    @pytest.mark.asyncio
    async def test_expired_alias_is_removed(self, note_store, clock):
        await note_store.put(KEY_B, b"target", ttl_seconds=86400)
        await note_store.create_alias(KEY_A, KEY_B)
        clock.advance(3601)

        report = await note_store.sweep()

        assert report.removed == 1
        assert await note_store.resolve_alias(KEY_A) is None
        with pytest.raises(NoteNotFoundException):
            await note_store.get(KEY_A)
        assert await note_store.get(KEY_B) == b"target"

    @pytest.mark.asyncio
    async def test_note_refreshed_after_scan_survives(self, note_store, clock):
        await note_store.put(KEY_A, b"old", ttl_seconds=60)
        clock.advance(61)
        stale_snapshot = await note_store.ledger.list_meta()
        await note_store.put(KEY_A, b"new", ttl_seconds=60)

        with patch.object(note_store.ledger, "list_meta", AsyncMock(return_value=stale_snapshot)):
            report = await note_store.sweep()

        assert report.expired == 1
        assert report.skipped == 1
        assert report.removed == 0
        assert await note_store.get(KEY_A) == b"new"

    @pytest.mark.asyncio
    async def test_failure_on_one_key_does_not_stop_sweep(self, note_store, repositories, clock):
        await note_store.put(KEY_A, b"a", ttl_seconds=60)
        await note_store.put(KEY_B, b"b", ttl_seconds=60)
        clock.advance(61)

        original_delete = repositories.content.delete

        async def flaky_delete(key):
            if key == KEY_A:
                raise StorageFailureException("unlink failed", operation="delete_content", key=key)
            return await original_delete(key)

        with patch.object(repositories.content, "delete", flaky_delete):
            report = await note_store.sweep()

        assert report.failed_keys == [KEY_A]
        assert report.removed == 1
        assert await repositories.metadata.find(KEY_B) is None
        # Left in place for the next sweep
        assert await repositories.metadata.find(KEY_A) is not None

        report = await note_store.sweep()
        assert report.removed == 1
        assert report.failed_keys == []

    @pytest.mark.asyncio
    async def test_stop_request_interrupts_between_keys(self, note_store, clock):
        await note_store.put(KEY_A, b"a", ttl_seconds=60)
        await note_store.put(KEY_B, b"b", ttl_seconds=60)
        clock.advance(61)

        note_store.sweeper._stopping.set()
        report = await note_store.sweep()

        assert report.expired == 2
        assert report.removed == 0
        assert report.interrupted is True
        assert note_store.sweeper.state is SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_report_is_recorded(self, note_store, clock):
        await note_store.put(KEY_A, b"a", ttl_seconds=60)
        clock.advance(61)

        report = await note_store.sweep()

        assert note_store.sweeper.last_report is report
        assert note_store.sweeper.state is SweeperState.IDLE
        data = report.to_dict()
        assert data["removed"] == 1
        assert data["failed"] == 0
        assert data["finished_at"] == clock().isoformat()

    @pytest.mark.asyncio
    async def test_enumeration_failure_propagates(self, note_store):
        failure = StorageFailureException("scan failed", operation="list_meta")

        with patch.object(note_store.ledger, "list_meta", AsyncMock(side_effect=failure)):
            with pytest.raises(StorageFailureException):
                await note_store.sweep()

        assert note_store.sweeper.state is SweeperState.IDLE


class TestSweeperLifecycle:
    """Test the background loop start/stop behaviour."""

    @pytest.fixture
    def sweeping_store(self, repositories, clock):
        config = StoreConfig(
            min_ttl_seconds=60,
            max_ttl_seconds=86400,
            default_ttl_seconds=3600,
            sweep_enabled=True,
            sweep_interval_seconds=3600,
            sweep_on_startup=True,
            sweep_startup_delay_seconds=0.01,
        )
        return NoteStore(repositories, config, clock=clock)

    @pytest.mark.asyncio
    async def test_startup_sweep_runs_after_delay(self, sweeping_store, clock):
        await sweeping_store.put(KEY_A, b"a", ttl_seconds=60)
        await sweeping_store.put(KEY_C, b"c", ttl_seconds=3600)
        clock.advance(61)

        await sweeping_store.start()
        assert sweeping_store.sweeper.is_running

        for _ in range(200):
            if sweeping_store.sweeper.last_report is not None:
                break
            await asyncio.sleep(0.01)

        report = sweeping_store.sweeper.last_report
        assert report is not None
        assert report.removed == 1

        await sweeping_store.stop()
        assert not sweeping_store.sweeper.is_running
        assert sweeping_store.sweeper.state is SweeperState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_does_not_wait_for_interval(self, note_store):
        sweeper = note_store.sweeper
        await sweeper.start()
        assert sweeper.is_running

        await asyncio.wait_for(sweeper.stop(), timeout=1)

        assert not sweeper.is_running
        assert sweeper.last_report is None

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, note_store):
        sweeper = note_store.sweeper
        await sweeper.start()
        task = sweeper._task

        await sweeper.start()

        assert sweeper._task is task
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_sweeper_restarts_after_stop(self, note_store):
        sweeper = note_store.sweeper
        await sweeper.start()
        await sweeper.stop()

        await sweeper.start()
        assert sweeper.is_running
        await sweeper.stop()

    def test_invalid_interval(self, note_store):
        with pytest.raises(ValueError, match="interval_seconds must be positive"):
            ExpirySweeper(
                note_store.ledger,
                note_store.content_store,
                note_store.cache,
                note_store.locks,
                interval_seconds=0,
            )


class TestExpiryScenario:
    """End-to-end lifetime of a single note."""

    @pytest.mark.asyncio
    async def test_note_gone_after_expiry_and_sweep(self, note_store, repositories, clock):
        await note_store.put(KEY_A, "abc", ttl_seconds=3600000)
        await note_store.create_alias(KEY_C, KEY_A)

        assert await note_store.get(KEY_A) == b"abc"
        assert await note_store.get(KEY_C) == b"abc"

        clock.advance(86401)
        report = await note_store.sweep()

        assert report.removed == 2
        with pytest.raises(NoteNotFoundException):
            await note_store.get(KEY_A)
        with pytest.raises(NoteNotFoundException):
            await note_store.get(KEY_C)
        assert await repositories.metadata.list_all() == []
