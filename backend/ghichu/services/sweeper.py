"""
Expiry Sweeper

Background task that periodically removes notes past their expiry:

    Idle -> Scanning -> Deleting -> Idle

Each expired note loses its content, metadata, alias and cache entry in that
order. Work is done per key under the key's write lock, with the metadata
re-read just before deletion so a note refreshed after the scan survives.
Failures are isolated per key. A stop request is honoured between keys.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from prometheus_client import Counter, Histogram

from ..constants import get_current_timestamp
from ..domain.notes.domain_services import MetadataLedger
from ..domain.notes.repository_interfaces import ContentStore
from .cache.write_through_cache import WriteThroughCache
from .key_locks import KeyedLocks

logger = structlog.get_logger()

SWEEPS_TOTAL = Counter(
    "ghichu_sweeps_total", "Total number of expiry sweeps", ["status"]
)
SWEEP_REMOVED_TOTAL = Counter(
    "ghichu_sweep_removed_total", "Total number of notes removed by the sweeper"
)
SWEEP_FAILURES_TOTAL = Counter(
    "ghichu_sweep_failures_total", "Per-key deletion failures during sweeps"
)
SWEEP_DURATION = Histogram(
    "ghichu_sweep_duration_seconds", "Duration of expiry sweeps in seconds"
)


class SweeperState(str, Enum):
    """Sweeper lifecycle states."""

    IDLE = "idle"
    SCANNING = "scanning"
    DELETING = "deleting"
    STOPPED = "stopped"


@dataclass
class SweepReport:
    """Outcome of one sweep."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: int = 0
    expired: int = 0
    removed: int = 0
    skipped: int = 0
    failed_keys: List[str] = field(default_factory=list)
    interrupted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "scanned": self.scanned,
            "expired": self.expired,
            "removed": self.removed,
            "skipped": self.skipped,
            "failed": len(self.failed_keys),
            "interrupted": self.interrupted,
        }


class ExpirySweeper:
    """
    Periodic expired-note remover with an explicit start/stop lifecycle.

    Args:
        ledger: Metadata ledger (deleting metadata cascades to aliases)
        content_store: Content collection
        cache: Write-through cache to invalidate
        locks: Per-key write locks shared with the note store
        interval_seconds: Delay between sweeps
        run_on_start: Run one sweep ``startup_delay_seconds`` after start
        clock: Source of the current time
    """

    def __init__(
        self,
        ledger: MetadataLedger,
        content_store: ContentStore,
        cache: WriteThroughCache,
        locks: KeyedLocks,
        interval_seconds: float = 3600,
        run_on_start: bool = False,
        startup_delay_seconds: float = 5,
        clock: Callable[[], datetime] = get_current_timestamp,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.ledger = ledger
        self.content_store = content_store
        self.cache = cache
        self.locks = locks
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.startup_delay_seconds = startup_delay_seconds
        self.clock = clock

        self.state = SweeperState.IDLE
        self.last_report: Optional[SweepReport] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._sweep_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self.is_running:
            return
        self._stopping.clear()
        self.state = SweeperState.IDLE
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Expiry sweeper started",
            interval_seconds=self.interval_seconds,
            run_on_start=self.run_on_start,
        )

    async def stop(self) -> None:
        """Request shutdown and wait for the loop to finish its current key."""
        self._stopping.set()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.state = SweeperState.STOPPED
        logger.info("Expiry sweeper stopped")

    async def _sweep_loop(self) -> None:
        delay = self.startup_delay_seconds if self.run_on_start else self.interval_seconds
        while True:
            if await self._wait_for_stop(delay):
                break
            try:
                await self.sweep_once()
            except Exception as e:
                SWEEPS_TOTAL.labels(status="error").inc()
                logger.error("Expiry sweep failed", error=str(e))
            delay = self.interval_seconds

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def sweep_once(self) -> SweepReport:
        """
        Run one scan-and-delete cycle.

        Returns:
            Report with the number of notes removed

        Raises:
            StorageFailureException: If the metadata collection cannot be enumerated
        """
        async with self._sweep_lock:
            report = SweepReport(started_at=self.clock())
            start_time = time.time()
            try:
                self.state = SweeperState.SCANNING
                records = await self.ledger.list_meta()
                report.scanned = len(records)

                now = self.clock()
                expired = [meta.key for meta in records if meta.is_expired(now)]
                report.expired = len(expired)

                self.state = SweeperState.DELETING
                for key in expired:
                    if self._stopping.is_set():
                        report.interrupted = True
                        break
                    await self._remove_if_expired(key, report)
            finally:
                self.state = (
                    SweeperState.STOPPED if self._stopping.is_set() else SweeperState.IDLE
                )
                report.finished_at = self.clock()
                SWEEP_DURATION.observe(time.time() - start_time)

            self.last_report = report
            SWEEPS_TOTAL.labels(status="ok").inc()
            SWEEP_REMOVED_TOTAL.inc(report.removed)
            if report.removed or report.failed_keys:
                logger.info("Expiry sweep completed", **report.to_dict())
            return report

    async def _remove_if_expired(self, key: str, report: SweepReport) -> None:
        async with self.locks.hold(key):
            try:
                meta = await self.ledger.read_meta(key)
                if meta is None or not meta.is_expired(self.clock()):
                    report.skipped += 1
                    return

                await self.content_store.delete(key)
                await self.ledger.delete_meta(key)
                self.cache.invalidate(key)
                report.removed += 1
            except Exception as e:
                SWEEP_FAILURES_TOTAL.inc()
                report.failed_keys.append(key)
                logger.warning("Failed to remove expired note", note_key=key, error=str(e))
