"""
Feed sync worker.

Calls the replicator on an interval and drains the backlog whenever a
full batch comes back.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .replicator import FeedReplicator, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class SyncMetrics:
    """Process-lifetime replication counters."""
    records_processed: int = 0
    batches_processed: int = 0
    last_sync_time: Optional[datetime] = None
    last_error: Optional[str] = None
    last_processed_id: int = 0


class SyncWorker:
    """
    Background worker for feed replication.

    Runs sync_databases() every interval. While batches come back full
    the next batch is fetched right away.
    """

    def __init__(
        self,
        replicator: FeedReplicator,
        interval: float = 60.0,
        error_pause: float = 5.0,
    ):
        """
        Initialize the sync worker.

        Args:
            replicator: Replicator to drive.
            interval: Seconds between sync runs.
            error_pause: Seconds to wait after a failed run before the
                regular interval resumes.
        """
        self.replicator = replicator
        self.interval = interval
        self.error_pause = error_pause
        self.metrics = SyncMetrics(last_processed_id=replicator.last_processed_id)

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sync worker."""
        if self._running:
            logger.warning("Sync worker already running")
            return

        logger.info(
            f"Starting sync worker (interval={self.interval}s, "
            f"batch_size={self.replicator.batch_size}, "
            f"cursor={self.replicator.last_processed_id})"
        )
        self._running = True
        self._shutdown_event.clear()

        self._task = asyncio.create_task(
            self._run_loop(),
            name="sync_worker",
        )

    async def stop(self) -> None:
        """Stop the sync worker."""
        if not self._running:
            return

        logger.info("Stopping sync worker")
        self._running = False
        self._shutdown_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(
            f"Sync worker stopped. Records processed: {self.metrics.records_processed}, "
            f"batches: {self.metrics.batches_processed}, "
            f"last ID: {self.metrics.last_processed_id}"
        )

    async def _run_loop(self) -> None:
        """Main sync loop."""
        while self._running:
            try:
                await self.run_once()
                wait = self.interval
            except asyncio.CancelledError:
                break
            except Exception:
                wait = self.error_pause

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=wait)
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> int:
        """
        Sync until the source has no full batch left.

        Returns:
            Number of records replicated.

        Raises:
            DatabaseError: If a batch fails. The error is also recorded
                in the metrics.
        """
        total = 0

        while True:
            try:
                result = await self.replicator.sync_databases()
            except Exception as e:
                self.metrics.last_error = str(e)
                logger.error(f"Error syncing databases: {e}")
                raise

            self._record(result)
            total += result.processed

            if result.processed < self.replicator.batch_size or self._shutdown_event.is_set():
                break

        return total

    def _record(self, result: SyncResult) -> None:
        self.metrics.last_sync_time = datetime.now(timezone.utc)
        self.metrics.last_processed_id = result.last_id
        if result.processed:
            self.metrics.records_processed += result.processed
            self.metrics.batches_processed += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics."""
        return {
            "running": self._running,
            **asdict(self.metrics),
            "interval": self.interval,
            "batch_size": self.replicator.batch_size,
        }
