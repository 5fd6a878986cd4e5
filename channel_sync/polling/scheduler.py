"""
Collection scheduler.

Runs the collection cycle on a fixed interval, keeps the collection
metrics and guarantees that at most one cycle is in flight.
"""
import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..config import CollectorSettings
from .collector import CollectionCycle
from .metrics import CollectionMetrics, CycleOutcome

logger = logging.getLogger(__name__)

NO_CHANNELS_MESSAGE = "No enabled channels found to process"


class SchedulerState(str, Enum):
    """Scheduler lifecycle state."""
    STOPPED = "stopped"
    RUNNING = "running"


class CollectionScheduler:
    """
    Drives the collection cycle.

    Features:
    - Immediate first cycle on start, then a fixed-interval tick
    - Single cycle in flight; overlapping ticks are skipped or queued
      (depth 1) depending on the overlap policy
    - Early retries with exponential backoff after a failed cycle
    - Sole owner of the collection metrics
    """

    def __init__(
        self,
        cycle: CollectionCycle,
        settings: Optional[CollectorSettings] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            cycle: Collection cycle to run.
            settings: Collector settings.
        """
        self.cycle = cycle
        self.settings = settings or CollectorSettings()
        self.metrics = CollectionMetrics()

        self._state = SchedulerState.STOPPED
        self._ticker: Optional[asyncio.Task] = None
        self._reschedule = asyncio.Event()
        self._cycle_tasks: Set[asyncio.Task] = set()

        # Overlap guard
        self._cycle_in_progress = False
        self._pending_tick = False
        self._skipped_ticks = 0

        self._consecutive_failures = 0

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_in_progress

    async def start(self) -> None:
        """Run one cycle right away, then keep collecting on the interval."""
        if self.is_running:
            logger.info("Collection scheduler already running")
            return

        logger.info(
            f"Starting collection scheduler (interval={self.settings.interval_ms}ms, "
            f"overlap_policy={self.settings.overlap_policy})"
        )
        self._state = SchedulerState.RUNNING
        self._reschedule.clear()

        await self.collect()

        if self.is_running:
            self._ticker = asyncio.create_task(
                self._tick_loop(),
                name="collection_ticker",
            )

    async def stop(self) -> None:
        """
        Stop scheduling new cycles and log the final statistics.

        A cycle that is already running is left to finish.
        """
        if not self.is_running:
            return

        logger.info("Stopping collection scheduler")
        self._state = SchedulerState.STOPPED
        self._pending_tick = False

        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        self.log_collection_stats()

    async def wait_until_idle(self) -> None:
        """Wait for cycles still in flight (e.g. before closing pools)."""
        if self._cycle_tasks:
            await asyncio.gather(*self._cycle_tasks, return_exceptions=True)

    async def collect(self) -> Optional[CycleOutcome]:
        """
        Run one guarded collection cycle now.

        Returns:
            The cycle outcome, or None if the cycle failed or another
            cycle was already in flight.
        """
        if self._cycle_in_progress:
            logger.warning("Collection cycle already in progress, not starting another")
            return None

        self._cycle_in_progress = True
        try:
            outcome = await self._run_and_record()
            while self._pending_tick and self.is_running:
                self._pending_tick = False
                logger.debug("Running queued collection cycle")
                outcome = await self._run_and_record()
            return outcome
        finally:
            self._cycle_in_progress = False
            self._pending_tick = False

    async def _tick_loop(self) -> None:
        """Fire a tick every interval, or sooner while retrying."""
        delay = self._next_delay()

        while self.is_running:
            self._reschedule.clear()

            try:
                await asyncio.wait_for(self._reschedule.wait(), timeout=delay)
                # A cycle failed; bring the next tick forward
                delay = self._next_delay()
                continue
            except asyncio.TimeoutError:
                pass

            if self.is_running:
                self._on_tick()
            delay = self.settings.interval

    def _on_tick(self) -> None:
        if self._cycle_in_progress:
            if self.settings.overlap_policy == "queue":
                if not self._pending_tick:
                    logger.info("Previous collection cycle still running, queueing tick")
                self._pending_tick = True
            else:
                self._skipped_ticks += 1
                logger.warning("Previous collection cycle still running, skipping tick")
            return

        task = asyncio.create_task(self.collect(), name="collection_cycle")
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    def _next_delay(self) -> float:
        """
        Seconds until the next tick.

        Exponential backoff from retry_delay after consecutive failed
        cycles, capped at the interval, for at most retry_attempts ticks.
        """
        interval = self.settings.interval
        failures = self._consecutive_failures

        if failures == 0 or failures > self.settings.retry_attempts:
            return interval

        backoff = self.settings.retry_delay * (2 ** (failures - 1))
        return min(backoff, interval)

    async def _run_and_record(self) -> Optional[CycleOutcome]:
        logger.info("Starting collection cycle...")

        try:
            outcome = await self.cycle.run_cycle()
        except Exception as e:
            self.handle_collection_error(e)
            self._schedule_retry()
            return None

        self._apply_outcome(outcome)
        return outcome

    def _apply_outcome(self, outcome: CycleOutcome) -> None:
        for channel_error in outcome.channel_errors:
            self.handle_collection_error(channel_error.error)

        now = datetime.now(timezone.utc)
        self._consecutive_failures = 0

        if outcome.registry_empty:
            self.update_metrics(False, now, NO_CHANNELS_MESSAGE)
            return

        self.update_metrics(True, now)
        logger.info("Collection cycle completed successfully")

    def _schedule_retry(self) -> None:
        self._consecutive_failures += 1
        failures = self._consecutive_failures

        if not self.is_running:
            return

        if failures <= self.settings.retry_attempts:
            logger.info(
                f"Retry {failures}/{self.settings.retry_attempts} "
                f"in {self._next_delay():.1f}s..."
            )
            self._reschedule.set()
        elif failures == self.settings.retry_attempts + 1:
            logger.error(
                f"Maximum retries reached ({self.settings.retry_attempts}). "
                f"Waiting for next cycle."
            )

    def update_metrics(
        self,
        success: bool,
        timestamp: datetime,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Record the result of a collection.

        Args:
            success: Whether the collection succeeded.
            timestamp: When the collection finished.
            error_message: Error to record for a failed collection.
        """
        if success:
            self.metrics.successful_collections += 1
            self.metrics.last_success_time = timestamp
        else:
            self.metrics.failed_collections += 1
            self.metrics.last_error = error_message

    def handle_collection_error(self, error: BaseException) -> None:
        """
        Record a collection error.

        Counts a retry and a failed collection. No retry is started here;
        the next tick picks the work up again.
        """
        message = str(error) or error.__class__.__name__
        logger.error(f"Collection error: {message}")

        self.metrics.total_retries += 1
        self.update_metrics(False, datetime.now(timezone.utc), message)

    def get_collector_stats(self) -> Dict[str, Any]:
        """
        Get a snapshot of the scheduler state and metrics.

        Returns:
            Dictionary of collector statistics.
        """
        return {
            "is_running": self.is_running,
            **asdict(self.metrics),
            "collection_interval": self.settings.interval_ms,
            "cycle_in_progress": self._cycle_in_progress,
            "skipped_ticks": self._skipped_ticks,
        }

    def log_collection_stats(self) -> None:
        """Log the collection statistics summary."""
        m = self.metrics
        success_rate = m.success_rate

        logger.info("Collection statistics:")
        logger.info(f"  Successful collections: {m.successful_collections}")
        logger.info(f"  Failed collections: {m.failed_collections}")
        logger.info(f"  Total retries: {m.total_retries}")
        logger.info(
            f"  Success rate: {success_rate:.2f}%" if success_rate is not None
            else "  Success rate: n/a"
        )
        logger.info(
            f"  Last successful collection: "
            f"{m.last_success_time.isoformat() if m.last_success_time else 'Never'}"
        )
        if m.last_error:
            logger.info(f"  Last error: {m.last_error}")
