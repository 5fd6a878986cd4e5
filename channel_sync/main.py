"""
Channel Sync - Main Entry Point.

Starts the service that:
1. Polls the telemetry API for every active channel
2. Persists device status changes and sensor readings
3. Replicates new feed rows from the source database
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .channels.consumers import ChannelConsumer, DatabaseChannelConsumer
from .channels.fetcher import ChannelFetcher
from .channels.registry import ChannelRegistry
from .config import ChannelSyncSettings
from .config_sources import ConfigSource, EnvConfigSource, YamlConfigSource, load_settings
from .database import Database
from .polling.collector import CollectionCycle
from .polling.scheduler import CollectionScheduler
from .sync.replicator import FeedReplicator
from .sync.worker import SyncWorker

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


class ChannelSyncService:
    """
    Main service orchestrator.

    Owns the database pools and the HTTP client and wires the
    collection scheduler and the sync worker on top of them.
    """

    def __init__(
        self,
        settings: ChannelSyncSettings,
        consumer: Optional[ChannelConsumer] = None,
    ):
        """
        Initialize the service.

        Args:
            settings: Service settings.
            consumer: Channel consumer; defaults to DatabaseChannelConsumer.
        """
        self.settings = settings

        self.main_db = Database(settings.main_db, label="main database")
        self.feeds_db = Database(settings.feeds_db, label="feeds database")
        self.http_client: Optional[httpx.AsyncClient] = None

        self._consumer = consumer
        self.scheduler: Optional[CollectionScheduler] = None
        self.replicator = FeedReplicator(
            source=self.feeds_db,
            destination=self.main_db,
            batch_size=settings.sync.batch_size,
            start_id=settings.sync.start_id,
        )
        self.sync_worker: Optional[SyncWorker] = None

        self._running = False
        self._shutdown_event = asyncio.Event()

    def _build_scheduler(self) -> CollectionScheduler:
        registry = ChannelRegistry(self.main_db)
        fetcher = ChannelFetcher(self.http_client, self.main_db, self.settings.telemetry_api)
        consumer = self._consumer or DatabaseChannelConsumer(self.main_db)
        cycle = CollectionCycle(registry, fetcher, consumer)
        return CollectionScheduler(cycle, self.settings.collector)

    async def connect(self) -> None:
        """Open database pools and the HTTP client."""
        await self.main_db.connect()
        await self.feeds_db.connect()
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=self.settings.telemetry_api.timeout)

    async def disconnect(self) -> None:
        """Close the HTTP client and database pools."""
        if self.http_client:
            await self.http_client.aclose()
            self.http_client = None

        await self.feeds_db.disconnect()
        await self.main_db.disconnect()

    async def start(self) -> None:
        """Start collection and replication."""
        logger.info(f"Starting {self.settings.app_name}...")

        try:
            await self.connect()
        except Exception:
            await self.disconnect()
            raise

        if self._shutdown_event.is_set():
            logger.info("Shutdown requested during startup")
            await self.disconnect()
            return

        self.scheduler = self._build_scheduler()
        await self.scheduler.start()

        if self.settings.sync.enabled:
            self.sync_worker = SyncWorker(self.replicator, self.settings.sync.interval)
            await self.sync_worker.start()

        self._running = True
        logger.info(f"{self.settings.app_name} started")

        # The first cycle may have outlived a shutdown request
        if self._shutdown_event.is_set():
            logger.info("Shutdown requested during startup")
            await self.stop()

    def request_shutdown(self) -> None:
        """Ask the service to shut down; serve_forever() returns."""
        self._shutdown_event.set()

    async def stop(self) -> None:
        """
        Stop collection and replication and release connections.

        Called while start() is still running, it only records the
        request; start() finishes by stopping the service.
        """
        self.request_shutdown()
        if not self._running:
            return

        logger.info(f"Stopping {self.settings.app_name}...")
        self._running = False

        if self.sync_worker:
            await self.sync_worker.stop()

        if self.scheduler:
            await self.scheduler.stop()
            await self.scheduler.wait_until_idle()

        await self.disconnect()
        logger.info(f"{self.settings.app_name} stopped")

    async def serve_forever(self) -> None:
        """Run until shutdown."""
        await self._shutdown_event.wait()

    async def sync_once(self) -> Dict[str, int]:
        """Replicate a single batch and return the result."""
        try:
            await self.feeds_db.connect()
            await self.main_db.connect()
            result = await self.replicator.sync_databases()
        finally:
            await self.disconnect()
        return {"processed": result.processed, "lastId": result.last_id}

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        stats: Dict[str, Any] = {
            "running": self._running,
        }

        if self.scheduler:
            stats["collection"] = self.scheduler.get_collector_stats()

        if self.sync_worker:
            stats["sync"] = self.sync_worker.get_stats()
        else:
            stats["sync"] = {"last_processed_id": self.replicator.last_processed_id}

        return stats


def setup_signal_handlers(service: ChannelSyncService, loop: asyncio.AbstractEventLoop) -> None:
    """
    Route SIGINT/SIGTERM to the service's shutdown request.

    The stop itself happens in main() once serve_forever() returns.
    """
    def on_signal() -> None:
        logger.info("Received shutdown signal")
        service.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal)
        except NotImplementedError:
            # No loop signal support (Windows); hop back onto the loop
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(on_signal))


def select_config_source(config_path: Optional[str]) -> ConfigSource:
    """YAML file when a path is given, environment otherwise."""
    if config_path:
        return YamlConfigSource(Path(config_path))
    return EnvConfigSource()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="channel_sync",
        description="Telemetry channel collector and feed replicator",
    )
    parser.add_argument("--config", help="YAML configuration file (default: environment)")
    parser.add_argument(
        "--sync-once",
        action="store_true",
        help="Replicate a single feed batch and exit",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    settings = load_settings(select_config_source(args.config))
    setup_logging(settings.log_level)

    service = ChannelSyncService(settings)

    if args.sync_once:
        result = await service.sync_once()
        logger.info(f"Sync finished: {result}")
        return 0

    setup_signal_handlers(service, asyncio.get_running_loop())

    try:
        await service.start()
        await service.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        await service.stop()

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
