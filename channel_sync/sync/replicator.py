"""
Incremental feed replication.

Copies new rows of the source channel_feeds table into the destination
api_channel_feeds table, in entry_id order, one bounded batch per call.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..database import Database
from ..exceptions import DatabaseError

logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = tuple(f"field{i}" for i in range(1, 21))

SELECT_NEW_FEEDS_QUERY = """
    SELECT * FROM channel_feeds
    WHERE entry_id > $1
    ORDER BY entry_id
    LIMIT $2
"""

INSERT_FEED_COLUMNS = (
    "channel_id",
    *PAYLOAD_FIELDS,
    "latitude",
    "longitude",
    "elevation",
    "created_at",
    "status",
    "usage",
    "nt",
    "log",
)

INSERT_FEED_QUERY = (
    f"INSERT INTO api_channel_feeds ({', '.join(INSERT_FEED_COLUMNS)}) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(INSERT_FEED_COLUMNS) + 1))})"
)

PROCESS_LOG_QUERY = "INSERT INTO process_log (message) VALUES ($1)"


@dataclass(frozen=True)
class SyncResult:
    """Result of one sync call."""
    processed: int
    last_id: int


class SyncCursor:
    """
    High-water mark of replicated source rows.

    Only moves forward.
    """

    def __init__(self, start: int = 0):
        self._value = start

    @property
    def value(self) -> int:
        return self._value

    def advance(self, entry_id: int) -> None:
        if entry_id < self._value:
            raise ValueError(
                f"Cursor cannot move backwards ({self._value} -> {entry_id})"
            )
        self._value = entry_id


def epoch_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a source epoch timestamp (seconds) to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def feed_insert_params(record: Dict[str, Any]) -> List[Any]:
    """Map a source feed row to the destination insert parameters."""
    return [
        record.get("channel_id"),
        *(record.get(name) for name in PAYLOAD_FIELDS),
        record.get("lat"),
        record.get("long"),
        record.get("elevation"),
        epoch_to_datetime(record.get("created_at")),
        record.get("status"),
        record.get("usage"),
        record.get("nt"),
        record.get("log"),
    ]


class FeedReplicator:
    """
    Replicates feed rows from the source to the destination database.

    Delivery is at-least-once: a batch whose inserts partially fail is
    retried in full on the next call, so the destination must tolerate
    duplicates.
    """

    def __init__(
        self,
        source: Database,
        destination: Database,
        batch_size: int = 1000,
        start_id: int = 0,
    ):
        """
        Initialize the replicator.

        Args:
            source: Database holding channel_feeds.
            destination: Database receiving api_channel_feeds.
            batch_size: Maximum rows per call.
            start_id: Initial cursor value.
        """
        self._source = source
        self._destination = destination
        self.batch_size = batch_size
        self.cursor = SyncCursor(start_id)
        self._lock = asyncio.Lock()

    @property
    def last_processed_id(self) -> int:
        return self.cursor.value

    async def sync_databases(self) -> SyncResult:
        """
        Replicate the next batch of new feed rows.

        Returns:
            Number of rows replicated and the cursor after the call.

        Raises:
            DatabaseError: If reading or any insert fails. The cursor is
                left unchanged.
        """
        async with self._lock:
            last_id = self.cursor.value

            try:
                records = await self._source.execute(
                    SELECT_NEW_FEEDS_QUERY, last_id, self.batch_size
                )
            except DatabaseError as e:
                raise DatabaseError("Error syncing databases", e.original_error or e) from e

            if not records:
                return SyncResult(processed=0, last_id=last_id)

            await self._insert_batch(records)

            new_last_id = records[-1]["entry_id"]
            self.cursor.advance(new_last_id)

            await self._log_progress(new_last_id, len(records))

            logger.info(f"Synchronized {len(records)} records. Last ID: {new_last_id}")
            return SyncResult(processed=len(records), last_id=new_last_id)

    async def _insert_batch(self, records: Sequence[Dict[str, Any]]) -> None:
        """Insert all rows concurrently; fail if any insert failed."""
        try:
            rows = [feed_insert_params(record) for record in records]
        except (TypeError, ValueError, OverflowError) as e:
            logger.error(
                f"Malformed feed row in batch starting at entry_id {records[0]['entry_id']}: {e}"
            )
            raise DatabaseError("Error syncing databases", e) from e

        results = await asyncio.gather(
            *(self._destination.execute(INSERT_FEED_QUERY, *params) for params in rows),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.error(
                f"{len(errors)}/{len(records)} inserts failed for batch starting "
                f"at entry_id {records[0]['entry_id']}"
            )
            first = errors[0]
            raise DatabaseError(
                "Error syncing databases",
                getattr(first, "original_error", None) or first,
            ) from first

    async def _log_progress(self, last_id: int, records_processed: int) -> None:
        try:
            await self._destination.execute(
                PROCESS_LOG_QUERY,
                f"Synchronized {records_processed} records. Last ID: {last_id}",
            )
        except Exception as e:
            logger.error(f"Error logging progress: {e}")
