"""
Unit tests for FeedReplicator.

Uses the in-memory source/destination simulators.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from channel_sync.exceptions import DatabaseError
from channel_sync.sync.replicator import (
    INSERT_FEED_COLUMNS,
    FeedReplicator,
    SyncCursor,
    SyncResult,
    epoch_to_datetime,
    feed_insert_params,
)
from tests.factories import FeedRecordFactory, feed_records


class TestSyncCursor:
    """Test the replication high-water mark."""

    def test_advances(self):
        cursor = SyncCursor(100)
        cursor.advance(200)
        assert cursor.value == 200

    def test_same_value_is_allowed(self):
        cursor = SyncCursor(100)
        cursor.advance(100)
        assert cursor.value == 100

    def test_never_moves_backwards(self):
        cursor = SyncCursor(200)
        with pytest.raises(ValueError):
            cursor.advance(150)
        assert cursor.value == 200


class TestRowMapping:
    """Test source-to-destination row conversion."""

    def test_epoch_to_datetime(self):
        assert epoch_to_datetime(1760702400) == datetime(2025, 10, 17, 12, tzinfo=timezone.utc)
        assert epoch_to_datetime("1760702400") == datetime(2025, 10, 17, 12, tzinfo=timezone.utc)
        assert epoch_to_datetime(None) is None

    def test_naive_datetime_is_taken_as_utc(self):
        assert epoch_to_datetime(datetime(2025, 10, 17, 12)).tzinfo == timezone.utc

    def test_feed_insert_params(self):
        record = FeedRecordFactory(entry_id=7, channel_id=80002, lat=1.5, long=-2.5, log="rebooted")

        row = dict(zip(INSERT_FEED_COLUMNS, feed_insert_params(record)))

        assert len(feed_insert_params(record)) == len(INSERT_FEED_COLUMNS)
        assert row["channel_id"] == 80002
        assert row["latitude"] == 1.5
        assert row["longitude"] == -2.5
        assert row["log"] == "rebooted"
        assert row["created_at"] == epoch_to_datetime(record["created_at"])
        assert all(row[f"field{i}"] == record[f"field{i}"] for i in range(1, 21))
        assert "entry_id" not in row


class TestSyncDatabases:
    """Test incremental batch replication."""

    @pytest.mark.asyncio
    async def test_batches_until_caught_up(self, feed_source, feed_destination):
        feed_source.add(feed_records(101, 250))
        replicator = FeedReplicator(feed_source, feed_destination, batch_size=100, start_id=100)

        assert await replicator.sync_databases() == SyncResult(processed=100, last_id=200)
        assert await replicator.sync_databases() == SyncResult(processed=50, last_id=250)
        assert await replicator.sync_databases() == SyncResult(processed=0, last_id=250)

        assert len(feed_destination.feeds) == 150
        assert replicator.last_processed_id == 250

    @pytest.mark.asyncio
    async def test_rows_at_or_below_cursor_are_not_copied(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 20))
        replicator = FeedReplicator(feed_source, feed_destination, batch_size=100, start_id=15)

        result = await replicator.sync_databases()

        assert result == SyncResult(processed=5, last_id=20)
        assert len(feed_destination.feeds) == 5

    @pytest.mark.asyncio
    async def test_no_new_rows_is_idempotent(self, feed_source, feed_destination):
        replicator = FeedReplicator(feed_source, feed_destination, start_id=42)

        first = await replicator.sync_databases()
        second = await replicator.sync_databases()

        assert first == second == SyncResult(processed=0, last_id=42)
        assert feed_destination.process_log == []

    @pytest.mark.asyncio
    async def test_cursor_tracks_max_entry_id(self, feed_source, feed_destination):
        replicator = FeedReplicator(feed_source, feed_destination, batch_size=10)
        seen = []

        for first, last in ((1, 4), (5, 12), (13, 13)):
            feed_source.add(feed_records(first, last))
            while (await replicator.sync_databases()).processed:
                seen.append(replicator.last_processed_id)

        assert seen == sorted(seen)
        assert replicator.last_processed_id == 13

    @pytest.mark.asyncio
    async def test_progress_is_logged(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 3))
        replicator = FeedReplicator(feed_source, feed_destination)

        await replicator.sync_databases()

        assert feed_destination.process_log == ["Synchronized 3 records. Last ID: 3"]

    @pytest.mark.asyncio
    async def test_process_log_failure_is_swallowed(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 3))
        feed_destination.fail_process_log = True
        replicator = FeedReplicator(feed_source, feed_destination)

        result = await replicator.sync_databases()

        assert result == SyncResult(processed=3, last_id=3)
        assert replicator.last_processed_id == 3

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_cursor_unchanged(self, feed_source, feed_destination):
        records = feed_records(101, 110)
        feed_source.add(records)
        feed_destination.fail_on_created_at.add(epoch_to_datetime(records[4]["created_at"]))
        replicator = FeedReplicator(feed_source, feed_destination, batch_size=100, start_id=100)

        with pytest.raises(DatabaseError) as exc_info:
            await replicator.sync_databases()

        assert exc_info.value.message == "Error syncing databases"
        assert "duplicate key" in str(exc_info.value)
        assert replicator.last_processed_id == 100
        assert feed_destination.process_log == []

        # the whole range is attempted again once the destination recovers
        feed_destination.fail_on_created_at.clear()
        feed_source.queries.clear()
        result = await replicator.sync_databases()

        assert result == SyncResult(processed=10, last_id=110)
        assert feed_source.queries[0][1] == (100, 100)

    @pytest.mark.asyncio
    async def test_malformed_timestamp_raises_database_error(self, feed_source, feed_destination):
        records = feed_records(1, 5)
        records[2]["created_at"] = "not-a-timestamp"
        feed_source.add(records)
        replicator = FeedReplicator(feed_source, feed_destination)

        with pytest.raises(DatabaseError) as exc_info:
            await replicator.sync_databases()

        assert exc_info.value.message == "Error syncing databases"
        assert isinstance(exc_info.value.original_error, ValueError)
        assert replicator.last_processed_id == 0
        assert feed_destination.feeds == []

    @pytest.mark.asyncio
    async def test_source_failure_raises_database_error(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 5))
        feed_source.fail_reads = True
        replicator = FeedReplicator(feed_source, feed_destination, start_id=0)

        with pytest.raises(DatabaseError, match="Error syncing databases"):
            await replicator.sync_databases()

        assert replicator.last_processed_id == 0
        assert feed_destination.feeds == []

    @pytest.mark.asyncio
    async def test_inserts_run_concurrently(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 20))
        feed_destination.insert_delay = 0.01
        replicator = FeedReplicator(feed_source, feed_destination)

        await replicator.sync_databases()

        assert feed_destination.max_concurrent_inserts == 20

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_overlap(self, feed_source, feed_destination):
        feed_source.add(feed_records(1, 150))
        feed_destination.insert_delay = 0.01
        replicator = FeedReplicator(feed_source, feed_destination, batch_size=100)

        results = await asyncio.gather(replicator.sync_databases(), replicator.sync_databases())

        assert sorted(results, key=lambda r: r.last_id) == [
            SyncResult(processed=100, last_id=100),
            SyncResult(processed=50, last_id=150),
        ]
        created = [row["created_at"] for row in feed_destination.feeds]
        assert len(created) == len(set(created)) == 150
