"""
Feed replication module.

Copies new source feed rows into the destination database.
"""
from .replicator import FeedReplicator, SyncCursor, SyncResult
from .worker import SyncMetrics, SyncWorker

__all__ = [
    "FeedReplicator",
    "SyncCursor",
    "SyncResult",
    "SyncMetrics",
    "SyncWorker",
]
