"""
Database simulators for replication tests.
"""
from .feed_database import FeedDestinationSimulator, FeedSourceSimulator

__all__ = [
    "FeedDestinationSimulator",
    "FeedSourceSimulator",
]
