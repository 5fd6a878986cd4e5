"""
Channel Sync - telemetry channel collection and feed replication.

Polls the telemetry API for active channels, keeps device status in
step with the main database and replicates new feed rows.
"""
from .config import ChannelSyncSettings, get_settings
from .main import ChannelSyncService

__all__ = [
    "ChannelSyncSettings",
    "get_settings",
    "ChannelSyncService",
]
