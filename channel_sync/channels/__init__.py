"""
Channel polling module.

Registry of active channels, telemetry API fetcher, status change
detection and downstream consumers.
"""
from .consumers import ChannelConsumer, DatabaseChannelConsumer
from .fetcher import ChannelFetcher
from .models import Channel, ChannelSnapshot
from .registry import ChannelRegistry
from .status_differ import has_significant_change

__all__ = [
    "Channel",
    "ChannelSnapshot",
    "ChannelConsumer",
    "DatabaseChannelConsumer",
    "ChannelFetcher",
    "ChannelRegistry",
    "has_significant_change",
]
