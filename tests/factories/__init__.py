"""
Test data factories.

Provides factory classes for generating test data.
"""
from .channel_factory import (
    ChannelFactory,
    ChannelPayloadFactory,
    ChannelRowFactory,
    api_response,
    device_status,
    status_string,
)
from .feed_factory import FeedRecordFactory, feed_records

__all__ = [
    "ChannelFactory",
    "ChannelPayloadFactory",
    "ChannelRowFactory",
    "FeedRecordFactory",
    "api_response",
    "device_status",
    "feed_records",
    "status_string",
]
