"""
Channel data types.

A Channel is what the registry hands out each cycle; a ChannelSnapshot
is what the fetcher returns after talking to the telemetry API.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Channel:
    """A pollable telemetry endpoint and its API key."""
    channel_id: int
    api_key: str


@dataclass
class ChannelSnapshot:
    """
    Channel payload returned by the telemetry API.

    `data` is the raw `channel` object from the response. `status_updated`
    records whether the stored device status was rewritten during the fetch.
    """
    channel_id: int
    data: Dict[str, Any]
    status_updated: bool = False

    @property
    def status(self) -> Optional[Any]:
        return self.data.get("status")

    def parsed_last_values(self) -> Dict[str, Any]:
        """
        Last-known sensor values of the channel.

        The API sends `last_values` as a JSON-encoded string; an already
        decoded mapping is accepted as well.

        Raises:
            ValueError: If the payload is missing or not a JSON object.
        """
        raw = self.data.get("last_values")
        if isinstance(raw, dict):
            return raw
        if not raw:
            raise ValueError(f"Channel {self.channel_id} has no last_values")

        values = json.loads(raw)
        if not isinstance(values, dict):
            raise ValueError(f"Channel {self.channel_id} last_values is not an object")
        return values
