"""
Downstream consumers for fetched channels.

The collection cycle hands every successfully fetched channel to a
consumer twice: once with the channel record, once with the parsed
sensor readings. Consumers must tolerate duplicate delivery.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol
from zoneinfo import ZoneInfo

from ..database import Database

logger = logging.getLogger(__name__)

CHANNEL_INFO_FIELDS = (
    "product_id",
    "device_id",
    "latitude",
    "longitude",
    "firmware",
    "mac_address",
    "last_entry_date",
    "created_at",
)

_DATE_FIELDS = ("last_entry_date", "created_at")


class ChannelConsumer(Protocol):
    """Receives every channel fetched during a collection cycle."""

    async def process_channel_data(self, channel: Dict[str, Any]) -> None:
        ...

    async def process_sensor_readings(self, channel_id: Any, last_values: Dict[str, Any]) -> None:
        ...


def parse_api_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the API into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _reading(last_values: Dict[str, Any], field: str, key: str = "value") -> Any:
    entry = last_values.get(field)
    if not isinstance(entry, dict):
        return None
    return entry.get(key)


class DatabaseChannelConsumer:
    """
    Stores channel records and sensor readings in the main database.

    - Channel records are inserted when new and updated only when one of
      the basic info fields changed
    - One sensor reading row is appended per delivery
    """

    def __init__(self, db: Database, local_timezone: str = "UTC"):
        """
        Args:
            db: Main database.
            local_timezone: Zone used for the local insertion time column.
        """
        self._db = db
        self._tz = ZoneInfo(local_timezone)

    def _basic_info(self, channel: Dict[str, Any]) -> Dict[str, Any]:
        info = {name: channel.get(name) for name in CHANNEL_INFO_FIELDS}
        for name in _DATE_FIELDS:
            info[name] = parse_api_datetime(info[name])
        return info

    async def process_channel_data(self, channel: Dict[str, Any]) -> None:
        channel_id = channel.get("channel_id")
        if channel_id is None:
            logger.error(f"Invalid channel data, missing channel_id: {channel}")
            return

        info = self._basic_info(channel)
        rows = await self._db.execute(
            "SELECT * FROM channels_ubibot WHERE channel_id = $1", channel_id
        )

        if not rows:
            columns = ["channel_id", "name", *CHANNEL_INFO_FIELDS]
            values = [channel_id, channel.get("name"), *info.values()]
            placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
            await self._db.execute(
                f"INSERT INTO channels_ubibot ({', '.join(columns)}) VALUES ({placeholders})",
                *values,
            )
            logger.info(f"New channel {channel_id} ({channel.get('name')}) registered")
            return

        current = rows[0]
        changed = [name for name, value in info.items() if current.get(name) != value]
        if not changed:
            return

        assignments = ", ".join(f"{name} = ${i}" for i, name in enumerate(info, start=1))
        await self._db.execute(
            f"UPDATE channels_ubibot SET {assignments} WHERE channel_id = ${len(info) + 1}",
            *info.values(),
            channel_id,
        )
        logger.debug(f"Channel {channel_id} info updated: {', '.join(changed)}")

    async def process_sensor_readings(self, channel_id: Any, last_values: Dict[str, Any]) -> None:
        created_at = _reading(last_values, "field1", "created_at")
        if not created_at:
            logger.error(f"No readings or timestamp found for channel {channel_id}")
            return

        timestamp = parse_api_datetime(created_at)
        inserted_at = datetime.now(self._tz).replace(tzinfo=None)

        await self._db.execute(
            """
            INSERT INTO sensor_readings_ubibot
            (channel_id, timestamp, temperature, humidity, light, voltage,
             wifi_rssi, external_temperature, external_temperature_timestamp,
             insercion)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            channel_id,
            timestamp,
            _reading(last_values, "field1"),
            _reading(last_values, "field2"),
            _reading(last_values, "field3"),
            _reading(last_values, "field4"),
            _reading(last_values, "field5"),
            _reading(last_values, "field8"),
            parse_api_datetime(_reading(last_values, "field8", "created_at")),
            inserted_at,
        )
        logger.debug(f"Inserted sensor readings for channel {channel_id} at {timestamp.isoformat()}")
