"""
Active channel registry.

Reads the channels enabled for polling from the main database. The list
is re-read every cycle; nothing is cached between cycles.
"""
import logging
from typing import List

from ..database import Database
from ..exceptions import DatabaseError
from .models import Channel

logger = logging.getLogger(__name__)

ACTIVE_CHANNELS_QUERY = "SELECT chanel_id, apikey FROM api_equipo"


class ChannelRegistry:
    """Source of the channels to poll."""

    def __init__(self, db: Database):
        self._db = db

    async def get_active_channels(self) -> List[Channel]:
        """
        Get the channels enabled for polling.

        Returns:
            List of channels; empty when nothing is configured.

        Raises:
            DatabaseError: If the query fails.
        """
        try:
            rows = await self._db.execute(ACTIVE_CHANNELS_QUERY)
        except DatabaseError as e:
            raise DatabaseError("Error fetching channels", e.original_error or e, ACTIVE_CHANNELS_QUERY) from e

        channels = []
        for row in rows:
            if not row.get("apikey"):
                logger.warning(f"Channel {row.get('chanel_id')} has no API key, skipping")
                continue
            channels.append(Channel(channel_id=row["chanel_id"], api_key=row["apikey"]))

        logger.debug(f"Found {len(channels)} active channels")
        return channels
