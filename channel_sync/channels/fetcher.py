"""
Telemetry API client for channel data.

Fetches one channel from the remote telemetry API and reconciles its
device status with the copy stored in the main database.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from ..config import TelemetryApiSettings
from ..database import Database
from ..exceptions import ValidationError
from .models import ChannelSnapshot
from .status_differ import has_significant_change

logger = logging.getLogger(__name__)

STORED_STATUS_QUERY = "SELECT status FROM api_equipo WHERE chanel_id = $1"
UPDATE_STATUS_QUERY = (
    "UPDATE api_equipo SET status = $1, fecha_actualizacion = CURRENT_TIMESTAMP "
    "WHERE chanel_id = $2"
)


class ChannelFetcher:
    """
    Client for the remote telemetry API.

    Responsibilities:
    - Fetch channel payloads with a bounded timeout
    - Validate the response envelope
    - Persist the device status when it changed

    Transport errors (timeouts, refused connections) are not caught here;
    retrying is the scheduler's job.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        db: Database,
        settings: TelemetryApiSettings,
    ):
        """
        Initialize the fetcher.

        Args:
            client: Shared HTTP client.
            db: Main database holding the channel records.
            settings: Telemetry API settings.
        """
        self._client = client
        self._db = db
        self.settings = settings

    def _build_request(self, channel_id: Any, api_key: str) -> Tuple[str, Dict[str, Any]]:
        base_url = self.settings.base_url.rstrip("/")
        if self.settings.url_style == "query":
            return base_url, {"id": channel_id, "auth_key": api_key}
        return f"{base_url}/channels/{channel_id}", {"api_key": api_key}

    async def fetch_channel_data(self, channel_id: Any, api_key: str) -> ChannelSnapshot:
        """
        Fetch a channel and update its stored status if it changed.

        Args:
            channel_id: Channel to fetch.
            api_key: Channel API key.

        Returns:
            Snapshot with the channel payload.

        Raises:
            ValidationError: If the API answers with an error status or an
                unexpected body.
            httpx.TransportError: On network failures and timeouts.
        """
        url, params = self._build_request(channel_id, api_key)
        response = await self._client.get(url, params=params, timeout=self.settings.timeout)

        if response.is_error:
            raise ValidationError(
                f"API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        if (
            not isinstance(body, dict)
            or body.get("result") != "success"
            or not isinstance(body.get("channel"), dict)
        ):
            raise ValidationError(
                "Invalid API response structure",
                status_code=response.status_code,
                response_text=response.text,
            )

        channel = body["channel"]
        status_updated = await self._reconcile_status(channel_id, channel.get("status"))

        return ChannelSnapshot(
            channel_id=channel_id,
            data=channel,
            status_updated=status_updated,
        )

    async def _reconcile_status(self, channel_id: Any, new_status: Optional[Any]) -> bool:
        """
        Write the new status when it differs from the stored one.

        Nothing is written when the API sent no status or the channel has
        no stored record.

        Returns:
            True if the status was written.
        """
        if not new_status:
            return False

        rows = await self._db.execute(STORED_STATUS_QUERY, channel_id)
        if not rows:
            return False

        if not has_significant_change(rows[0].get("status"), new_status):
            return False

        await self._db.execute(UPDATE_STATUS_QUERY, json.dumps(new_status), channel_id)
        logger.info(f"Status updated for channel {channel_id}")
        return True
