"""
Collection cycle over all active channels.

Fetches every active channel in turn and passes the result to the
downstream consumer. One failing channel never stops the others.
"""
import logging

from ..channels.consumers import ChannelConsumer
from ..channels.fetcher import ChannelFetcher
from ..channels.models import Channel
from ..channels.registry import ChannelRegistry
from .metrics import ChannelError, CycleOutcome

logger = logging.getLogger(__name__)


class CollectionCycle:
    """
    One pass of polling all active channels.

    Channels are processed sequentially to bound the load on the
    telemetry API. The cycle returns an outcome and never touches
    metrics itself.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        fetcher: ChannelFetcher,
        consumer: ChannelConsumer,
    ):
        """
        Initialize the collection cycle.

        Args:
            registry: Source of active channels.
            fetcher: Telemetry API fetcher.
            consumer: Receives every fetched channel.
        """
        self.registry = registry
        self.fetcher = fetcher
        self.consumer = consumer

    async def run_cycle(self) -> CycleOutcome:
        """
        Poll every active channel once.

        Returns:
            Outcome listing processed and failed channels.

        Raises:
            DatabaseError: If the active channels cannot be read.
        """
        channels = await self.registry.get_active_channels()

        if not channels:
            logger.warning("No enabled channels found to process")
            return CycleOutcome(registry_empty=True)

        outcome = CycleOutcome(channels_total=len(channels))

        for channel in channels:
            try:
                await self._process_channel(channel)
            except Exception as e:
                error = ChannelError(channel.channel_id, e)
                logger.error(f"Error processing channel {error.channel_id}: {error.message}")
                outcome.channel_errors.append(error)
            else:
                outcome.processed.append(channel.channel_id)

        logger.info(
            f"Processed {len(outcome.processed)}/{outcome.channels_total} channels"
            + (f", {len(outcome.channel_errors)} failed" if outcome.channel_errors else "")
        )
        return outcome

    async def _process_channel(self, channel: Channel) -> None:
        snapshot = await self.fetcher.fetch_channel_data(channel.channel_id, channel.api_key)

        await self.consumer.process_channel_data(snapshot.data)
        await self.consumer.process_sensor_readings(
            snapshot.channel_id,
            snapshot.parsed_last_values(),
        )
