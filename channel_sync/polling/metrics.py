"""
Collection metrics and cycle outcomes.

The collection cycle reports what happened in a CycleOutcome; only the
scheduler folds outcomes into CollectionMetrics.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional


@dataclass
class ChannelError:
    """A channel that failed during a cycle."""
    channel_id: Any
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class CycleOutcome:
    """Result of one pass over the active channels."""
    channels_total: int = 0
    processed: List[Any] = field(default_factory=list)
    channel_errors: List[ChannelError] = field(default_factory=list)
    registry_empty: bool = False

    @property
    def failed(self) -> List[Any]:
        return [err.channel_id for err in self.channel_errors]


@dataclass
class CollectionMetrics:
    """
    Process-lifetime collection counters.

    Never reset; a restart starts from zero.
    """
    successful_collections: int = 0
    failed_collections: int = 0
    total_retries: int = 0
    last_error: Optional[str] = None
    last_success_time: Optional[datetime] = None

    @property
    def success_rate(self) -> Optional[float]:
        """Successful share of all recorded collections, in percent."""
        total = self.successful_collections + self.failed_collections
        if total == 0:
            return None
        return self.successful_collections / total * 100
