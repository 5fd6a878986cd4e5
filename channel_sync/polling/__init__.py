"""
Channel collection module.

Handles the scheduled collection cycle and its metrics.
"""
from .collector import CollectionCycle
from .metrics import ChannelError, CollectionMetrics, CycleOutcome
from .scheduler import CollectionScheduler, SchedulerState

__all__ = [
    "CollectionCycle",
    "CollectionMetrics",
    "CycleOutcome",
    "ChannelError",
    "CollectionScheduler",
    "SchedulerState",
]
