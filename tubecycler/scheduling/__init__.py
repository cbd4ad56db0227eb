"""
Three-lane scheduling state machine.

Components:
- PositionStore: (lane, slot) -> SlotEntry
- ReorderingEngine: advance-and-shift after a perfect completion
- LaneRotator: round-robin over lanes 1 -> 2 -> 3
- TubeScheduler: the presentation-facing surface
"""

from .intervals import REPETITION_INTERVALS, next_interval, normalize_interval
from .models import CurrentItem, Lane, LaneId, SchedulerState, SlotEntry
from .position_store import PositionStore
from .reordering import ReorderingEngine
from .rotator import LaneRotator
from .scheduler import TubeScheduler

__all__ = [
    # Intervals
    "REPETITION_INTERVALS",
    "next_interval",
    "normalize_interval",
    # State
    "CurrentItem",
    "Lane",
    "LaneId",
    "SchedulerState",
    "SlotEntry",
    # Components
    "PositionStore",
    "ReorderingEngine",
    "LaneRotator",
    "TubeScheduler",
]
