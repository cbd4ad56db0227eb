"""
tubecycler: three-lane spaced-repetition scheduling core.

Schedules practice content ("stitches") across three rotating lanes
("tubes"). Items completed perfectly are pushed forward by a growing
repetition interval; every attempt rotates to the next lane.
"""

from .buffer import BufferConfig, ContentBufferManager
from .errors import (
    CorruptIntervalWarning,
    EmptyLaneError,
    FetchPartialFailure,
    SyncConflictIgnored,
    TubeCyclerError,
    UnknownLaneError,
)
from .scheduling import CurrentItem, LaneId, SchedulerState, SlotEntry, TubeScheduler
from .sync import LocalStateCache, SchedulerStateWire, SyncAdapter

__version__ = "1.0.0"

__all__ = [
    "TubeScheduler",
    "SchedulerState",
    "SlotEntry",
    "LaneId",
    "CurrentItem",
    "ContentBufferManager",
    "BufferConfig",
    "SyncAdapter",
    "LocalStateCache",
    "SchedulerStateWire",
    # Errors
    "TubeCyclerError",
    "EmptyLaneError",
    "UnknownLaneError",
    "FetchPartialFailure",
    "CorruptIntervalWarning",
    "SyncConflictIgnored",
]
