"""
Scheduling state for the three-lane rotation.

Each lane owns an ordered mapping from slot number to SlotEntry. Slot 0 holds
the active item; the lane caches its content id so callers can read it
without walking the mapping.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import NamedTuple

from tubecycler.errors import UnknownLaneError

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Lanes
# =============================================================================


class LaneId(IntEnum):
    """The fixed set of practice lanes ("tubes")."""

    ONE = 1
    TWO = 2
    THREE = 3

    @classmethod
    def parse(cls, value: object) -> LaneId:
        """Accept a LaneId, an int, or a numeric string such as "2"."""
        if isinstance(value, cls):
            return value
        try:
            return cls(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise UnknownLaneError(value) from None

    def following(self) -> LaneId:
        """Lane(i) -> Lane(i mod 3 + 1)."""
        return LaneId(self.value % len(LaneId) + 1)


# =============================================================================
# Entries
# =============================================================================


@dataclass
class SlotEntry:
    """Position record for one content item within a lane."""

    content_id: str
    repetition_interval: int = 1
    distractor_tier: int = 1
    perfect_completion_count: int = 0
    last_completed_at: datetime | None = None


class CurrentItem(NamedTuple):
    """What the presentation layer needs to show the active question."""

    lane: LaneId
    content_id: str
    repetition_interval: int
    distractor_tier: int


@dataclass
class Lane:
    """One practice queue: slot -> entry, plus denormalized active id."""

    lane_id: LaneId
    slots: dict[int, SlotEntry] = field(default_factory=dict)
    active_content_id: str | None = None
    lane_source_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.slots

    def ordered(self) -> list[tuple[int, SlotEntry]]:
        return sorted(self.slots.items())


def _empty_lanes() -> dict[LaneId, Lane]:
    return {lane_id: Lane(lane_id=lane_id) for lane_id in LaneId}


@dataclass
class SchedulerState:
    """
    Aggregate scheduling state for one learner session.

    `revision` increments on every mutation alongside `last_mutated_at`, so
    two mutations that read the same clock value are still distinguishable.
    `generation` increments only on full reset and lets asynchronous work
    detect that the state it was issued against is gone.
    """

    lanes: dict[LaneId, Lane] = field(default_factory=_empty_lanes)
    active_lane: LaneId = LaneId.ONE
    cycle_count: int = 0
    last_mutated_at: datetime = field(default_factory=utc_now)
    revision: int = 0
    generation: int = 0

    def lane(self, lane: object) -> Lane:
        return self.lanes[LaneId.parse(lane)]

    def touch(self, clock: Clock = utc_now) -> None:
        self.last_mutated_at = clock()
        self.revision += 1

    @property
    def mutation_stamp(self) -> tuple[int, int, datetime]:
        return (self.generation, self.revision, self.last_mutated_at)

    def copy(self) -> SchedulerState:
        return copy.deepcopy(self)
