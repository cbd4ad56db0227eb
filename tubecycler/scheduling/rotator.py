"""
Lane Rotator.

Round-robin over the three lanes: 1 -> 2 -> 3 -> 1. Wrapping from lane 3
back to lane 1 completes a cycle. Rotation happens after every attempt,
whatever the outcome.
"""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from .models import Clock, LaneId, SchedulerState, SlotEntry, utc_now

ActiveSlotListener = Callable[[LaneId], None]


class LaneRotator:
    """Tracks the active lane and tells listeners when it changes."""

    def __init__(self, state: SchedulerState, clock: Clock = utc_now):
        self.state = state
        self.clock = clock
        self._listeners: list[ActiveSlotListener] = []

    @property
    def active_lane(self) -> LaneId:
        return self.state.active_lane

    @property
    def cycle_count(self) -> int:
        return self.state.cycle_count

    def add_listener(self, listener: ActiveSlotListener) -> None:
        """Register a callback for notify_active_slot_changed()."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ActiveSlotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def advance(self) -> LaneId:
        previous = self.state.active_lane
        following = previous.following()
        self.state.active_lane = following
        if following == LaneId.ONE:
            self.state.cycle_count += 1
            logger.debug("Cycle {} complete", self.state.cycle_count)
        self.state.touch(self.clock)

        logger.info("Rotated lane {} -> lane {}", int(previous), int(following))
        self.notify_active_slot_changed()
        return following

    def select(self, lane: object) -> LaneId:
        """Jump straight to a lane; the cycle counter is not affected."""
        lane_id = LaneId.parse(lane)
        if lane_id != self.state.active_lane:
            self.state.active_lane = lane_id
            self.state.touch(self.clock)
            logger.info("Selected lane {}", int(lane_id))
        self.notify_active_slot_changed()
        return lane_id

    def reset(self) -> None:
        self.state.active_lane = LaneId.ONE
        self.state.cycle_count = 0
        self.state.touch(self.clock)

    def get_current_item(self) -> SlotEntry | None:
        """Entry at slot 0 of the active lane, or None when that lane is empty."""
        return self.state.lanes[self.state.active_lane].slots.get(0)

    def notify_active_slot_changed(self) -> None:
        lane = self.state.active_lane
        for listener in list(self._listeners):
            listener(lane)
