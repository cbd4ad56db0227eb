"""
Position Store.

Maps (lane, slot) to a SlotEntry. This is the only source of truth for
scheduling metadata: intervals are never inferred from content payloads.
All mutations are synchronous and replace whole values, so a reader never
observes a half-written lane. A non-empty lane always has slot 0 occupied;
writes that would leave it otherwise raise ValueError.
"""

from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

from .models import Clock, Lane, LaneId, SchedulerState, SlotEntry, utc_now


class PositionStore:
    """Slot-level access to the lanes of a SchedulerState."""

    def __init__(self, state: SchedulerState, clock: Clock = utc_now):
        self.state = state
        self.clock = clock

    def _lane(self, lane: object) -> Lane:
        return self.state.lane(lane)

    @staticmethod
    def _check_slot(n: int) -> int:
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise ValueError(f"Slot must be a non-negative integer, got {n!r}")
        return n

    # =========================================================================
    # Reads
    # =========================================================================

    def get_slot(self, lane: object, n: int) -> SlotEntry | None:
        """Entry at slot n, or None when the slot is vacant."""
        return self._lane(lane).slots.get(n)

    def slots_in_order(self, lane: object) -> list[tuple[int, SlotEntry]]:
        """Ascending (slot, entry) pairs for a lane."""
        return self._lane(lane).ordered()

    def active_content_id(self, lane: object) -> str | None:
        return self._lane(lane).active_content_id

    def is_empty(self, lane: object) -> bool:
        return self._lane(lane).is_empty

    def find_content(self, lane: object, content_id: str) -> int | None:
        """Slot currently holding content_id in a lane, if any."""
        for n, entry in self.slots_in_order(lane):
            if entry.content_id == content_id:
                return n
        return None

    def lane_for_source(self, source_id: str) -> LaneId | None:
        """Lane whose content originates from source_id."""
        for lane_id, lane in self.state.lanes.items():
            if lane.lane_source_id == source_id:
                return lane_id
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def set_slot(self, lane: object, n: int, entry: SlotEntry) -> None:
        target = self._lane(lane)
        self._check_slot(n)
        if n != 0 and 0 not in target.slots:
            raise ValueError(f"Lane {int(target.lane_id)} has no slot 0; fill slot 0 before slot {n}")
        target.slots[n] = entry
        if n == 0:
            target.active_content_id = entry.content_id
        self.state.touch(self.clock)

    def remove_slot(self, lane: object, n: int) -> SlotEntry | None:
        target = self._lane(lane)
        self._check_slot(n)
        if n == 0 and len(target.slots) > 1:
            raise ValueError(
                f"Cannot vacate slot 0 of lane {int(target.lane_id)} while later slots are occupied"
            )
        removed = target.slots.pop(n, None)
        if removed is not None:
            if n == 0:
                target.active_content_id = None
            self.state.touch(self.clock)
        return removed

    def replace_lane(self, lane: object, slots: Mapping[int, SlotEntry]) -> None:
        """
        Swap in a complete slot layout for a lane in one step.

        Used by the reordering engine so a reorder is either fully visible
        or not visible at all.
        """
        target = self._lane(lane)
        layout = {self._check_slot(n): entry for n, entry in slots.items()}
        if layout and 0 not in layout:
            raise ValueError(f"Layout for lane {int(target.lane_id)} has entries but no slot 0")
        target.slots = layout
        head = layout.get(0)
        target.active_content_id = head.content_id if head is not None else None
        self.state.touch(self.clock)

    def set_lane_source(self, lane: object, source_id: str | None) -> None:
        self._lane(lane).lane_source_id = source_id
        self.state.touch(self.clock)

    def clear(self) -> None:
        """Drop every entry in every lane (full-state reset only)."""
        for lane_id in LaneId:
            self.state.lanes[lane_id] = Lane(lane_id=lane_id)
        self.state.touch(self.clock)
        logger.info("Position store cleared")
