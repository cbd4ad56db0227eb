"""
Reordering Engine.

Repositions the active item of a lane after a practice attempt.

Perfect completion (advance-and-shift):
1. Read the entry at slot 0 and its interval k.
2. Step the interval to k' along 1 -> 3 -> 5 -> 10 -> 25 -> 100 (ceiling at 100).
3. Count the completion and stamp the time.
4. Every occupied slot in 1..k' moves down by one, in ascending order.
5. The completed entry lands at slot k'.
6. Whatever now sits at slot 0 is the new active item.

Not-perfect completion leaves the lane untouched; the presentation layer
replays the same item.

Example, perfect on A with interval 1:
    {0: A, 1: B, 2: C, 3: D}  ->  {0: B, 1: C, 2: D, 3: A}
"""

from __future__ import annotations

from dataclasses import replace

from loguru import logger

from tubecycler.errors import EmptyLaneError

from .intervals import is_valid_interval, next_interval, normalize_interval
from .models import Clock, LaneId, SlotEntry, utc_now
from .position_store import PositionStore


class ReorderingEngine:
    """Applies completion outcomes to the slot layout of a lane."""

    def __init__(self, store: PositionStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def apply(self, lane: object, perfect: bool) -> SlotEntry:
        """
        Apply an outcome for the item at slot 0 of a lane.

        Returns:
            The entry active at slot 0 after the outcome.

        Raises:
            EmptyLaneError: slot 0 is vacant before the outcome, or would be
                vacant after the shift. The lane is left exactly as it was.
        """
        lane_id = LaneId.parse(lane)
        current = self.store.get_slot(lane_id, 0)
        if current is None:
            logger.error("Outcome recorded on lane {} with nothing at slot 0", int(lane_id))
            raise EmptyLaneError(lane_id)

        if not perfect:
            logger.debug(
                "Lane {}: not-perfect on {}, layout unchanged", int(lane_id), current.content_id
            )
            return current

        layout, new_interval = self.advance_layout(self.store.slots_in_order(lane_id))
        head = layout.get(0)
        if head is None:
            logger.error(
                "Lane {}: advancing {} leaves slot 0 vacant; reorder rolled back",
                int(lane_id),
                current.content_id,
            )
            raise EmptyLaneError(
                lane_id,
                f"Lane {int(lane_id)} has no item to promote into slot 0 after advancing "
                f"{current.content_id}",
            )

        self.store.replace_lane(lane_id, layout)
        logger.info(
            "Lane {}: {} interval {} -> {}, {} now active",
            int(lane_id),
            current.content_id,
            current.repetition_interval,
            new_interval,
            head.content_id,
        )
        return head

    def advance_layout(
        self, ordered: list[tuple[int, SlotEntry]]
    ) -> tuple[dict[int, SlotEntry], int]:
        """
        Compute the post-completion layout without touching the store.

        `ordered` must be ascending and start with slot 0. The entry objects
        in the input are not modified; the completed entry is a new copy.
        """
        if not ordered or ordered[0][0] != 0:
            raise ValueError("Layout must start with an entry at slot 0")

        _, current = ordered[0]
        interval = current.repetition_interval
        if not is_valid_interval(interval):
            interval = normalize_interval(interval)
        new_interval = next_interval(interval)

        completed = replace(
            current,
            repetition_interval=new_interval,
            perfect_completion_count=current.perfect_completion_count + 1,
            last_completed_at=self.clock(),
        )

        layout: dict[int, SlotEntry] = {}
        for n, entry in ordered[1:]:
            if n <= new_interval:
                layout[n - 1] = entry
            else:
                layout[n] = entry
        layout[new_interval] = completed
        return layout, new_interval
