"""
TubeScheduler: the surface the presentation layer talks to.

Wires one explicitly owned SchedulerState through the Position Store,
Reordering Engine and Lane Rotator. An attempt flows as:

    record_outcome(perfect)
        -> ReorderingEngine.apply(active lane)
        -> LaneRotator.advance()      (notifies the content buffer)
        -> mutation listeners         (the sync adapter logs the delta)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from loguru import logger

from tubecycler.errors import EmptyLaneError
from tubecycler.sync.mutation_log import DeltaKind, StateDelta
from tubecycler.sync.wire import SchedulerStateWire, parse_wire, state_from_wire, wire_from_state

from .models import Clock, CurrentItem, LaneId, SchedulerState, SlotEntry, utc_now
from .position_store import PositionStore
from .reordering import ReorderingEngine
from .rotator import ActiveSlotListener, LaneRotator

MutationListener = Callable[[StateDelta], None]


class TubeScheduler:
    """Three-lane spaced-repetition scheduler for one learner session."""

    def __init__(self, state: SchedulerState | None = None, clock: Clock = utc_now):
        self.clock = clock
        self._mutation_listeners: list[MutationListener] = []
        self.state = state or SchedulerState()
        self.store = PositionStore(self.state, clock=clock)
        self.engine = ReorderingEngine(self.store, clock=clock)
        self.rotator = LaneRotator(self.state, clock=clock)

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_mutation_listener(self, listener: MutationListener) -> None:
        self._mutation_listeners.append(listener)

    def add_active_slot_listener(self, listener: ActiveSlotListener) -> None:
        self.rotator.add_listener(listener)

    def _emit(self, kind: DeltaKind, lane: LaneId | None = None, **details: Any) -> None:
        delta = StateDelta(
            kind=kind,
            lane=int(lane) if lane is not None else None,
            at=self.state.last_mutated_at,
            generation=self.state.generation,
            details=details,
        )
        for listener in list(self._mutation_listeners):
            listener(delta)

    # =========================================================================
    # Presentation surface
    # =========================================================================

    @property
    def active_lane(self) -> LaneId:
        return self.state.active_lane

    @property
    def cycle_count(self) -> int:
        return self.state.cycle_count

    def current_item(self) -> CurrentItem | None:
        entry = self.rotator.get_current_item()
        if entry is None:
            return None
        return CurrentItem(
            lane=self.state.active_lane,
            content_id=entry.content_id,
            repetition_interval=entry.repetition_interval,
            distractor_tier=entry.distractor_tier,
        )

    def record_outcome(self, perfect: bool) -> CurrentItem | None:
        """
        Apply an attempt outcome to the active lane, then rotate.

        A timed-out attempt is recorded exactly like a wrong answer
        (perfect=False).

        Raises:
            EmptyLaneError: the active lane cannot supply an item. Nothing is
                mutated and the rotation step does not happen.
        """
        lane = self.state.active_lane
        before = self.store.get_slot(lane, 0)
        try:
            self.engine.apply(lane, perfect)
        except EmptyLaneError:
            logger.error("Lane {} needs re-seeding; rotation halted", int(lane))
            raise

        self._emit(
            DeltaKind.OUTCOME,
            lane,
            content_id=before.content_id if before else None,
            perfect=bool(perfect),
        )
        following = self.rotator.advance()
        self._emit(DeltaKind.ROTATE, following, cycle_count=self.state.cycle_count)
        return self.current_item()

    def select_lane(self, lane: object) -> CurrentItem | None:
        lane_id = self.rotator.select(lane)
        self._emit(DeltaKind.SELECT, lane_id)
        return self.current_item()

    def seed_lane(
        self,
        lane: object,
        content_ids: Iterable[str],
        lane_source_id: str | None = None,
    ) -> int:
        """Replace a lane's contents with ids at slots 0..n-1 and default metadata."""
        lane_id = LaneId.parse(lane)
        layout = {n: SlotEntry(content_id=content_id) for n, content_id in enumerate(content_ids)}
        self.store.replace_lane(lane_id, layout)
        if lane_source_id is not None:
            self.store.set_lane_source(lane_id, lane_source_id)
        logger.info("Seeded lane {} with {} items", int(lane_id), len(layout))
        self._emit(DeltaKind.SEED, lane_id, count=len(layout))
        if lane_id == self.state.active_lane:
            self.rotator.notify_active_slot_changed()
        return len(layout)

    # =========================================================================
    # Persistence surface
    # =========================================================================

    def snapshot(self) -> SchedulerStateWire:
        return wire_from_state(self.state)

    def restore(self, wire: SchedulerStateWire | dict | str | bytes) -> None:
        """Replace the in-memory state with a snapshot (any accepted shape)."""
        parsed = parse_wire(wire)
        restored = state_from_wire(parsed)
        # Components hold this same state object; adopt the snapshot in place.
        self.state.lanes = restored.lanes
        self.state.active_lane = restored.active_lane
        self.state.cycle_count = restored.cycle_count
        self.state.last_mutated_at = restored.last_mutated_at
        self.state.revision += 1
        self.state.generation = max(restored.generation, self.state.generation)
        logger.info(
            "Restored state: lane {} active, cycle {}", int(restored.active_lane), restored.cycle_count
        )
        self._emit(DeltaKind.RESTORE, restored.active_lane)
        self.rotator.notify_active_slot_changed()

    def reset(self) -> None:
        """Full-state reset: every lane emptied, rotation back to lane 1."""
        self.store.clear()
        self.rotator.reset()
        self.state.generation += 1
        logger.info("Scheduler reset to generation {}", self.state.generation)
        self._emit(DeltaKind.RESET)
        self.rotator.notify_active_slot_changed()
