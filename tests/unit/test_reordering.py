"""
Unit tests for the Reordering Engine (advance-and-shift).
"""

import pytest

from tubecycler.errors import EmptyLaneError
from tubecycler.scheduling.models import LaneId, SchedulerState, SlotEntry
from tubecycler.scheduling.position_store import PositionStore
from tubecycler.scheduling.reordering import ReorderingEngine


def layout_of(store, lane=LaneId.ONE):
    return {n: entry.content_id for n, entry in store.slots_in_order(lane)}


@pytest.fixture
def store(clock):
    return PositionStore(SchedulerState(), clock=clock)


@pytest.fixture
def engine(store, clock):
    return ReorderingEngine(store, clock=clock)


def fill(store, layout, lane=LaneId.ONE):
    """Replace a lane from {slot: id or SlotEntry}."""
    entries = {}
    for n, value in layout.items():
        entries[n] = SlotEntry(value) if isinstance(value, str) else value
    store.replace_lane(lane, entries)


class TestPerfectCompletion:
    def test_shifts_intervening_slots_and_places_item(self, store, engine):
        fill(store, {0: "A", 1: "B", 2: "C", 3: "D"})

        head = engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store) == {0: "B", 1: "C", 2: "D", 3: "A"}
        assert head.content_id == "B"
        assert store.active_content_id(LaneId.ONE) == "B"

    def test_completed_entry_is_updated(self, store, engine, clock):
        fill(store, {0: "A", 1: "B", 2: "C", 3: "D"})

        engine.apply(LaneId.ONE, perfect=True)
        moved = store.get_slot(LaneId.ONE, 3)

        assert moved.repetition_interval == 3
        assert moved.perfect_completion_count == 1
        assert moved.last_completed_at is not None
        assert moved.last_completed_at <= clock.now

    def test_slots_beyond_new_interval_do_not_move(self, store, engine):
        fill(store, {0: SlotEntry("A", repetition_interval=3), 1: "B", 4: "C", 6: "D"})

        engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store) == {0: "B", 3: "C", 5: "A", 6: "D"}
        assert store.get_slot(LaneId.ONE, 5).repetition_interval == 5

    def test_sparse_slots_keep_their_gaps(self, store, engine):
        fill(store, {0: "A", 1: "B", 3: "C", 9: "D"})

        engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store) == {0: "B", 2: "C", 3: "A", 9: "D"}

    def test_ceiling_interval_stays_at_one_hundred(self, store, engine):
        fill(store, {0: SlotEntry("A", repetition_interval=100, perfect_completion_count=7), 1: "B"})

        engine.apply(LaneId.ONE, perfect=True)
        moved = store.get_slot(LaneId.ONE, 100)

        assert layout_of(store) == {0: "B", 100: "A"}
        assert moved.repetition_interval == 100
        assert moved.perfect_completion_count == 8

    def test_corrupt_interval_is_normalized_before_advancing(self, store, engine):
        fill(store, {0: SlotEntry("A", repetition_interval=7), 1: "B"})

        engine.apply(LaneId.ONE, perfect=True)

        assert store.get_slot(LaneId.ONE, 10).content_id == "A"
        assert store.get_slot(LaneId.ONE, 10).repetition_interval == 10

    def test_other_lanes_untouched(self, store, engine):
        fill(store, {0: "A", 1: "B"})
        fill(store, {0: "X", 1: "Y"}, lane=LaneId.TWO)

        engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store, LaneId.TWO) == {0: "X", 1: "Y"}

    def test_content_ids_are_preserved(self, store, engine):
        fill(store, {0: "A", 1: "B", 2: "C", 3: "D", 4: "E"})
        before = sorted(layout_of(store).values())

        for _ in range(6):
            engine.apply(LaneId.ONE, perfect=True)

        after = list(layout_of(store).values())
        assert sorted(after) == before
        assert len(set(after)) == len(after)
        assert layout_of(store) == {0: "C", 1: "D", 2: "E", 4: "A", 5: "B"}


class TestNotPerfect:
    def test_layout_unchanged(self, store, engine):
        fill(store, {0: SlotEntry("A", repetition_interval=5), 1: "B", 2: "C"})
        revision = store.state.revision

        head = engine.apply(LaneId.ONE, perfect=False)

        assert head.content_id == "A"
        assert layout_of(store) == {0: "A", 1: "B", 2: "C"}
        assert store.get_slot(LaneId.ONE, 0).repetition_interval == 5
        assert store.state.revision == revision

    def test_repeated_not_perfect_is_idempotent(self, store, engine):
        fill(store, {0: "A", 1: "B"})

        for _ in range(3):
            engine.apply(LaneId.ONE, perfect=False)

        assert layout_of(store) == {0: "A", 1: "B"}


class TestEmptyLane:
    def test_empty_lane_raises(self, engine):
        with pytest.raises(EmptyLaneError) as exc_info:
            engine.apply(LaneId.TWO, perfect=True)
        assert exc_info.value.lane == 2

    def test_single_item_lane_rolls_back(self, store, engine):
        fill(store, {0: "A"})
        revision = store.state.revision

        with pytest.raises(EmptyLaneError):
            engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store) == {0: "A"}
        assert store.get_slot(LaneId.ONE, 0).repetition_interval == 1
        assert store.get_slot(LaneId.ONE, 0).perfect_completion_count == 0
        assert store.state.revision == revision

    def test_gap_at_slot_one_rolls_back(self, store, engine):
        fill(store, {0: "A", 2: "B"})

        with pytest.raises(EmptyLaneError):
            engine.apply(LaneId.ONE, perfect=True)

        assert layout_of(store) == {0: "A", 2: "B"}


class TestAdvanceLayout:
    def test_does_not_mutate_input(self, engine):
        entry = SlotEntry("A")
        ordered = [(0, entry), (1, SlotEntry("B"))]

        layout, new_interval = engine.advance_layout(ordered)

        assert new_interval == 3
        assert entry.repetition_interval == 1
        assert layout[3] is not entry

    def test_requires_slot_zero(self, engine):
        with pytest.raises(ValueError):
            engine.advance_layout([(1, SlotEntry("B"))])
