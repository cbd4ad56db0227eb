"""
Unit tests for TubeScheduler, the presentation-facing surface.
"""

import pytest

from tubecycler.errors import EmptyLaneError
from tubecycler.scheduling.models import LaneId
from tubecycler.scheduling.scheduler import TubeScheduler
from tubecycler.sync.mutation_log import DeltaKind


def ids_in_order(scheduler, lane):
    return [entry.content_id for _, entry in scheduler.store.slots_in_order(lane)]


class TestRecordOutcome:
    def test_perfect_reorders_then_rotates(self, seeded_scheduler):
        item = seeded_scheduler.record_outcome(perfect=True)

        assert ids_in_order(seeded_scheduler, LaneId.ONE) == ["B", "C", "D", "A"]
        assert seeded_scheduler.active_lane == LaneId.TWO
        assert item.lane == LaneId.TWO
        assert item.content_id == "E"

    def test_not_perfect_rotates_without_reordering(self, seeded_scheduler):
        seeded_scheduler.record_outcome(perfect=False)

        assert ids_in_order(seeded_scheduler, LaneId.ONE) == ["A", "B", "C", "D"]
        assert seeded_scheduler.active_lane == LaneId.TWO

    def test_rotation_follows_attempt_count(self, seeded_scheduler):
        for attempt in range(1, 10):
            seeded_scheduler.record_outcome(perfect=attempt % 3 == 1)
            assert int(seeded_scheduler.active_lane) == attempt % 3 + 1
        assert seeded_scheduler.cycle_count == 3

    def test_slot_zero_matches_active_cache(self, seeded_scheduler):
        for attempt in range(12):
            seeded_scheduler.record_outcome(perfect=attempt % 3 == 0)
            for lane in LaneId:
                head = seeded_scheduler.store.get_slot(lane, 0)
                assert head is not None
                assert seeded_scheduler.store.active_content_id(lane) == head.content_id

    def test_timed_out_attempt_behaves_like_not_perfect(self, seeded_scheduler, clock):
        other = TubeScheduler(seeded_scheduler.state.copy(), clock=clock)

        seeded_scheduler.record_outcome(perfect=False)
        other.record_outcome(False)

        assert ids_in_order(seeded_scheduler, LaneId.ONE) == ids_in_order(other, LaneId.ONE)

    def test_empty_active_lane_halts_rotation(self, clock):
        scheduler = TubeScheduler(clock=clock)
        scheduler.seed_lane(LaneId.TWO, ["E"])
        revision = scheduler.state.revision

        with pytest.raises(EmptyLaneError):
            scheduler.record_outcome(perfect=True)

        assert scheduler.active_lane == LaneId.ONE
        assert scheduler.state.revision == revision

    def test_failed_reorder_does_not_rotate(self, clock):
        scheduler = TubeScheduler(clock=clock)
        scheduler.seed_lane(LaneId.ONE, ["A"])

        with pytest.raises(EmptyLaneError):
            scheduler.record_outcome(perfect=True)

        assert ids_in_order(scheduler, LaneId.ONE) == ["A"]
        assert scheduler.active_lane == LaneId.ONE

    def test_emits_outcome_then_rotate(self, seeded_scheduler):
        deltas = []
        seeded_scheduler.add_mutation_listener(deltas.append)

        seeded_scheduler.record_outcome(perfect=True)

        assert [d.kind for d in deltas] == [DeltaKind.OUTCOME, DeltaKind.ROTATE]
        assert deltas[0].details == {"content_id": "A", "perfect": True}
        assert deltas[1].lane == 2

    def test_active_slot_listener_notified(self, seeded_scheduler):
        seen = []
        seeded_scheduler.add_active_slot_listener(seen.append)

        seeded_scheduler.record_outcome(perfect=False)

        assert seen == [LaneId.TWO]


class TestSeedAndSelect:
    def test_seed_places_ids_in_order(self, seeded_scheduler):
        lane = seeded_scheduler.state.lanes[LaneId.ONE]

        assert ids_in_order(seeded_scheduler, LaneId.ONE) == ["A", "B", "C", "D"]
        assert lane.active_content_id == "A"
        assert all(entry.repetition_interval == 1 for entry in lane.slots.values())
        assert all(entry.distractor_tier == 1 for entry in lane.slots.values())

    def test_seed_replaces_previous_contents(self, seeded_scheduler):
        count = seeded_scheduler.seed_lane(LaneId.ONE, ["X", "Y"])

        assert count == 2
        assert ids_in_order(seeded_scheduler, LaneId.ONE) == ["X", "Y"]

    def test_seed_records_lane_source(self, seeded_scheduler):
        assert seeded_scheduler.store.lane_for_source("thread-T2-001") == LaneId.TWO

    def test_select_lane_jumps(self, seeded_scheduler):
        item = seeded_scheduler.select_lane(3)

        assert item.content_id == "G"
        assert seeded_scheduler.cycle_count == 0

    def test_current_item_none_for_empty_lane(self, clock):
        assert TubeScheduler(clock=clock).current_item() is None


class TestSnapshotRestore:
    def test_round_trip_preserves_layout(self, seeded_scheduler, clock):
        seeded_scheduler.record_outcome(perfect=True)
        seeded_scheduler.record_outcome(perfect=False)
        wire = seeded_scheduler.snapshot()

        restored = TubeScheduler(clock=clock)
        restored.restore(wire)

        assert restored.active_lane == seeded_scheduler.active_lane
        assert restored.cycle_count == seeded_scheduler.cycle_count
        for lane in LaneId:
            original = seeded_scheduler.store.slots_in_order(lane)
            copied = restored.store.slots_in_order(lane)
            assert [(n, e.content_id, e.repetition_interval, e.perfect_completion_count)
                    for n, e in original] == [
                (n, e.content_id, e.repetition_interval, e.perfect_completion_count)
                for n, e in copied
            ]
        assert restored.state.last_mutated_at == seeded_scheduler.state.last_mutated_at

    def test_restore_from_json_text(self, seeded_scheduler, clock):
        text = seeded_scheduler.snapshot().to_json()

        restored = TubeScheduler(clock=clock)
        restored.restore(text)

        assert ids_in_order(restored, LaneId.ONE) == ["A", "B", "C", "D"]
        assert restored.store.lane_for_source("thread-T1-001") == LaneId.ONE

    def test_restore_keeps_component_references(self, seeded_scheduler, clock):
        store = seeded_scheduler.store
        other = TubeScheduler(clock=clock)
        other.seed_lane(LaneId.ONE, ["Z"])

        seeded_scheduler.restore(other.snapshot())

        assert store.active_content_id(LaneId.ONE) == "Z"

    def test_snapshot_carries_no_bodies(self, seeded_scheduler):
        payload = seeded_scheduler.snapshot().to_payload()

        slot = payload["lanes"]["1"]["slots"][0]
        assert set(slot) == {
            "slot",
            "contentId",
            "repetitionInterval",
            "distractorTier",
            "perfectCompletionCount",
        }


class TestReset:
    def test_reset_empties_everything(self, seeded_scheduler):
        seeded_scheduler.record_outcome(perfect=True)

        seeded_scheduler.reset()

        assert all(seeded_scheduler.store.is_empty(lane) for lane in LaneId)
        assert seeded_scheduler.active_lane == LaneId.ONE
        assert seeded_scheduler.cycle_count == 0
        assert seeded_scheduler.state.generation == 1

    def test_reset_emits_delta(self, seeded_scheduler):
        deltas = []
        seeded_scheduler.add_mutation_listener(deltas.append)

        seeded_scheduler.reset()

        assert deltas[-1].kind == DeltaKind.RESET
        assert deltas[-1].generation == 1
