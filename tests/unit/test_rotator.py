"""
Unit tests for the Lane Rotator.
"""

import pytest

from tubecycler.errors import UnknownLaneError
from tubecycler.scheduling.models import LaneId, SchedulerState, SlotEntry
from tubecycler.scheduling.rotator import LaneRotator


@pytest.fixture
def rotator(clock):
    return LaneRotator(SchedulerState(), clock=clock)


class TestLaneId:
    def test_following_wraps(self):
        assert LaneId.ONE.following() == LaneId.TWO
        assert LaneId.TWO.following() == LaneId.THREE
        assert LaneId.THREE.following() == LaneId.ONE

    @pytest.mark.parametrize("value", [1, "1", LaneId.ONE])
    def test_parse_accepts_numeric_forms(self, value):
        assert LaneId.parse(value) == LaneId.ONE

    @pytest.mark.parametrize("value", [0, 4, "four", None])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(UnknownLaneError):
            LaneId.parse(value)


class TestAdvance:
    def test_round_robin(self, rotator):
        visited = [rotator.advance() for _ in range(6)]
        assert visited == [2, 3, 1, 2, 3, 1]

    def test_cycle_counts_wraps_to_lane_one(self, rotator):
        for _ in range(7):
            rotator.advance()
        assert rotator.cycle_count == 2
        assert rotator.active_lane == LaneId.TWO

    def test_advance_touches_state(self, rotator):
        revision = rotator.state.revision
        rotator.advance()
        assert rotator.state.revision == revision + 1

    def test_listeners_receive_new_lane(self, rotator):
        seen = []
        rotator.add_listener(seen.append)

        rotator.advance()
        rotator.advance()

        assert seen == [LaneId.TWO, LaneId.THREE]

    def test_removed_listener_is_silent(self, rotator):
        seen = []
        rotator.add_listener(seen.append)
        rotator.remove_listener(seen.append)

        rotator.advance()

        assert seen == []


class TestSelect:
    def test_select_does_not_count_cycle(self, rotator):
        rotator.select(3)
        rotator.select(1)
        assert rotator.active_lane == LaneId.ONE
        assert rotator.cycle_count == 0

    def test_select_same_lane_keeps_revision(self, rotator):
        revision = rotator.state.revision
        rotator.select(LaneId.ONE)
        assert rotator.state.revision == revision

    def test_select_unknown_lane(self, rotator):
        with pytest.raises(UnknownLaneError):
            rotator.select(9)


class TestCurrentItem:
    def test_none_when_active_lane_empty(self, rotator):
        assert rotator.get_current_item() is None

    def test_reads_slot_zero_of_active_lane(self, rotator):
        rotator.state.lanes[LaneId.TWO].slots[0] = SlotEntry("E")
        rotator.advance()
        assert rotator.get_current_item().content_id == "E"

    def test_reset_returns_to_lane_one(self, rotator):
        rotator.advance()
        rotator.advance()
        rotator.advance()
        rotator.reset()
        assert rotator.active_lane == LaneId.ONE
        assert rotator.cycle_count == 0
