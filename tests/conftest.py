"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tubecycler.scheduling.models import LaneId
from tubecycler.scheduling.scheduler import TubeScheduler


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Deterministic clock that moves one second per read."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seeded_scheduler(clock):
    """Scheduler with four items in lane 1 and two in lanes 2 and 3."""
    scheduler = TubeScheduler(clock=clock)
    scheduler.seed_lane(LaneId.ONE, ["A", "B", "C", "D"], lane_source_id="thread-T1-001")
    scheduler.seed_lane(LaneId.TWO, ["E", "F"], lane_source_id="thread-T2-001")
    scheduler.seed_lane(LaneId.THREE, ["G", "H"], lane_source_id="thread-T3-001")
    return scheduler
