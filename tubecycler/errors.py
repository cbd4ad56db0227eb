"""
Error kinds raised or logged by the scheduling core.

Structural problems (an empty lane where an item is required) are raised.
Data-quality problems from outside the core (bad intervals, partial batches,
a discarded snapshot) are normalized and logged instead.
"""

from __future__ import annotations


class TubeCyclerError(Exception):
    """Base class for scheduling core errors."""


class EmptyLaneError(TubeCyclerError):
    """Slot 0 of a lane is vacant when an active item is required."""

    def __init__(self, lane: int, message: str | None = None):
        self.lane = int(lane)
        super().__init__(message or f"Lane {self.lane} has no item at slot 0")


class UnknownLaneError(TubeCyclerError, ValueError):
    """A lane identifier outside the fixed lane set."""

    def __init__(self, lane: object):
        self.lane = lane
        super().__init__(f"Unknown lane {lane!r}; expected one of 1, 2, 3")


class FetchPartialFailure(TubeCyclerError):
    """A content batch came back without some of the requested bodies."""

    def __init__(self, missing: list[str], phase: int | None = None):
        self.missing = list(missing)
        self.phase = phase
        where = f" in phase {phase}" if phase is not None else ""
        super().__init__(f"{len(self.missing)} content bodies missing{where}: {self.missing[:10]}")


class CorruptIntervalWarning(UserWarning):
    """A repetition interval outside the fixed vocabulary was normalized."""

    def __init__(self, value: object, normalized: int):
        self.value = value
        self.normalized = normalized
        super().__init__(f"Repetition interval {value!r} normalized to {normalized}")


class SyncConflictIgnored(UserWarning):
    """Last-write-wins discarded one side's snapshot at load time."""

    def __init__(self, kept: str, discarded: str):
        self.kept = kept
        self.discarded = discarded
        super().__init__(f"Kept {kept} snapshot, discarded {discarded} snapshot")
