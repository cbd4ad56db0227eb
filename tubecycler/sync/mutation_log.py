"""Append-only log of state deltas not yet confirmed by the remote store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DeltaKind(str, Enum):
    """What kind of local mutation produced a delta."""

    OUTCOME = "outcome"
    ROTATE = "rotate"
    SELECT = "select"
    SEED = "seed"
    RESTORE = "restore"
    RESET = "reset"


@dataclass
class StateDelta:
    """A single local mutation."""

    kind: DeltaKind
    lane: int | None
    at: datetime
    generation: int
    details: dict[str, Any] = field(default_factory=dict)
    seq: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["at"] = self.at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StateDelta:
        return cls(
            kind=DeltaKind(data["kind"]),
            lane=data.get("lane"),
            at=datetime.fromisoformat(data["at"]),
            generation=int(data.get("generation", 0)),
            details=dict(data.get("details") or {}),
            seq=int(data.get("seq", 0)),
        )


class PendingMutationLog:
    """
    Ordered deltas awaiting a confirmed remote save.

    Entries are only removed by confirm(), which takes the highest sequence
    number that a successful save covered. Anything appended while that save
    was in flight stays pending for the next one.
    """

    def __init__(self, entries: list[StateDelta] | None = None):
        self._entries: list[StateDelta] = []
        self._next_seq = 1
        for entry in entries or []:
            self._entries.append(entry)
            self._next_seq = max(self._next_seq, entry.seq + 1)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    @property
    def last_seq(self) -> int:
        return self._entries[-1].seq if self._entries else 0

    def append(self, delta: StateDelta) -> StateDelta:
        delta.seq = self._next_seq
        self._next_seq += 1
        self._entries.append(delta)
        return delta

    def confirm(self, upto_seq: int) -> int:
        """Drop entries with seq <= upto_seq; returns how many were dropped."""
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.seq > upto_seq]
        return before - len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
