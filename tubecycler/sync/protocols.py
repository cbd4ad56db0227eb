"""
Collaborators the scheduling core consumes but does not implement.

Transport concerns (timeouts, auth, retries) belong to the implementations.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .wire import SchedulerStateWire

ContentBody = Mapping[str, Any]


@runtime_checkable
class ContentSource(Protocol):
    """Materializes content bodies for content ids."""

    async def fetch_batch(self, content_ids: Sequence[str]) -> Mapping[str, ContentBody]:
        """
        Fetch bodies for a batch of ids in one round-trip.

        May return a subset of the requested ids on partial failure.
        """
        ...


@runtime_checkable
class RemoteStateStore(Protocol):
    """Holds the authoritative remote copy of a learner's scheduling state."""

    async def load(self, learner_id: str) -> SchedulerStateWire | None:
        ...

    async def save(self, learner_id: str, wire: SchedulerStateWire) -> bool:
        ...
