"""
Content Buffer Manager.

Keeps content bodies materialized ahead of the learner, in phases:

- Phase 0: the active item (slot 0 of the active lane). Must finish before a
  question can be shown.
- Phase 1: the first N1 slots of every lane, started right after Phase 0.
- Phase 2: the first N2 slots of every lane, on request or once the learner
  has been idle for the quiet period with Phase 1 complete.

Every phase issues one batched fetch for the ids that are not yet
materialized. Only one Phase 1 and one Phase 2 fetch may be in flight per
lane; re-entrant calls skip busy lanes instead of queueing. Overlapping
Phase 0 requests for the same item share one fetch. Bodies from a
partially successful batch are kept; the phase flag stays false so the
phase can be retried.

The buffer only reads the Position Store. Bodies are attached by content id
and never removed except on reset.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from tubecycler.config import Settings, get_settings
from tubecycler.errors import FetchPartialFailure
from tubecycler.scheduling.models import LaneId
from tubecycler.scheduling.position_store import PositionStore
from tubecycler.sync.mutation_log import DeltaKind, StateDelta
from tubecycler.sync.protocols import ContentBody, ContentSource

if TYPE_CHECKING:
    from tubecycler.scheduling.scheduler import TubeScheduler

# =============================================================================
# Configuration and status
# =============================================================================


@dataclass
class BufferConfig:
    """Configuration for phased prefetching."""

    phase1_size: int = 10
    phase2_size: int = 50
    idle_seconds: float = 5.0
    idle_poll_seconds: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> BufferConfig:
        settings = settings or get_settings()
        return cls(
            phase1_size=settings.phase1_size,
            phase2_size=settings.phase2_size,
            idle_seconds=settings.idle_seconds,
            idle_poll_seconds=settings.idle_poll_seconds,
        )


@dataclass
class LaneBufferStatus:
    """Phase flags for one lane."""

    phase1_loaded: bool = False
    phase2_loaded: bool = False
    phase1_in_flight: bool = False
    phase2_in_flight: bool = False


@dataclass
class BufferStats:
    batches_requested: int = 0
    bodies_received: int = 0
    partial_failures: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# Buffer Manager
# =============================================================================


class ContentBufferManager:
    """Phased prefetch controller over a ContentSource."""

    def __init__(
        self,
        store: PositionStore,
        source: ContentSource,
        config: BufferConfig | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.source = source
        self.config = config or BufferConfig()
        self._monotonic = monotonic

        self._bodies: dict[str, ContentBody] = {}
        self._status: dict[LaneId, LaneBufferStatus] = {lane: LaneBufferStatus() for lane in LaneId}
        self._generation = 0
        self._last_interaction = monotonic()
        self._tasks: set[asyncio.Task] = set()
        self._active_fetches: dict[str, asyncio.Future] = {}
        self.stats = BufferStats()

    # =========================================================================
    # Inspection
    # =========================================================================

    def status(self, lane: object) -> LaneBufferStatus:
        return self._status[LaneId.parse(lane)]

    def get_body(self, content_id: str) -> ContentBody | None:
        return self._bodies.get(content_id)

    def is_materialized(self, content_id: str) -> bool:
        return content_id in self._bodies

    @property
    def materialized_count(self) -> int:
        return len(self._bodies)

    def _range_ids(self, lane: LaneId, size: int) -> list[str]:
        return [entry.content_id for _, entry in self.store.slots_in_order(lane)[:size]]

    def _missing(self, content_ids: Iterable[str]) -> list[str]:
        missing: list[str] = []
        for content_id in content_ids:
            if content_id not in self._bodies and content_id not in missing:
                missing.append(content_id)
        return missing

    # =========================================================================
    # Fetching
    # =========================================================================

    async def _fetch(self, content_ids: list[str], phase: int) -> bool:
        """
        One batched round-trip. Returns True when every requested body arrived.

        Results are dropped if a reset happened while the request was out.
        """
        generation = self._generation
        self.stats.batches_requested += 1
        logger.debug("Phase {} fetching {} bodies", phase, len(content_ids))

        try:
            received = await self.source.fetch_batch(content_ids)
        except Exception as e:
            self.stats.errors.append(str(e))
            logger.warning("Phase {} batch of {} failed: {}", phase, len(content_ids), e)
            return False

        if generation != self._generation:
            logger.warning("Phase {} batch finished after reset; discarding result", phase)
            return False

        requested = set(content_ids)
        for content_id, body in (received or {}).items():
            if content_id in requested:
                self._bodies.setdefault(content_id, body)
                self.stats.bodies_received += 1

        missing = self._missing(content_ids)
        if missing:
            self.stats.partial_failures += 1
            logger.warning("{}", FetchPartialFailure(missing, phase=phase))
            return False
        return True

    async def load_active(self) -> ContentBody | None:
        """
        Phase 0: materialize the active item.

        Returns:
            The body, or None when the active lane is empty.

        Raises:
            FetchPartialFailure: the body could not be fetched.
        """
        lane = self.store.state.active_lane
        entry = self.store.get_slot(lane, 0)
        if entry is None:
            return None

        body = self._bodies.get(entry.content_id)
        if body is not None:
            return body

        content_id = entry.content_id
        pending = self._active_fetches.get(content_id)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch([content_id], phase=0))
            self._active_fetches[content_id] = pending
            pending.add_done_callback(lambda done: self._forget_active(content_id, done))
        else:
            logger.debug("Phase 0 fetch for {} already in flight; joining it", content_id)

        if not await asyncio.shield(pending) or content_id not in self._bodies:
            raise FetchPartialFailure([content_id], phase=0)
        logger.info("Active item {} materialized for lane {}", content_id, int(lane))
        return self._bodies[content_id]

    def _forget_active(self, content_id: str, done: asyncio.Future) -> None:
        if self._active_fetches.get(content_id) is done:
            del self._active_fetches[content_id]

    async def _load_phase(self, phase: int, lanes: Iterable[object] | None) -> bool:
        size = self.config.phase1_size if phase == 1 else self.config.phase2_size
        loaded_attr = f"phase{phase}_loaded"
        flight_attr = f"phase{phase}_in_flight"

        targets: list[LaneId] = []
        for lane in lanes if lanes is not None else LaneId:
            lane_id = LaneId.parse(lane)
            status = self._status[lane_id]
            if getattr(status, loaded_attr) or getattr(status, flight_attr):
                continue
            targets.append(lane_id)

        if not targets:
            return all(getattr(self._status[lane], loaded_attr) for lane in LaneId)

        ranges = {lane: self._range_ids(lane, size) for lane in targets}
        wanted = self._missing(cid for ids in ranges.values() for cid in ids)

        if wanted:
            for lane in targets:
                setattr(self._status[lane], flight_attr, True)
            generation = self._generation
            try:
                await self._fetch(wanted, phase=phase)
            finally:
                if generation == self._generation:
                    for lane in targets:
                        setattr(self._status[lane], flight_attr, False)

            if generation != self._generation:
                return False

        complete = True
        for lane in targets:
            lane_done = not self._missing(ranges[lane])
            setattr(self._status[lane], loaded_attr, lane_done)
            complete = complete and lane_done

        if complete:
            logger.info(
                "Phase {} loaded for lanes {} ({} bodies cached)",
                phase,
                [int(lane) for lane in targets],
                len(self._bodies),
            )
        return complete

    async def load_phase1(self, lanes: Iterable[object] | None = None) -> bool:
        """Materialize the first N1 slots of each lane. No-op for loaded lanes."""
        return await self._load_phase(1, lanes)

    async def load_phase2(self, lanes: Iterable[object] | None = None) -> bool:
        """
        Materialize the first N2 slots of each lane.

        Lanes whose Phase 1 is not complete are skipped.
        """
        candidates = [lane for lane in LaneId if self._status[lane].phase1_loaded]
        if lanes is not None:
            requested = {LaneId.parse(lane) for lane in lanes}
            candidates = [lane for lane in candidates if lane in requested]
        if not candidates:
            logger.debug("Phase 2 requested before Phase 1 completed; skipping")
            return False
        return await self._load_phase(2, candidates)

    async def prepare(self) -> ContentBody | None:
        """Phase 0 for the active item, then Phase 1 once it succeeds."""
        body = await self.load_active()
        await self.load_phase1()
        return body

    # =========================================================================
    # Rotation and idle signals
    # =========================================================================

    def record_interaction(self) -> None:
        self._last_interaction = self._monotonic()

    def idle_for(self) -> float:
        return self._monotonic() - self._last_interaction

    def should_start_phase2(self) -> bool:
        """Quiet period elapsed, Phase 1 done, Phase 2 neither running nor done somewhere."""
        if self.idle_for() < self.config.idle_seconds:
            return False
        for status in self._status.values():
            if status.phase1_loaded and not status.phase2_loaded and not status.phase2_in_flight:
                return True
        return False

    async def watch_idle(self, stop: asyncio.Event | None = None) -> None:
        """Poll for idleness and start Phase 2 when appropriate. Runs until stopped."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            if self.should_start_phase2():
                logger.info("Learner idle for {:.1f}s; starting Phase 2", self.idle_for())
                await self.load_phase2()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.config.idle_poll_seconds)
            except asyncio.TimeoutError:
                continue

    def refresh_flags(self) -> None:
        """Clear phase flags for lanes whose ranges gained unmaterialized ids."""
        for lane, status in self._status.items():
            if status.phase1_loaded and self._missing(self._range_ids(lane, self.config.phase1_size)):
                status.phase1_loaded = False
            if status.phase2_loaded and self._missing(self._range_ids(lane, self.config.phase2_size)):
                status.phase2_loaded = False

    def notify_active_slot_changed(self, lane: object | None = None) -> None:
        """
        Called by the rotator after the active lane or slot changes.

        Counts as learner interaction. Inside a running event loop the new
        active item (and Phase 1 top-up) is scheduled in the background.
        """
        self.record_interaction()
        self.refresh_flags()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._prepare_quietly())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _prepare_quietly(self) -> None:
        try:
            await self.prepare()
        except FetchPartialFailure as e:
            logger.warning("Background prepare failed: {}", e)

    async def drain(self) -> None:
        """Wait for background work started by notify_active_slot_changed()."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def attach(self, scheduler: TubeScheduler) -> None:
        """Subscribe to rotation and reset signals from a scheduler."""
        scheduler.add_active_slot_listener(self.notify_active_slot_changed)
        scheduler.add_mutation_listener(self._on_mutation)

    def _on_mutation(self, delta: StateDelta) -> None:
        if delta.kind == DeltaKind.RESET:
            self.reset()

    def reset(self) -> None:
        """Forget all bodies and flags; in-flight results will be discarded."""
        self._generation += 1
        self._bodies.clear()
        self._active_fetches.clear()
        self._status = {lane: LaneBufferStatus() for lane in LaneId}
        logger.info("Content buffer reset (generation {})", self._generation)
