"""
Reconciliation / Sync Adapter.

Moves SchedulerState between the in-memory scheduler, the local cache and
the remote store.

Sync is last-write-wins at whole-snapshot granularity. At load time the
snapshot with the newer ``lastMutatedAt`` becomes authoritative and the
other is discarded; there is no field-level merge of divergent histories
from several devices. Saves push the entire current snapshot, which carries
every pending local mutation with it.

Remote writes are serialized: one save in flight at a time. A sync request
that arrives while a save is running is coalesced into one follow-up save,
so mutations made meanwhile are never dropped.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from loguru import logger

from tubecycler.errors import SyncConflictIgnored
from tubecycler.scheduling.models import Clock, utc_now

from .local_cache import LocalStateCache
from .mutation_log import DeltaKind, PendingMutationLog, StateDelta
from .protocols import RemoteStateStore
from .wire import SchedulerStateWire

if TYPE_CHECKING:
    from tubecycler.scheduling.scheduler import TubeScheduler


def _as_utc(stamp: datetime | None) -> datetime | None:
    if stamp is not None and stamp.tzinfo is None:
        return stamp.replace(tzinfo=timezone.utc)
    return stamp


class SyncStats:
    """Counters for sync activity."""

    def __init__(self) -> None:
        self.writes = 0
        self.skipped = 0
        self.failures = 0
        self.discarded = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "writes": self.writes,
            "skipped": self.skipped,
            "failures": self.failures,
            "discarded": self.discarded,
        }


class SyncAdapter:
    """Keeps a learner's scheduler state persisted locally and remotely."""

    def __init__(
        self,
        scheduler: TubeScheduler,
        remote: RemoteStateStore,
        learner_id: str,
        cache: LocalStateCache | None = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the adapter and subscribe to scheduler mutations.

        Args:
            scheduler: Scheduler whose state is synchronized
            remote: Remote state store
            learner_id: Key for both remote and local copies
            cache: Optional offline-first local cache
            clock: Time source for sync bookkeeping
        """
        self.scheduler = scheduler
        self.remote = remote
        self.learner_id = learner_id
        self.cache = cache
        self.clock = clock

        pending = cache.load_pending(learner_id) if cache is not None else []
        self.log = PendingMutationLog(pending)
        self.stats = SyncStats()
        self.last_sync_at: datetime | None = None

        self._last_synced_stamp: tuple | None = None
        self._inflight: asyncio.Future | None = None
        self._coalesced = False

        scheduler.add_mutation_listener(self.record)

    # =========================================================================
    # Local bookkeeping
    # =========================================================================

    @property
    def is_dirty(self) -> bool:
        return self.scheduler.state.mutation_stamp != self._last_synced_stamp

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    def record(self, delta: StateDelta) -> None:
        """Append a scheduler mutation to the pending log."""
        if delta.kind == DeltaKind.RESET:
            self.log.clear()
            self._last_synced_stamp = None
        self.log.append(delta)
        if self.cache is not None:
            self.cache.save_pending(self.learner_id, list(self.log))

    def save_local(self) -> SchedulerStateWire:
        """Write the current snapshot to the local cache only."""
        wire = self.scheduler.snapshot()
        if self.cache is not None:
            self.cache.save_snapshot(self.learner_id, wire)
        return wire

    # =========================================================================
    # Load
    # =========================================================================

    async def load(self) -> SchedulerStateWire | None:
        """
        Restore the newest available snapshot into the scheduler.

        Returns:
            The snapshot that was restored, or None when neither the remote
            store nor the local cache has one.
        """
        remote_wire: SchedulerStateWire | None = None
        try:
            remote_wire = await self.remote.load(self.learner_id)
        except Exception as e:
            logger.warning("Remote load failed for {}: {}; trying local cache", self.learner_id, e)

        local_wire = self.cache.load_snapshot(self.learner_id) if self.cache is not None else None

        if remote_wire is None and local_wire is None:
            logger.info("No stored state for learner {}", self.learner_id)
            return None

        winner, source = self._pick(remote_wire, local_wire)
        self.scheduler.restore(winner)

        if source == "remote":
            # Remote is authoritative; whatever was pending locally is superseded.
            self.log.clear()
            self._last_synced_stamp = self.scheduler.state.mutation_stamp
            self.last_sync_at = self.clock()
            if self.cache is not None:
                self.cache.save_pending(self.learner_id, [])
                self.cache.save_snapshot(self.learner_id, winner)

        logger.info("Loaded {} snapshot for learner {}", source, self.learner_id)
        return winner

    @staticmethod
    def _pick(
        remote_wire: SchedulerStateWire | None,
        local_wire: SchedulerStateWire | None,
    ) -> tuple[SchedulerStateWire, str]:
        if local_wire is None:
            return remote_wire, "remote"  # type: ignore[return-value]
        if remote_wire is None:
            return local_wire, "local"

        remote_at = _as_utc(remote_wire.last_mutated_at)
        local_at = _as_utc(local_wire.last_mutated_at)
        local_newer = local_at is not None and (remote_at is None or local_at > remote_at)

        if local_newer:
            logger.info("{}", SyncConflictIgnored(kept="local", discarded="remote"))
            return local_wire, "local"
        if local_at != remote_at:
            logger.info("{}", SyncConflictIgnored(kept="remote", discarded="local"))
        return remote_wire, "remote"

    # =========================================================================
    # Save
    # =========================================================================

    async def sync(self) -> bool:
        """
        Push the current snapshot if anything changed since the last success.

        Returns:
            True when the remote copy is current (including the no-op case),
            False when the write failed or was superseded by a reset.
        """
        if self._inflight is not None:
            self._coalesced = True
            logger.debug("Sync already in flight; coalescing")
            return await asyncio.shield(self._inflight)

        task = asyncio.ensure_future(self._drain())
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _drain(self) -> bool:
        while True:
            self._coalesced = False
            ok = await self._push_once()
            if not ok or not self._coalesced:
                return ok

    async def _push_once(self) -> bool:
        stamp = self.scheduler.state.mutation_stamp
        if stamp == self._last_synced_stamp:
            self.stats.skipped += 1
            logger.debug("No mutations since last sync; skipping remote write")
            return True

        wire = self.save_local()
        covered = self.log.last_seq
        self.stats.writes += 1

        try:
            ok = bool(await self.remote.save(self.learner_id, wire))
        except Exception as e:
            logger.warning("Remote save failed for {}: {}", self.learner_id, e)
            ok = False

        generation = stamp[0]
        if generation != self.scheduler.state.generation:
            self.stats.discarded += 1
            logger.warning(
                "Save issued against generation {} finished after reset; result discarded", generation
            )
            return False

        if not ok:
            self.stats.failures += 1
            logger.warning("Remote save not confirmed; {} mutations remain pending", len(self.log))
            return False

        self._last_synced_stamp = stamp
        confirmed = self.log.confirm(covered)
        self.last_sync_at = self.clock()
        if self.cache is not None:
            self.cache.save_pending(self.learner_id, list(self.log))
        logger.info("Synced learner {} ({} mutations confirmed)", self.learner_id, confirmed)
        return True
