"""
Persistence and reconciliation.

Components:
- wire: pydantic wire models and older-shape normalization
- PendingMutationLog: deltas awaiting remote confirmation
- LocalStateCache: SQLite offline copy
- SyncAdapter: load (last-write-wins) and debounced save
- HttpContentSource / HttpRemoteStateStore: httpx transports
"""

from .http_clients import HttpContentSource, HttpRemoteStateStore
from .local_cache import LocalStateCache
from .mutation_log import DeltaKind, PendingMutationLog, StateDelta
from .protocols import ContentBody, ContentSource, RemoteStateStore
from .reconciliation import SyncAdapter
from .wire import SchedulerStateWire, parse_wire, state_from_wire, wire_from_state

__all__ = [
    # Wire
    "SchedulerStateWire",
    "parse_wire",
    "state_from_wire",
    "wire_from_state",
    # Mutation log
    "DeltaKind",
    "PendingMutationLog",
    "StateDelta",
    # Collaborators
    "ContentBody",
    "ContentSource",
    "RemoteStateStore",
    "HttpContentSource",
    "HttpRemoteStateStore",
    # Persistence
    "LocalStateCache",
    "SyncAdapter",
]
