"""
SQLite Local State Cache.

Offline-first persistence for one device:
- the latest scheduling snapshot per learner
- the pending mutation log per learner (deltas not yet confirmed remotely)

Database location: ~/.tubecycler/state.db
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from .mutation_log import StateDelta
from .wire import SchedulerStateWire, parse_wire


class LocalStateCache:
    """
    SQLite-backed local copy of the scheduler state.

    Handles:
    - Snapshot per learner (canonical wire JSON)
    - Pending mutation log per learner
    """

    DEFAULT_DB_PATH = Path.home() / ".tubecycler" / "state.db"

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the local cache.

        Args:
            db_path: Custom database path (defaults to ~/.tubecycler/state.db)
        """
        self.db_path = Path(db_path) if db_path is not None else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info("LocalStateCache initialized at {}", self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                learner_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                last_mutated_at TEXT,
                saved_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS pending_mutations (
                learner_id TEXT NOT NULL,
                seq INTEGER NOT NULL,
                payload TEXT NOT NULL,
                PRIMARY KEY (learner_id, seq)
            )
        """)

        self.conn.commit()

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save_snapshot(self, learner_id: str, wire: SchedulerStateWire) -> None:
        stamp = wire.last_mutated_at.isoformat() if wire.last_mutated_at else None
        self.conn.execute(
            """
            INSERT INTO snapshots (learner_id, payload, last_mutated_at, saved_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(learner_id) DO UPDATE SET
                payload = excluded.payload,
                last_mutated_at = excluded.last_mutated_at,
                saved_at = excluded.saved_at
            """,
            (learner_id, wire.to_json(), stamp, datetime.now(timezone.utc).isoformat()),
        )
        self.conn.commit()

    def load_snapshot(self, learner_id: str) -> SchedulerStateWire | None:
        row = self.conn.execute(
            "SELECT payload FROM snapshots WHERE learner_id = ?", (learner_id,)
        ).fetchone()
        if row is None:
            return None
        return parse_wire(row["payload"])

    # =========================================================================
    # Pending mutations
    # =========================================================================

    def save_pending(self, learner_id: str, deltas: list[StateDelta]) -> None:
        """Replace the stored pending log with the given deltas."""
        with self.conn:
            self.conn.execute("DELETE FROM pending_mutations WHERE learner_id = ?", (learner_id,))
            self.conn.executemany(
                "INSERT INTO pending_mutations (learner_id, seq, payload) VALUES (?, ?, ?)",
                [(learner_id, delta.seq, json.dumps(delta.to_dict())) for delta in deltas],
            )

    def load_pending(self, learner_id: str) -> list[StateDelta]:
        rows = self.conn.execute(
            "SELECT payload FROM pending_mutations WHERE learner_id = ? ORDER BY seq",
            (learner_id,),
        ).fetchall()
        return [StateDelta.from_dict(json.loads(row["payload"])) for row in rows]

    def clear(self, learner_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM snapshots WHERE learner_id = ?", (learner_id,))
            self.conn.execute("DELETE FROM pending_mutations WHERE learner_id = ?", (learner_id,))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
