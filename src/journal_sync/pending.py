"""Durable FIFO log of mutations the server has not confirmed yet.

Stored in the ``pending_sync`` table of the offline database, independent of
the entry cache. The autoincrement ``seq`` column fixes enqueue order.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Optional, Union

from .cache import MEMORY, connect
from .errors import StorageFault, storage_operation
from .models import MutationAction, PendingMutation, epoch_ms, generate_mutation_id


class MutationQueue:
    """Pending mutation queue."""

    def __init__(self, db_path: Union[Path, str] = MEMORY):
        """Initialize the queue.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        with storage_operation("open"):
            self._init_schema(self._get_connection())

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = connect(self.db_path)
        return self._connection

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS pending_sync (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,        -- <action>-<entry id>-<ms>-<suffix>
                action TEXT NOT NULL,           -- create, update, delete
                entry_id TEXT NOT NULL,
                data TEXT,                      -- JSON object, NULL for delete
                timestamp INTEGER NOT NULL      -- epoch ms
            );
        """)
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def enqueue(
        self,
        action: MutationAction,
        entry_id: str,
        data: Optional[dict[str, Any]] = None,
    ) -> PendingMutation:
        """Append a mutation to the end of the queue.

        Args:
            action: Kind of change
            entry_id: Target entry (may be a temporary ID)
            data: Partial entry fields; ignored for deletes

        Returns:
            The stored mutation
        """
        timestamp = epoch_ms()
        mutation = PendingMutation(
            id=generate_mutation_id(action, entry_id, timestamp),
            action=action,
            entry_id=entry_id,
            data=None if action is MutationAction.DELETE else data,
            timestamp=timestamp,
        )
        with storage_operation("enqueue"):
            conn = self._get_connection()
            with conn:
                conn.execute(
                    "INSERT INTO pending_sync (id, action, entry_id, data, timestamp) VALUES (?, ?, ?, ?, ?)",
                    (
                        mutation.id,
                        mutation.action.value,
                        mutation.entry_id,
                        json.dumps(mutation.data) if mutation.data is not None else None,
                        mutation.timestamp,
                    ),
                )
        return mutation

    def drain(self) -> list[PendingMutation]:
        """Snapshot of all pending mutations in enqueue order.

        Nothing is removed; callers resolve each mutation once handled.
        """
        with storage_operation("drain"):
            conn = self._get_connection()
            rows = conn.execute("SELECT * FROM pending_sync ORDER BY seq").fetchall()
        return [self._row_to_mutation(row) for row in rows]

    def resolve(self, mutation_id: str) -> bool:
        """Remove one mutation.

        Returns:
            True if it was removed, False if it was already gone
        """
        with storage_operation("resolve"):
            conn = self._get_connection()
            with conn:
                cursor = conn.execute("DELETE FROM pending_sync WHERE id = ?", (mutation_id,))
        return cursor.rowcount > 0

    def count(self) -> int:
        with storage_operation("count"):
            row = self._get_connection().execute("SELECT COUNT(*) FROM pending_sync").fetchone()
        return row[0]

    def __len__(self) -> int:
        return self.count()

    def is_empty(self) -> bool:
        """True if no mutations are waiting."""
        with storage_operation("is_empty"):
            row = self._get_connection().execute("SELECT 1 FROM pending_sync LIMIT 1").fetchone()
        return row is None

    def clear(self) -> None:
        """Drop every pending mutation.

        Only for explicit resets such as a hard logout, never during a sync pass.
        """
        with storage_operation("clear"):
            conn = self._get_connection()
            with conn:
                conn.execute("DELETE FROM pending_sync")

    def _row_to_mutation(self, row: sqlite3.Row) -> PendingMutation:
        try:
            return PendingMutation(
                id=row["id"],
                action=MutationAction(row["action"]),
                entry_id=row["entry_id"],
                data=json.loads(row["data"]) if row["data"] is not None else None,
                timestamp=row["timestamp"],
            )
        except ValueError as e:
            # Covers bad JSON and unknown actions
            raise StorageFault("drain", f"Corrupt mutation {row['id']}: {e}") from e
