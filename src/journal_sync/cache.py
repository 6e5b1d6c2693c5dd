"""SQLite-backed local entry cache.

The server remains the source of truth; the cache is a materialized,
possibly stale view of it that stays usable without network access.

Cache location: <cache_dir>/offline.db (table ``entries``)
"""

from __future__ import annotations

import json
import sqlite3
from datetime import timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import storage_operation
from .models import Entry, format_timestamp, parse_timestamp

MEMORY = ":memory:"


def connect(db_path: Union[Path, str]) -> sqlite3.Connection:
    """Open a connection to the offline database."""
    if str(db_path) != MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    if str(db_path) != MEMORY:
        # WAL lets the cache and queue connections share the file
        conn.execute("PRAGMA journal_mode = WAL")
    return conn


def _utc_text(entry_time) -> str:
    return format_timestamp(entry_time.astimezone(timezone.utc))


class EntryCache:
    """Persistent, keyed store of entry snapshots."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Union[Path, str] = MEMORY):
        """Initialize the entry cache.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        with storage_operation("open"):
            self._ensure_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = connect(self.db_path)
        return self._connection

    def _ensure_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        conn = self._get_connection()

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='entries_schema_version'"
        )
        if cursor.fetchone() is None:
            self._init_schema(conn)

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """Initialize the database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS entries_schema_version (
                version INTEGER PRIMARY KEY
            );
            INSERT INTO entries_schema_version (version) VALUES (1);

            CREATE TABLE IF NOT EXISTS entries (
                id TEXT PRIMARY KEY,            -- server id or offline-<ms>
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                tags TEXT NOT NULL,             -- JSON array
                word_count TEXT NOT NULL,
                created_at TEXT NOT NULL,       -- ISO 8601, UTC
                updated_at TEXT NOT NULL        -- ISO 8601, UTC
            );

            CREATE INDEX IF NOT EXISTS idx_entries_user ON entries(user_id);
            CREATE INDEX IF NOT EXISTS idx_entries_updated ON entries(updated_at);

            CREATE VIRTUAL TABLE IF NOT EXISTS entries_fts USING fts5(
                title,
                content,
                tags,
                content='entries',
                content_rowid='rowid'
            );

            CREATE TRIGGER IF NOT EXISTS entries_ai AFTER INSERT ON entries BEGIN
                INSERT INTO entries_fts(rowid, title, content, tags)
                VALUES (new.rowid, new.title, new.content, new.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS entries_ad AFTER DELETE ON entries BEGIN
                INSERT INTO entries_fts(entries_fts, rowid, title, content, tags)
                VALUES ('delete', old.rowid, old.title, old.content, old.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS entries_au AFTER UPDATE ON entries BEGIN
                INSERT INTO entries_fts(entries_fts, rowid, title, content, tags)
                VALUES ('delete', old.rowid, old.title, old.content, old.tags);
                INSERT INTO entries_fts(rowid, title, content, tags)
                VALUES (new.rowid, new.title, new.content, new.tags);
            END;
        """)
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _upsert(self, conn: sqlite3.Connection, entry: Entry) -> None:
        # ON CONFLICT keeps the rowid so the FTS update trigger fires
        conn.execute(
            """
            INSERT INTO entries (
                id, user_id, title, content, tags, word_count, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id = excluded.user_id,
                title = excluded.title,
                content = excluded.content,
                tags = excluded.tags,
                word_count = excluded.word_count,
                created_at = excluded.created_at,
                updated_at = excluded.updated_at
            """,
            (
                entry.id,
                entry.user_id,
                entry.title,
                entry.content,
                json.dumps(entry.tags),
                entry.word_count,
                _utc_text(entry.created_at),
                _utc_text(entry.updated_at),
            ),
        )

    def put(self, entry: Entry) -> None:
        """Insert or overwrite the entry with the same ID."""
        with storage_operation("put"):
            conn = self._get_connection()
            with conn:
                self._upsert(conn, entry)

    def put_all(self, entries: Iterable[Entry]) -> int:
        """Bulk upsert in a single transaction.

        Either every entry is written or none is.

        Returns:
            Number of entries written
        """
        count = 0
        with storage_operation("put_all"):
            conn = self._get_connection()
            with conn:
                for entry in entries:
                    self._upsert(conn, entry)
                    count += 1
        return count

    def get(self, entry_id: str) -> Optional[Entry]:
        """Get a single entry by ID.

        Returns:
            The entry, or None if it is not cached
        """
        with storage_operation("get"):
            conn = self._get_connection()
            row = conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def get_all(self, user_id: str) -> list[Entry]:
        """All cached entries belonging to ``user_id`` (unordered)."""
        with storage_operation("get_all"):
            conn = self._get_connection()
            rows = conn.execute("SELECT * FROM entries WHERE user_id = ?", (user_id,)).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def recent(self, user_id: str, limit: int = 20) -> list[Entry]:
        """Most recently modified entries first."""
        with storage_operation("recent"):
            conn = self._get_connection()
            rows = conn.execute(
                "SELECT * FROM entries WHERE user_id = ? ORDER BY updated_at DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def search(self, user_id: str, query: str, limit: int = 50) -> list[Entry]:
        """Full-text search across title, content, and tags.

        Args:
            user_id: Owner whose entries are searched
            query: Words to look for; every word must match
            limit: Maximum results

        Returns:
            Matching entries, best match first
        """
        escaped = self._escape_fts_query(query)
        if not escaped:
            return []
        with storage_operation("search"):
            conn = self._get_connection()
            rows = conn.execute(
                """
                SELECT entries.* FROM entries_fts
                JOIN entries ON entries.rowid = entries_fts.rowid
                WHERE entries_fts MATCH ? AND entries.user_id = ?
                ORDER BY rank
                LIMIT ?
                """,
                (escaped, user_id, limit),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def by_tag(self, user_id: str, tag: str) -> list[Entry]:
        """Entries carrying ``tag``, most recently modified first."""
        with storage_operation("by_tag"):
            conn = self._get_connection()
            rows = conn.execute(
                """
                SELECT * FROM entries
                WHERE user_id = ?
                  AND EXISTS (SELECT 1 FROM json_each(entries.tags) WHERE value = ?)
                ORDER BY updated_at DESC
                """,
                (user_id, tag),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def remove(self, entry_id: str) -> bool:
        """Delete an entry from the cache.

        Returns:
            True if an entry was deleted, False if it was not cached
        """
        with storage_operation("remove"):
            conn = self._get_connection()
            with conn:
                cursor = conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    def count(self, user_id: Optional[str] = None) -> int:
        with storage_operation("count"):
            conn = self._get_connection()
            if user_id is None:
                row = conn.execute("SELECT COUNT(*) FROM entries").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM entries WHERE user_id = ?", (user_id,)
                ).fetchone()
        return row[0]

    def clear(self) -> None:
        """Remove every cached entry."""
        with storage_operation("clear"):
            conn = self._get_connection()
            with conn:
                conn.execute("DELETE FROM entries")

    def _row_to_entry(self, row: sqlite3.Row) -> Entry:
        """Convert a database row to an Entry."""
        try:
            tags = json.loads(row["tags"]) if row["tags"] else []
        except json.JSONDecodeError:
            tags = []
        return Entry(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            tags=tags,
            word_count=row["word_count"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    def _escape_fts_query(self, query: str) -> str:
        """Quote each word so FTS5 operators in user input are taken literally."""
        words = query.split()
        return " ".join('"' + word.replace('"', '""') + '"' for word in words)
