"""Data models for cached entries, pending mutations, and sync status."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

DEFAULT_TEMP_PREFIX = "offline-"

# Fields a client may send to the server when creating or updating an entry
EDITABLE_FIELDS = ("title", "content", "tags", "wordCount")


class MutationAction(Enum):
    """Kind of change recorded in the pending mutation queue."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def epoch_ms() -> int:
    """Milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def format_timestamp(dt: datetime) -> str:
    """Format datetime as ISO 8601 with timezone."""
    return dt.isoformat(timespec='milliseconds')


def parse_timestamp(s: str) -> datetime:
    """Parse ISO 8601 timestamp string.

    Accepts the trailing ``Z`` the server emits. Naive values are taken as UTC.
    """
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def generate_temp_id(prefix: str = DEFAULT_TEMP_PREFIX, timestamp: Optional[int] = None) -> str:
    """Generate a temporary entry ID in format offline-<epoch ms>."""
    return f"{prefix}{epoch_ms() if timestamp is None else timestamp}"


def is_temporary_id(entry_id: str, prefix: str = DEFAULT_TEMP_PREFIX) -> bool:
    """True if the ID was generated locally and never confirmed by the server."""
    return entry_id.startswith(prefix)


def generate_mutation_id(action: MutationAction, entry_id: str, timestamp: int) -> str:
    """Generate mutation ID in format <action>-<entry id>-<epoch ms>-<suffix>."""
    return f"{action.value}-{entry_id}-{timestamp}-{secrets.token_hex(3)}"


def normalize_tags(tags: Optional[list[str]]) -> list[str]:
    """Drop duplicate tags, keeping the first occurrence of each."""
    seen: set[str] = set()
    result = []
    for tag in tags or []:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def normalize_word_count(value: Any) -> str:
    """Validate a word count and return it in its text form."""
    if value is None or value == "":
        return "0"
    try:
        count = int(str(value).strip())
    except ValueError:
        raise ValueError(f"Word count is not a number: {value!r}")
    if count < 0:
        raise ValueError(f"Word count must be non-negative: {value!r}")
    return str(count)


@dataclass
class Entry:
    """A single journal entry as cached on the client."""
    id: str
    user_id: str
    title: str = ""
    content: str = ""
    tags: list[str] = field(default_factory=list)
    word_count: str = "0"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.tags = normalize_tags(self.tags)
        self.word_count = normalize_word_count(self.word_count)

    @property
    def words(self) -> int:
        """Word count as an integer."""
        return int(self.word_count)

    def is_temporary(self, prefix: str = DEFAULT_TEMP_PREFIX) -> bool:
        return is_temporary_id(self.id, prefix)

    def merged(self, data: dict[str, Any], touched_at: Optional[datetime] = None) -> Entry:
        """Return a copy with editable fields from ``data`` overlaid.

        Args:
            data: Partial entry fields in wire (camelCase) form
            touched_at: New modification time (default: now)

        Returns:
            New Entry; this one is left unchanged
        """
        changes: dict[str, Any] = {"updated_at": touched_at or utc_now()}
        if "title" in data:
            changes["title"] = data["title"] or ""
        if "content" in data:
            changes["content"] = data["content"] or ""
        if "tags" in data:
            changes["tags"] = list(data["tags"] or [])
        if "wordCount" in data:
            changes["word_count"] = data["wordCount"]
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert entry to the server's JSON representation."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "wordCount": self.word_count,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Entry:
        """Build an entry from the server's JSON representation."""
        created = data.get("createdAt")
        updated = data.get("updatedAt")
        created_at = parse_timestamp(created) if created else utc_now()
        return cls(
            id=str(data["id"]),
            user_id=data.get("userId") or "",
            title=data.get("title") or "",
            content=data.get("content") or "",
            tags=list(data.get("tags") or []),
            word_count=data.get("wordCount", "0"),
            created_at=created_at,
            updated_at=parse_timestamp(updated) if updated else created_at,
        )


def editable_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Restrict a dict to the fields the server accepts on create/update."""
    return {key: data[key] for key in EDITABLE_FIELDS if key in data}


@dataclass
class PendingMutation:
    """A change made offline and not yet confirmed by the server."""
    id: str
    action: MutationAction
    entry_id: str
    data: Optional[dict[str, Any]] = None
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted pendingSync record shape."""
        record: dict[str, Any] = {
            "id": self.id,
            "action": self.action.value,
            "entryId": self.entry_id,
            "timestamp": self.timestamp,
        }
        if self.data is not None:
            record["data"] = self.data
        return record


@dataclass(frozen=True)
class SyncStatus:
    """Flags the UI layer observes."""
    is_online: bool
    is_syncing: bool
    has_pending_changes: bool

    def to_dict(self) -> dict[str, bool]:
        return {
            "is_online": self.is_online,
            "is_syncing": self.is_syncing,
            "has_pending_changes": self.has_pending_changes,
        }


@dataclass
class SyncReport:
    """Outcome of one sync pass."""
    started: bool = False
    replayed: list[str] = field(default_factory=list)   # Mutation IDs sent to the server
    skipped: list[str] = field(default_factory=list)    # Resolved without a request
    failed: list[str] = field(default_factory=list)     # Dropped after a logged fault
    pulled: Optional[int] = None                        # Entries written by reconciliation
    reconciled: bool = False

    @property
    def processed(self) -> int:
        return len(self.replayed) + len(self.skipped) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started": self.started,
            "replayed": self.replayed,
            "skipped": self.skipped,
            "failed": self.failed,
            "pulled": self.pulled,
            "reconciled": self.reconciled,
        }
