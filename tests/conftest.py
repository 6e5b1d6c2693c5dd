"""Shared pytest fixtures for journal-sync tests."""

import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

from journal_sync.cache import EntryCache
from journal_sync.engine import SyncEngine
from journal_sync.errors import ServiceFault
from journal_sync.models import Entry, utc_now
from journal_sync.pending import MutationQueue


class FakeRemote:
    """In-memory Remote Entry Service that records every call in order."""

    def __init__(self, user_id: str = "user-1"):
        self.user_id = user_id
        self.entries: dict[str, Entry] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail: set[str] = set()     # Methods that raise ServiceFault
        self._next_id = 1

    def _check(self, method: str) -> None:
        if method in self.fail:
            raise ServiceFault(f"{method} unavailable", status_code=503)

    async def create_entry(self, data: dict[str, Any]) -> Entry:
        self.calls.append(("POST", dict(data)))
        self._check("POST")
        now = utc_now()
        entry = Entry(
            id=f"srv-{self._next_id}",
            user_id=self.user_id,
            title=data.get("title", ""),
            content=data.get("content", ""),
            tags=data.get("tags", []),
            word_count=data.get("wordCount", "0"),
            created_at=now,
            updated_at=now,
        )
        self._next_id += 1
        self.entries[entry.id] = entry
        return entry

    async def update_entry(self, entry_id: str, data: dict[str, Any]) -> Entry:
        self.calls.append(("PATCH", entry_id))
        self._check("PATCH")
        if entry_id not in self.entries:
            raise ServiceFault(f"{entry_id} not found", status_code=404)
        entry = self.entries[entry_id].merged(data)
        self.entries[entry_id] = entry
        return entry

    async def delete_entry(self, entry_id: str) -> None:
        self.calls.append(("DELETE", entry_id))
        self._check("DELETE")
        self.entries.pop(entry_id, None)

    async def list_entries(self, user_id: str) -> list[Entry]:
        self.calls.append(("GET", user_id))
        self._check("GET")
        return [e for e in self.entries.values() if e.user_id == user_id]

    def requests(self) -> list[str]:
        """Methods called so far, excluding the reconciliation pull."""
        return [method for method, _ in self.calls if method != "GET"]


def make_entry(entry_id: str = "srv-1", user_id: str = "user-1", **fields: Any) -> Entry:
    return Entry(id=entry_id, user_id=user_id, **fields)


@pytest.fixture
def temp_project():
    """Create a temporary project directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cache():
    """In-memory entry cache."""
    c = EntryCache()
    yield c
    c.close()


@pytest.fixture
def queue():
    """In-memory mutation queue."""
    q = MutationQueue()
    yield q
    q.close()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def engine_factory(cache, queue, remote):
    """Factory for engines sharing the cache, queue, and fake remote fixtures.

    Usage:
        def test_example(engine_factory):
            engine = engine_factory(online=False)
    """

    def _create(online: bool = False, user_id: Optional[str] = "user-1", **kwargs: Any) -> SyncEngine:
        return SyncEngine(cache, queue, remote, user_id=user_id, online=online, **kwargs)

    return _create


@pytest.fixture
def engine(engine_factory):
    """Engine that starts offline."""
    return engine_factory(online=False)
