"""Property-based tests for queue ordering and replay.

Uses hypothesis to verify the sync invariants hold for many mutation sequences.
"""

import asyncio

from hypothesis import given, settings, strategies as st

from conftest import FakeRemote, make_entry
from journal_sync.cache import EntryCache
from journal_sync.engine import SyncEngine
from journal_sync.models import MutationAction, normalize_tags
from journal_sync.pending import MutationQueue

actions = st.sampled_from(list(MutationAction))
entry_ids = st.sampled_from(["srv-1", "srv-2", "offline-1", "offline-2"])


class TestQueueProperties:
    """Properties of the pending mutation queue."""

    @given(ops=st.lists(st.tuples(actions, entry_ids), max_size=30))
    def test_drain_preserves_enqueue_order(self, ops):
        queue = MutationQueue()
        try:
            enqueued = [queue.enqueue(action, entry_id, {"title": "t"}).id for action, entry_id in ops]
            assert [m.id for m in queue.drain()] == enqueued
        finally:
            queue.close()

    @given(
        ops=st.lists(st.tuples(actions, entry_ids), min_size=1, max_size=20),
        data=st.data(),
    )
    def test_resolve_is_idempotent(self, ops, data):
        queue = MutationQueue()
        try:
            ids = [queue.enqueue(action, entry_id).id for action, entry_id in ops]
            victim = data.draw(st.sampled_from(ids))

            queue.resolve(victim)
            after_once = [m.id for m in queue.drain()]
            queue.resolve(victim)
            after_twice = [m.id for m in queue.drain()]

            assert after_once == after_twice
            assert len(after_once) == len(ids) - 1
        finally:
            queue.close()


class TestTagProperties:
    @given(tags=st.lists(st.text(min_size=1, max_size=5), max_size=20))
    def test_normalized_tags_unique_and_ordered(self, tags):
        result = normalize_tags(tags)

        assert len(result) == len(set(result))
        assert set(result) == set(tags)
        # First occurrences keep their relative order
        assert result == sorted(set(tags), key=tags.index)


class TestReplayProperties:
    """Properties of a full sync pass."""

    @settings(max_examples=50, deadline=None)
    @given(ops=st.lists(st.tuples(actions, st.sampled_from(["srv-1", "srv-2"])), max_size=15))
    def test_pass_empties_queue_and_follows_fifo(self, ops):
        cache = EntryCache()
        queue = MutationQueue()
        remote = FakeRemote()
        for entry_id in ("srv-1", "srv-2"):
            remote.entries[entry_id] = make_entry(entry_id)
        try:
            for action, entry_id in ops:
                queue.enqueue(action, entry_id, {"title": "t"})

            engine = SyncEngine(cache, queue, remote, user_id="user-1", online=True)
            report = asyncio.run(engine.sync_now())

            assert queue.is_empty()
            assert not engine.has_pending_changes
            assert report.processed == len(ops)

            expected = [
                {"create": "POST", "update": "PATCH", "delete": "DELETE"}[action.value]
                for action, _ in ops
            ]
            assert remote.requests() == expected
        finally:
            cache.close()
            queue.close()
