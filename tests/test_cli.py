"""Tests for the journal-sync command line."""

import json

import pytest

from conftest import FakeRemote, make_entry
from journal_sync import cli
from journal_sync.cache import EntryCache
from journal_sync.config import SyncConfig
from journal_sync.models import MutationAction
from journal_sync.pending import MutationQueue


@pytest.fixture
def project(temp_project, monkeypatch):
    """Project with a config file and a seeded offline database."""
    monkeypatch.delenv("JOURNAL_SYNC_TOKEN", raising=False)
    monkeypatch.delenv("JOURNAL_SYNC_BASE_URL", raising=False)
    (temp_project / "journal_sync.toml").write_text('[user]\nid = "user-1"\n')

    db_path = SyncConfig(project_root=temp_project).get_database_path()
    cache = EntryCache(db_path)
    cache.put(make_entry("srv-1", title="Morning", content="coffee", tags=["food"]))
    cache.put(make_entry("offline-5", title="Draft"))
    cache.close()
    queue = MutationQueue(db_path)
    queue.enqueue(MutationAction.CREATE, "offline-5", {"title": "Draft"})
    queue.close()
    return temp_project


def run(project, *argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--project-root", str(project), *argv])
    return exc_info.value.code


def test_status(project, capsys):
    assert run(project, "status") == 0

    out = capsys.readouterr().out
    assert "Pending mutations: 1" in out
    assert "Cached entries for user-1: 2" in out
    assert "Has pending changes: yes" in out


def test_entries_marks_unsynced(project, capsys):
    assert run(project, "entries") == 0

    out = capsys.readouterr().out
    assert "Morning [food]" in out
    assert "offline-5" in out and "(not synced)" in out


def test_entries_search_json(project, capsys):
    assert run(project, "entries", "--search", "coffee", "--json") == 0

    data = json.loads(capsys.readouterr().out)
    assert [e["id"] for e in data] == ["srv-1"]


def test_entries_by_tag(project, capsys):
    assert run(project, "entries", "--tag", "food") == 0
    assert "srv-1" in capsys.readouterr().out


def test_pending_json(project, capsys):
    assert run(project, "pending", "--json") == 0

    data = json.loads(capsys.readouterr().out)
    assert data[0]["action"] == "create"
    assert data[0]["entryId"] == "offline-5"


def test_reset_requires_confirmation(project, capsys):
    assert run(project, "reset") == 1
    assert run(project, "reset", "--yes") == 0
    assert "1 pending mutation(s)" in capsys.readouterr().out

    assert run(project, "pending") == 0
    assert "No pending mutations." in capsys.readouterr().out


def test_bad_config(temp_project, capsys):
    bad = temp_project / "broken.json"
    bad.write_text("{not json")

    assert run(temp_project, "--config", str(bad), "status") == 1
    assert "Error loading config" in capsys.readouterr().err


def test_sync_replays_queue(project, capsys, monkeypatch):
    remote = FakeRemote()
    remote._next_id = 10
    monkeypatch.setattr("journal_sync.engine.RemoteEntryService", lambda *args, **kwargs: remote)

    assert run(project, "sync") == 0

    report = json.loads(capsys.readouterr().out)
    assert report["started"] is True
    assert len(report["replayed"]) == 1
    assert report["pulled"] == 1
    assert remote.calls[0] == ("POST", {"title": "Draft"})

    assert run(project, "status") == 0
    assert "Pending mutations: 0" in capsys.readouterr().out
