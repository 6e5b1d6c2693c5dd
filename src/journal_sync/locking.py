"""File locking so only one process replays a shared offline database."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import portalocker


def lock_path_for(db_path: Path) -> Path:
    """Lock file used to serialize sync passes on ``db_path``."""
    return db_path.with_suffix(db_path.suffix + ".sync.lock")


@contextmanager
def sync_lock(path: Path, timeout: float = 0.0) -> Generator[bool, None, None]:
    """Try to take an exclusive lock on ``path``.

    Yields True when the lock is held for the duration of the block, False
    when another process holds it and ``timeout`` expired.

    Args:
        path: Lock file (created if missing)
        timeout: Seconds to wait for the lock; 0 fails immediately
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Create lock file if it doesn't exist
    if not path.exists():
        path.touch()

    lock = portalocker.Lock(path, timeout=timeout, fail_when_locked=True)
    try:
        lock.acquire()
    except portalocker.LockException:
        yield False
        return
    try:
        yield True
    finally:
        lock.release()
