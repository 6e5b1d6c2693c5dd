"""Fault taxonomy for the offline sync layer."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional


class SyncError(Exception):
    """Base exception for sync layer operations."""
    pass


class StorageFault(SyncError):
    """Raised when a local storage operation fails (quota, corruption, unavailable)."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class ServiceFault(SyncError):
    """Raised when a Remote Entry Service call fails (network, non-2xx, timeout)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ReconciliationFault(SyncError):
    """Raised when the post-replay pull cannot refresh the cache."""
    pass


@contextmanager
def storage_operation(operation: str) -> Generator[None, None, None]:
    """Translate SQLite errors raised inside the block into StorageFault."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageFault(operation, str(e)) from e
