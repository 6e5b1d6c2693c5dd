"""Offline-first entry cache, mutation queue, and sync engine for a journaling client."""

from .cache import EntryCache
from .config import SyncConfig, load_config
from .engine import SyncEngine
from .errors import ReconciliationFault, ServiceFault, StorageFault, SyncError
from .models import Entry, MutationAction, PendingMutation, SyncReport, SyncStatus
from .pending import MutationQueue
from .remote import RemoteEntryService

__version__ = "0.1.0"

__all__ = [
    "Entry",
    "EntryCache",
    "MutationAction",
    "MutationQueue",
    "PendingMutation",
    "ReconciliationFault",
    "RemoteEntryService",
    "ServiceFault",
    "StorageFault",
    "SyncConfig",
    "SyncEngine",
    "SyncError",
    "SyncReport",
    "SyncStatus",
    "load_config",
]
