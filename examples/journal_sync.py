"""journal-sync Configuration - Python Example

Copy to your project root as journal_sync.py to react to sync events.

Convention:
- CONFIG dict for static configuration (same structure as TOML)
- Functions named hook_* become hooks
"""

import logging

log = logging.getLogger("journal_sync.hooks")

# =============================================================================
# Static Configuration (same structure as TOML)
# =============================================================================

CONFIG = {
    "server": {
        "base_url": "https://journal.example.com",
        # Prefer the JOURNAL_SYNC_TOKEN environment variable over a literal token
        "timeout": 15,
    },
    "user": {
        "id": "00000000-0000-0000-0000-000000000000",
    },
    "storage": {
        "cache_dir": ".journal-sync",
        "database": "offline.db",
    },
    "sync": {
        "interval": 300,
    },
}


# =============================================================================
# Hooks - Called by the sync engine
# =============================================================================

def hook_status_change(status) -> None:
    """Called with a SyncStatus whenever a status flag flips."""
    if status.has_pending_changes and not status.is_online:
        log.info("Working offline; changes will sync on reconnect")


def hook_sync_complete(report) -> None:
    """Called with the SyncReport of every pass that ran."""
    if report.failed:
        log.warning("%d change(s) could not be synced and were dropped", len(report.failed))
