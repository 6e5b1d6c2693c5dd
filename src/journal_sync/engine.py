"""Sync engine - replays offline mutations and reconciles the local cache.

The engine is the only component that talks to the Remote Entry Service.
One pass drains a snapshot of the pending mutation queue in FIFO order, then
pulls the owner's entries and overwrites the cached copies. At most one pass
runs at a time; triggers arriving while a pass runs are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .cache import EntryCache
from .config import SyncConfig
from .errors import ReconciliationFault, StorageFault, SyncError
from .locking import lock_path_for, sync_lock
from .models import (
    DEFAULT_TEMP_PREFIX,
    Entry,
    MutationAction,
    PendingMutation,
    SyncReport,
    SyncStatus,
    editable_payload,
    epoch_ms,
    generate_temp_id,
    is_temporary_id,
    utc_now,
)
from .pending import MutationQueue
from .remote import EntryService, RemoteEntryService

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], Any]


class SyncEngine:
    """Coordinates the entry cache, the mutation queue, and the server."""

    def __init__(
        self,
        cache: EntryCache,
        queue: MutationQueue,
        remote: EntryService,
        user_id: Optional[str] = None,
        online: bool = True,
        lock_path: Optional[Path] = None,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
    ):
        """
        Args:
            cache: Local entry cache
            queue: Pending mutation queue
            remote: Remote Entry Service
            user_id: Owner pulled during reconciliation (None = no pull)
            online: Initial connectivity
            lock_path: Lock file shared with other processes using the same
                database; None disables the cross-process guard
            temp_prefix: Prefix marking locally generated entry IDs
        """
        self.cache = cache
        self.queue = queue
        self.remote = remote
        self.user_id = user_id
        self.lock_path = lock_path
        self.temp_prefix = temp_prefix
        self.on_sync_complete: Optional[Callable[[SyncReport], Any]] = None
        self.sync_interval = 0.0

        self._online = online
        self._syncing = False
        self._has_pending = False
        self._listeners: list[StatusListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._periodic: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        remote: Optional[EntryService] = None,
        online: bool = True,
    ) -> SyncEngine:
        """Build an engine whose cache and queue share the configured database."""
        db_path = config.get_database_path()
        if remote is None:
            remote = RemoteEntryService(
                config.base_url,
                token=config.auth_token,
                cookie=config.cookie,
                timeout=config.request_timeout,
            )
        engine = cls(
            EntryCache(db_path),
            MutationQueue(db_path),
            remote,
            user_id=config.user_id,
            online=online,
            lock_path=lock_path_for(db_path),
            temp_prefix=config.temp_prefix,
        )
        if "status_change" in config.hooks:
            engine.add_listener(config.hooks["status_change"])
        engine.on_sync_complete = config.hooks.get("sync_complete")
        engine.sync_interval = config.sync_interval
        engine.initialize()
        return engine

    # ========== Status ==========

    @property
    def status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self._online,
            is_syncing=self._syncing,
            has_pending_changes=self._has_pending,
        )

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def has_pending_changes(self) -> bool:
        return self._has_pending

    def add_listener(self, listener: StatusListener) -> None:
        """Call ``listener(status)`` whenever a status flag changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        status = self.status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener %r failed", listener)

    def _set_online(self, value: bool) -> None:
        if self._online != value:
            self._online = value
            self._notify()

    def _set_syncing(self, value: bool) -> None:
        if self._syncing != value:
            self._syncing = value
            self._notify()

    def _set_pending(self, value: bool) -> None:
        if self._has_pending != value:
            self._has_pending = value
            self._notify()

    def _refresh_pending(self) -> None:
        """Recompute has-pending-changes from the durable queue."""
        try:
            self._set_pending(not self.queue.is_empty())
        except StorageFault as e:
            logger.error("Could not read pending mutation count: %s", e)

    def initialize(self) -> SyncStatus:
        """Load the pending-changes flag left over from a previous session."""
        self._refresh_pending()
        return self.status

    # ========== Sync pass ==========

    def _pass_lock(self):
        if self.lock_path is None:
            return contextlib.nullcontext(True)
        return sync_lock(self.lock_path)

    async def sync_now(self) -> SyncReport:
        """Run one sync pass.

        A no-op while offline, while another pass is running, or while another
        process holds the sync lock. Faults are logged, never raised.

        Returns:
            SyncReport describing what the pass did
        """
        report = SyncReport()
        if not self._online:
            logger.debug("Offline; sync pass skipped")
            return report
        if self._syncing:
            logger.debug("Sync pass already running; trigger dropped")
            return report

        self._set_syncing(True)
        try:
            with self._pass_lock() as acquired:
                if not acquired:
                    logger.info("Another process is syncing %s; pass skipped", self.lock_path)
                    return report
                report.started = True
                await self._replay(report)
                if self.user_id:
                    try:
                        report.pulled = await self._reconcile(self.user_id)
                        report.reconciled = True
                    except ReconciliationFault as e:
                        logger.warning("Cache left stale: %s", e)
                self._refresh_pending()
        finally:
            self._set_syncing(False)

        logger.info(
            "Sync pass finished: %d replayed, %d skipped, %d failed, %s pulled",
            len(report.replayed),
            len(report.skipped),
            len(report.failed),
            report.pulled if report.pulled is not None else "none",
        )
        if self.on_sync_complete is not None:
            try:
                self.on_sync_complete(report)
            except Exception:
                logger.exception("Sync completion hook failed")
        return report

    async def _replay(self, report: SyncReport) -> None:
        """Replay a snapshot of the queue in enqueue order."""
        try:
            mutations = self.queue.drain()
        except StorageFault as e:
            logger.error("Could not read pending mutations: %s", e)
            return

        # Temporary IDs confirmed earlier in this pass -> server IDs
        server_ids: dict[str, str] = {}

        for mutation in mutations:
            try:
                sent = await self._apply(mutation, server_ids)
            except SyncError as e:
                # Not retried: the mutation is dropped below like a success
                logger.warning("Dropping %s after failure: %s", mutation.id, e)
                report.failed.append(mutation.id)
            except Exception:
                logger.exception("Dropping %s after unexpected error", mutation.id)
                report.failed.append(mutation.id)
            else:
                if sent:
                    report.replayed.append(mutation.id)
                else:
                    report.skipped.append(mutation.id)

            try:
                self.queue.resolve(mutation.id)
            except StorageFault as e:
                logger.error("Could not resolve %s: %s", mutation.id, e)

    def _server_id(self, entry_id: str, server_ids: dict[str, str]) -> Optional[str]:
        """Server ID to address for ``entry_id``, or None if it has none yet."""
        if not is_temporary_id(entry_id, self.temp_prefix):
            return entry_id
        return server_ids.get(entry_id)

    async def _apply(self, mutation: PendingMutation, server_ids: dict[str, str]) -> bool:
        """Send one mutation to the server.

        Returns:
            True if a request was made, False if the mutation needed none
        """
        if mutation.action is MutationAction.CREATE:
            if mutation.data is None:
                return False
            entry = await self.remote.create_entry(mutation.data)
            server_ids[mutation.entry_id] = entry.id
            # A draft deleted locally stays out of the cache under its new ID
            if self.cache.remove(mutation.entry_id):
                self.cache.put(entry)
            logger.debug("Created %s as %s", mutation.entry_id, entry.id)
            return True

        target = self._server_id(mutation.entry_id, server_ids)
        if target is None:
            logger.debug(
                "Skipping %s: %s does not exist on the server", mutation.id, mutation.entry_id
            )
            return False

        if mutation.action is MutationAction.UPDATE:
            if mutation.data is None:
                return False
            entry = await self.remote.update_entry(target, mutation.data)
            # Do not resurrect an entry deleted locally while the request ran
            if self.cache.get(entry.id) is not None:
                self.cache.put(entry)
            return True

        await self.remote.delete_entry(target)
        self.cache.remove(target)
        return True

    async def _reconcile(self, user_id: str) -> int:
        """Overwrite cached entries with the server's copies."""
        try:
            entries = await self.remote.list_entries(user_id)
            return self.cache.put_all(entries)
        except Exception as e:
            raise ReconciliationFault(f"Pull for {user_id} failed: {e}") from e

    # ========== Offline operations ==========

    def _new_temp_id(self) -> str:
        stamp = epoch_ms()
        temp_id = generate_temp_id(self.temp_prefix, stamp)
        while self.cache.get(temp_id) is not None:
            stamp += 1
            temp_id = generate_temp_id(self.temp_prefix, stamp)
        return temp_id

    async def create_entry_offline(self, data: dict[str, Any]) -> Optional[Entry]:
        """Create an entry locally while offline.

        Args:
            data: New entry fields (title, content, tags, wordCount)

        Returns:
            The cached entry with its temporary ID, or None when online
            (online creation goes straight to the server)

        Raises:
            StorageFault: If the cache or queue cannot be written
            ValueError: If wordCount is not a non-negative number
        """
        if self._online:
            return None

        now = utc_now()
        entry = Entry(
            id=self._new_temp_id(),
            user_id=self.user_id or "",
            title=data.get("title") or "",
            content=data.get("content") or "",
            tags=list(data.get("tags") or []),
            word_count=data.get("wordCount") or "0",
            created_at=now,
            updated_at=now,
        )
        self.cache.put(entry)
        self.queue.enqueue(MutationAction.CREATE, entry.id, editable_payload(data))
        self._set_pending(True)
        return entry

    async def update_entry_offline(self, entry_id: str, data: dict[str, Any]) -> Optional[Entry]:
        """Merge changes into the cached entry; queue them if offline.

        Returns:
            The updated cached entry, or None if it was not cached
        """
        updated = None
        entry = self.cache.get(entry_id)
        if entry is not None:
            updated = entry.merged(data)
            self.cache.put(updated)

        if not self._online:
            self.queue.enqueue(MutationAction.UPDATE, entry_id, editable_payload(data))
            self._set_pending(True)
        return updated

    async def delete_entry_offline(self, entry_id: str) -> None:
        """Remove the entry from the cache; queue the delete if offline."""
        self.cache.remove(entry_id)

        if not self._online:
            self.queue.enqueue(MutationAction.DELETE, entry_id)
            self._set_pending(True)

    async def save_entry(self, entry: Entry) -> None:
        """Write an entry obtained from the server through to the cache."""
        self.cache.put(entry)

    async def get_offline_entries(self, user_id: Optional[str] = None) -> list[Entry]:
        return self.cache.get_all(user_id or self.user_id or "")

    def reset(self) -> None:
        """Forget all local state, e.g. after a hard logout."""
        self.queue.clear()
        self.cache.clear()
        self._refresh_pending()

    # ========== Triggers ==========

    def _dispatch(self) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; sync was not scheduled")
            return None
        task = loop.create_task(self.sync_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def on_connectivity_change(self, is_online: bool) -> Optional[asyncio.Task]:
        """Record a connectivity change reported by the host environment.

        Going online schedules a sync pass on the running loop; going offline
        only updates the flag.

        Returns:
            The scheduled sync task, if any
        """
        was_online = self._online
        self._set_online(is_online)
        if is_online and not was_online:
            logger.info("Connectivity restored; scheduling sync")
            return self._dispatch()
        return None

    async def _periodic_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sync_now()

    def start_periodic_sync(self, interval: Optional[float] = None) -> asyncio.Task:
        """Run a sync pass every ``interval`` seconds (default: sync_interval) until stopped."""
        if interval is None:
            interval = self.sync_interval
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive: {interval}")
        self.stop_periodic_sync()
        self._periodic = asyncio.get_running_loop().create_task(self._periodic_loop(interval))
        return self._periodic

    def stop_periodic_sync(self) -> None:
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None

    async def wait_idle(self) -> None:
        """Wait for sync passes scheduled by connectivity changes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        """Stop timers, finish scheduled passes, and release storage."""
        self.stop_periodic_sync()
        await self.wait_idle()
        aclose = getattr(self.remote, "aclose", None)
        if aclose is not None:
            await aclose()
        self.cache.close()
        self.queue.close()
