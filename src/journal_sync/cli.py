"""journal-sync command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import SyncConfig, load_config
from .engine import SyncEngine
from .errors import SyncError


def cmd_status(engine: SyncEngine, args: argparse.Namespace) -> int:
    status = engine.initialize()
    print(f"Pending mutations: {len(engine.queue)}")
    if engine.user_id:
        print(f"Cached entries for {engine.user_id}: {engine.cache.count(engine.user_id)}")
    else:
        print(f"Cached entries: {engine.cache.count()}")
    print(f"Has pending changes: {'yes' if status.has_pending_changes else 'no'}")
    return 0


async def _run_sync(engine: SyncEngine) -> int:
    try:
        report = await engine.sync_now()
    finally:
        await engine.aclose()
    print(json.dumps(report.to_dict(), indent=2))
    if not report.started:
        print("Sync did not run (another process holds the lock)", file=sys.stderr)
        return 1
    return 0


def cmd_sync(engine: SyncEngine, args: argparse.Namespace) -> int:
    return asyncio.run(_run_sync(engine))


def cmd_entries(engine: SyncEngine, args: argparse.Namespace) -> int:
    user_id = args.user or engine.user_id
    if not user_id:
        print("Error: no user id (set [user] id in config or pass --user)", file=sys.stderr)
        return 1

    if args.search:
        entries = engine.cache.search(user_id, args.search, limit=args.limit)
    elif args.tag:
        entries = engine.cache.by_tag(user_id, args.tag)[: args.limit]
    else:
        entries = engine.cache.recent(user_id, limit=args.limit)

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    for entry in entries:
        marker = " (not synced)" if entry.is_temporary(engine.temp_prefix) else ""
        tags = f" [{', '.join(entry.tags)}]" if entry.tags else ""
        print(f"{entry.id}  {entry.updated_at:%Y-%m-%d %H:%M}  {entry.title or '(untitled)'}{tags}{marker}")
    if not entries:
        print("No entries found.")
    return 0


def cmd_pending(engine: SyncEngine, args: argparse.Namespace) -> int:
    mutations = engine.queue.drain()
    if args.json:
        print(json.dumps([m.to_dict() for m in mutations], indent=2))
        return 0
    for mutation in mutations:
        print(f"{mutation.id}  {mutation.action.value:<6}  {mutation.entry_id}")
    if not mutations:
        print("No pending mutations.")
    return 0


def cmd_reset(engine: SyncEngine, args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to discard local state without --yes", file=sys.stderr)
        return 1
    pending = len(engine.queue)
    engine.reset()
    print(f"Discarded cached entries and {pending} pending mutation(s).")
    return 0


COMMANDS = {
    "status": cmd_status,
    "sync": cmd_sync,
    "entries": cmd_entries,
    "pending": cmd_pending,
    "reset": cmd_reset,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journal-sync",
        description="Inspect and synchronize the offline journal cache",
    )
    parser.add_argument(
        "--project-root",
        "-p",
        type=Path,
        default=Path.cwd(),
        help="Directory holding the config file and cache (default: current directory)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to config file (default: auto-detect in project root)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log sync progress",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show pending mutation and cache counts")
    sub.add_parser("sync", help="Replay pending mutations and refresh the cache")

    entries = sub.add_parser("entries", help="List cached entries")
    entries.add_argument("--user", help="Owner id (default: from config)")
    entries.add_argument("--search", "-s", help="Full-text search query")
    entries.add_argument("--tag", "-t", help="Only entries with this tag")
    entries.add_argument("--limit", "-n", type=int, default=20, help="Maximum entries to show")
    entries.add_argument("--json", action="store_true", help="Print entries as JSON")

    pending = sub.add_parser("pending", help="List queued mutations in replay order")
    pending.add_argument("--json", action="store_true", help="Print mutations as JSON")

    reset = sub.add_parser("reset", help="Discard cached entries and pending mutations")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    project_root = args.project_root.resolve()
    try:
        config: SyncConfig = load_config(project_root, args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        engine = SyncEngine.from_config(config)
        code = COMMANDS[args.command](engine, args)
        if args.command != "sync":
            engine.cache.close()
            engine.queue.close()
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":  # pragma: no cover
    main()
