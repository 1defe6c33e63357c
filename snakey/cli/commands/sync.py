"""Sync commands for the snakey CLI: status, run, push, pull, retry, failed."""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from snakey.offline import entry_summary
from snakey.types import TickResult

if TYPE_CHECKING:
    from snakey import Snakey

logger = logging.getLogger(__name__)


def _format_ms(ms):
    if not ms:
        return "never"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _require_sync(s: "Snakey") -> None:
    if not s.can_sync:
        print("✗ Backend not configured")
        print("  Set SNAKEY_BACKEND_URL and SNAKEY_AUTH_TOKEN, or write credentials.json")
        sys.exit(1)


def _print_tick(label: str, result: TickResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(asdict(result), indent=2))
        return
    if result.skipped:
        print(f"ℹ {label} skipped (offline or already syncing)")
        return

    symbol = "✓" if result.success else "⚠"
    print(f"{symbol} {label} complete")
    print(f"  ↑ Pushed: {result.pushed} ({result.batches} batches)")
    if result.conflicts:
        print(f"  ⚔ Conflicts: {result.conflicts} (server version kept)")
    if result.failed:
        print(f"  ✗ Failed: {result.failed}")
    print(f"  ↓ Pulled: {result.pulled}")
    for error in result.errors:
        print(f"  ⚠ {error[:120]}")


def cmd_sync(args, s: "Snakey"):
    """Handle sync subcommands."""
    action = args.sync_action

    if action == "status":
        status = s.status()
        if args.json:
            data = asdict(status)
            data["failed"] = status.failed
            print(json.dumps(data, indent=2))
            return
        print("Sync Status")
        print("=" * 40)
        print(f"Backend: {s.config.backend_url or 'not configured'}")
        print(f"Connection: {'online' if status.online else 'offline'}")
        print(f"Pending changes: {status.pending}")
        print(f"Failed (needs attention): {status.failed_terminal}")
        print(f"Failed (will retry): {status.failed_transient}")
        print(f"Last sync: {_format_ms(status.last_sync_at)}")
        print(f"Pull cursor: {status.last_pull_cursor}")
        if status.needs_user_action:
            print()
            print("Run `snakey sync failed` to review changes the server rejected.")
        return

    if action == "failed":
        entries = s.queue.list_failed()
        if args.json:
            print(
                json.dumps(
                    [
                        {
                            "id": e.id,
                            "operation": e.operation.value,
                            "table": e.table.value,
                            "recordId": e.record_id,
                            "errorType": e.error_type.value if e.error_type else None,
                            "error": e.last_error,
                            "retryCount": e.retry_count,
                            "payload": e.payload,
                        }
                        for e in entries
                    ],
                    indent=2,
                    default=str,
                )
            )
            return
        if not entries:
            print("✓ No failed changes")
            return
        print(f"Failed changes ({len(entries)}):")
        for entry in entries:
            print(f"  {entry_summary(entry)}")
        return

    if action == "retry":
        ids = args.id or None
        if not s.can_sync:
            count = s.queue.retry_failed(ids)
            print(f"✓ {count} failed changes requeued; they sync once a backend is configured")
            return
        result = asyncio.run(_with_close(s, s.orchestrator.retry_failed(ids)))
        _print_tick("Retry", result, args.json)
        return

    _require_sync(s)

    if action == "run":
        result = asyncio.run(_with_close(s, s.orchestrator.refresh()))
        _print_tick("Sync", result, args.json)
    elif action == "push":
        result = asyncio.run(_with_close(s, s.orchestrator.push()))
        _print_tick("Push", result, args.json)
    elif action == "pull":
        if args.full:
            s.meta.set_pull_cursor(0)
        result = asyncio.run(_with_close(s, s.orchestrator.pull()))
        _print_tick("Pull", result, args.json)

    else:
        print(f"✗ Unknown sync action: {action}")
        sys.exit(2)

    if not result.success:
        sys.exit(1)


async def _with_close(s: "Snakey", coro):
    try:
        return await coro
    finally:
        await s.aclose()
