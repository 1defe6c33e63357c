"""
Snakey CLI - offline-first sync for reptile husbandry records.

Usage:
    snakey sync status [--json]
    snakey sync run | push | pull [--full]
    snakey sync retry [--id N]...
    snakey sync failed [--json]
    snakey record create TABLE [--data JSON] [--set KEY=VALUE]... [--id ID]
    snakey record update TABLE ID [--data JSON] [--set KEY=VALUE]...
    snakey record delete TABLE ID
    snakey mirror list TABLE [--reptile ID]
    snakey mirror show TABLE ID
"""

import argparse
import logging
import sys

from snakey import Snakey, load_config
from snakey.cli.commands import cmd_mirror, cmd_record, cmd_sync
from snakey.errors import SnakeyError
from snakey.logging_config import setup_snakey_logging
from snakey.types import SyncTable

logger = logging.getLogger(__name__)

TABLE_CHOICES = [t.value for t in SyncTable]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snakey",
        description="Offline-first sync client for reptile husbandry records",
    )
    parser.add_argument("--log-level", help="Override SNAKEY_LOG_LEVEL (DEBUG also logs to console)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync
    p_sync = subparsers.add_parser("sync", help="Sync with the server")
    sync_sub = p_sync.add_subparsers(dest="sync_action", required=True)

    sync_status = sync_sub.add_parser("status", help="Show pending/failed counts and last sync")
    sync_status.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_run = sync_sub.add_parser("run", help="Run one full sync tick (push then pull)")
    sync_run.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_push = sync_sub.add_parser("push", help="Push queued local changes")
    sync_push.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_pull = sync_sub.add_parser("pull", help="Pull server changes into the mirror")
    sync_pull.add_argument("--full", "-f", action="store_true",
                           help="Reset the cursor and pull everything")
    sync_pull.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_retry = sync_sub.add_parser("retry", help="Retry failed changes, then sync")
    sync_retry.add_argument("--id", type=int, action="append",
                            help="Queue entry id to retry (repeatable; default: all)")
    sync_retry.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_failed = sync_sub.add_parser("failed", help="List changes the server rejected")
    sync_failed.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    # record
    p_record = subparsers.add_parser("record", help="Create, update or delete a record")
    p_record.add_argument("--offline", action="store_true",
                          help="Queue the change without contacting the server")
    record_sub = p_record.add_subparsers(dest="record_action", required=True)

    record_create = record_sub.add_parser("create", help="Create a record")
    record_create.add_argument("table", choices=TABLE_CHOICES)
    record_create.add_argument("--id", help="Client-generated id (default: new UUID)")
    record_create.add_argument("--data", "-d", help="Fields as a JSON object")
    record_create.add_argument("--set", "-s", action="append", metavar="KEY=VALUE",
                               help="Set one field (repeatable)")
    record_create.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    record_update = record_sub.add_parser("update", help="Update a record")
    record_update.add_argument("table", choices=TABLE_CHOICES)
    record_update.add_argument("record_id")
    record_update.add_argument("--data", "-d", help="Changed fields as a JSON object")
    record_update.add_argument("--set", "-s", action="append", metavar="KEY=VALUE",
                               help="Set one field (repeatable)")
    record_update.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    record_delete = record_sub.add_parser("delete", help="Delete a record")
    record_delete.add_argument("table", choices=TABLE_CHOICES)
    record_delete.add_argument("record_id")
    record_delete.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    # mirror
    p_mirror = subparsers.add_parser("mirror", help="Read the local mirror")
    mirror_sub = p_mirror.add_subparsers(dest="mirror_action", required=True)

    mirror_list = mirror_sub.add_parser("list", help="List records of a table")
    mirror_list.add_argument("table", choices=TABLE_CHOICES)
    mirror_list.add_argument("--reptile", "-r", help="Only children of this reptile")
    mirror_list.add_argument("--limit", "-l", type=int, default=0, help="Maximum records to show")
    mirror_list.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    mirror_show = mirror_sub.add_parser("show", help="Show one record")
    mirror_show.add_argument("table", choices=TABLE_CHOICES)
    mirror_show.add_argument("record_id")
    mirror_show.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
        setup_snakey_logging(args.log_level or config.log_level)
        s = Snakey(config=config)
    except (SnakeyError, ValueError, OSError) as e:
        logger.error(f"Failed to initialize snakey: {e}")
        print(f"✗ {e}")
        sys.exit(1)

    try:
        if args.command == "sync":
            cmd_sync(args, s)
        elif args.command == "record":
            cmd_record(args, s)
        elif args.command == "mirror":
            cmd_mirror(args, s)
    except (ValueError, KeyError, SnakeyError) as e:
        logger.error(f"Command failed: {e}")
        print(f"✗ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
