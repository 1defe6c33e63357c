"""Mirror commands: read the on-device copy without touching the network."""

import json
from typing import TYPE_CHECKING

from snakey.storage import LAST_MODIFIED_FIELD, SYNC_STATUS_FIELD

if TYPE_CHECKING:
    from snakey import Snakey


def cmd_mirror(args, s: "Snakey"):
    """Handle mirror subcommands."""
    if args.mirror_action == "list":
        records = s.mirror.query(args.table, reptile_id=args.reptile)
        if args.limit:
            records = records[: args.limit]

        if args.json:
            print(json.dumps(records, indent=2, default=str))
            return

        if not records:
            print(f"No {args.table} in the local mirror")
            return

        print(f"{args.table} ({len(records)}):")
        for record in records:
            marker = "•" if record.get(SYNC_STATUS_FIELD) == "pending" else " "
            label = record.get("name") or record.get("species") or record.get("notes") or ""
            print(f" {marker} {record['id']}  {str(label)[:50]}")
        if any(r.get(SYNC_STATUS_FIELD) == "pending" for r in records):
            print()
            print("• = local change not yet confirmed by the server")

    elif args.mirror_action == "show":
        record = s.mirror.get(args.table, args.record_id)
        if record is None:
            print(f"✗ {args.table}:{args.record_id} is not in the local mirror")
            return
        if args.json:
            print(json.dumps(record, indent=2, default=str))
            return
        for key, value in record.items():
            if key in (SYNC_STATUS_FIELD, LAST_MODIFIED_FIELD):
                continue
            print(f"{key}: {value}")
        print(f"sync status: {record.get(SYNC_STATUS_FIELD)}")
