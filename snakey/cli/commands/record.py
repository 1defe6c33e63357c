"""Record commands: optimistic create/update/delete through the offline writer."""

import asyncio
import json
import sys
from typing import TYPE_CHECKING, Any, Dict

from snakey.offline import WriteOutcome
from snakey.sync.reconcile import Outcome

if TYPE_CHECKING:
    from snakey import Snakey


def _parse_fields(args) -> Dict[str, Any]:
    """Build a payload from --data JSON plus repeated --set key=value pairs."""
    payload: Dict[str, Any] = {}
    if getattr(args, "data", None):
        try:
            data = json.loads(args.data)
        except json.JSONDecodeError as e:
            raise ValueError(f"--data is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("--data must be a JSON object")
        payload.update(data)

    for pair in getattr(args, "set", None) or []:
        if "=" not in pair:
            raise ValueError(f"--set expects key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        try:
            payload[key] = json.loads(raw)
        except json.JSONDecodeError:
            payload[key] = raw
    return payload


def _report(action: str, result: WriteOutcome, as_json: bool) -> None:
    if as_json:
        print(
            json.dumps(
                {
                    "recordId": result.record_id,
                    "entryId": result.entry_id,
                    "outcome": result.outcome.value if result.outcome else "queued",
                    "record": result.record,
                },
                indent=2,
                default=str,
            )
        )
        return

    if result.outcome == Outcome.SYNCED:
        print(f"✓ {action} {result.record_id} (synced)")
    elif result.outcome == Outcome.CONFLICT:
        print(f"⚔ {action} {result.record_id} lost to a newer server version")
    elif result.outcome == Outcome.TERMINAL:
        print(f"✗ {action} {result.record_id} rejected by server; local change reverted")
        print("  Run `snakey sync failed` for details")
    else:
        print(f"✓ {action} {result.record_id} (queued, will sync later)")


def cmd_record(args, s: "Snakey"):
    """Handle record subcommands."""
    if args.offline:
        s.set_online(False)

    async def _run() -> WriteOutcome:
        try:
            if args.record_action == "create":
                return await s.writer.create(args.table, _parse_fields(args), record_id=args.id)
            if args.record_action == "update":
                return await s.writer.update(args.table, args.record_id, _parse_fields(args))
            return await s.writer.delete(args.table, args.record_id)
        finally:
            await s.aclose()

    result = asyncio.run(_run())
    _report(args.record_action.capitalize() + "d", result, args.json)
    if result.outcome == Outcome.TERMINAL:
        sys.exit(1)
