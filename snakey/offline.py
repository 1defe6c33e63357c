"""Optimistic write path: what a UI action calls to change an entity.

Every write lands in the mirror store first (marked pending, with undo
tracking) and in the mutation queue. When the device is online and nothing
older is still waiting to sync, the entry is also sent right away through
POST /sync/{table}; otherwise the orchestrator picks it up on its next tick.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from snakey.errors import RecordNotFoundError, TransportError
from snakey.storage import MirrorRecord, MirrorStore, MutationQueue
from snakey.storage.mirror import LAST_MODIFIED_FIELD, SYNC_STATUS_FIELD
from snakey.sync.client import SyncTransport
from snakey.sync.reconcile import Outcome, ResultApplier
from snakey.types import MirrorSyncStatus, Operation, QueueEntry, QueueStatus, SyncTable
from snakey.utils import now_ms

logger = logging.getLogger(__name__)


@dataclass
class WriteOutcome:
    """What the caller sees after an optimistic write.

    record is the mirror copy after the write (None once deleted or reverted).
    outcome is None when the entry was only queued.
    """

    record_id: str
    entry_id: Optional[int]
    record: Optional[MirrorRecord] = None
    outcome: Optional[Outcome] = None

    @property
    def queued(self) -> bool:
        return self.outcome is None or self.outcome == Outcome.TRANSIENT


class OfflineWriter:
    """Applies user writes optimistically and routes them to the server.

    Args:
        mirror: The mirror store the UI reads from.
        queue: The mutation queue.
        transport: Server access for direct online writes.
        is_online: Connectivity probe (usually the orchestrator's `online`).
        max_retries: Retry budget for transient failures; exhausted ones no
            longer hold back direct sends.
    """

    def __init__(
        self,
        mirror: MirrorStore,
        queue: MutationQueue,
        transport: SyncTransport,
        is_online: Callable[[], bool],
        max_retries: Optional[int] = None,
    ):
        self._mirror = mirror
        self._queue = queue
        self._transport = transport
        self._is_online = is_online
        self._max_retries = max_retries
        self._applier = ResultApplier(queue, mirror)

    async def create(
        self,
        table,
        payload: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> WriteOutcome:
        """Create an entity with a client-generated id."""
        table = SyncTable.parse(table)
        if table.has_parent and not payload.get("reptileId"):
            raise ValueError(f"reptileId is required to create {table.value}")

        record_id = record_id or str(uuid.uuid4())
        body = {**payload, "id": record_id}

        def _write() -> QueueEntry:
            self._mirror.put(table, body, MirrorSyncStatus.PENDING, track_undo=True)
            return self._queue.enqueue(
                Operation.CREATE, table, record_id, body, client_timestamp=now_ms()
            )

        entry = await asyncio.to_thread(_write)
        return await self._dispatch(entry)

    async def update(self, table, record_id: str, changes: Dict[str, Any]) -> WriteOutcome:
        """Merge changes onto the mirror copy and sync them."""
        table = SyncTable.parse(table)

        def _write() -> QueueEntry:
            current = self._mirror.get(table, record_id)
            if current is None:
                raise RecordNotFoundError(f"{table.value}:{record_id} is not in the mirror")
            merged = {
                **_strip_meta(current),
                **{k: v for k, v in changes.items() if k != "id"},
                "id": record_id,
            }
            self._mirror.put(table, merged, MirrorSyncStatus.PENDING, track_undo=True)
            return self._queue.enqueue(
                Operation.UPDATE, table, record_id, dict(changes), client_timestamp=now_ms()
            )

        entry = await asyncio.to_thread(_write)
        return await self._dispatch(entry)

    async def delete(self, table, record_id: str) -> WriteOutcome:
        """Remove the mirror copy (revertible) and sync the delete."""
        table = SyncTable.parse(table)

        def _write() -> QueueEntry:
            self._mirror.mark_deleted_optimistically(table, record_id)
            return self._queue.enqueue(
                Operation.DELETE, table, record_id, None, client_timestamp=now_ms()
            )

        entry = await asyncio.to_thread(_write)
        return await self._dispatch(entry)

    async def resubmit(self, entry_id: int, payload: Optional[Dict[str, Any]]) -> WriteOutcome:
        """Retry a failed entry with a user-edited payload."""

        def _write() -> QueueEntry:
            entry = self._queue.resubmit(entry_id, payload)
            if entry.operation == Operation.DELETE:
                self._mirror.mark_deleted_optimistically(entry.table, entry.record_id)
                return entry

            current = self._mirror.get(entry.table, entry.record_id) or {}
            merged = {**_strip_meta(current), **(payload or {}), "id": entry.record_id}
            self._mirror.put(entry.table, merged, MirrorSyncStatus.PENDING, track_undo=True)
            return entry

        entry = await asyncio.to_thread(_write)
        return await self._dispatch(entry)

    # === Internals ===

    async def _dispatch(self, entry: QueueEntry) -> WriteOutcome:
        outcome = None
        if self._is_online() and await asyncio.to_thread(self._is_next_in_line, entry):
            outcome = await self._push_now(entry)

        record = await asyncio.to_thread(self._mirror.get, entry.table, entry.record_id)
        return WriteOutcome(
            record_id=entry.record_id, entry_id=entry.id, record=record, outcome=outcome
        )

    def _is_next_in_line(self, entry: QueueEntry) -> bool:
        """A direct send may not overtake older outstanding entries.

        Child creates depend on their reptile reaching the server first, so the
        check spans the whole queue rather than just this record.
        """
        for pending in self._queue.list_pending(limit=1):
            if pending.id != entry.id:
                return False
        if self._queue.list_syncing():
            return False
        return not self._queue.list_failed(terminal=False, max_retries=self._max_retries)

    async def _push_now(self, entry: QueueEntry) -> Optional[Outcome]:
        claimed = await asyncio.to_thread(self._queue.mark_syncing, [entry.id])
        if not claimed:
            # The orchestrator got there first
            return None
        entry = claimed[0]

        try:
            result = await self._transport.push_one(entry.table, entry.to_sync_operation())
        except TransportError as e:
            logger.info(
                f"Direct sync of {entry.table.value}:{entry.record_id} failed, left queued: {e}"
            )
            await asyncio.to_thread(self._applier.apply_transport_failure, entry, str(e))
            return Outcome.TRANSIENT
        except Exception as e:
            logger.error(
                f"Direct sync of {entry.table.value}:{entry.record_id} raised unexpectedly: {e}",
                exc_info=True,
            )
            await asyncio.to_thread(
                self._applier.apply_transport_failure, entry, f"Unexpected sync error: {e}"
            )
            return Outcome.TRANSIENT

        return await asyncio.to_thread(self._applier.apply, entry, result)


def _strip_meta(record: MirrorRecord) -> MirrorRecord:
    return {k: v for k, v in record.items() if k not in (SYNC_STATUS_FIELD, LAST_MODIFIED_FIELD)}


def entry_summary(entry: QueueEntry) -> str:
    """One-line description of a queue entry for CLI and log output."""
    parts = [f"#{entry.id}", entry.operation.value, f"{entry.table.value}:{entry.record_id}"]
    parts.append(entry.status.value)
    if entry.status == QueueStatus.FAILED:
        parts.append(f"[{entry.error_type.value if entry.error_type else 'UNKNOWN'}]")
        if entry.retry_count:
            parts.append(f"retries={entry.retry_count}")
        if entry.last_error:
            parts.append(entry.last_error)
    return " ".join(parts)
