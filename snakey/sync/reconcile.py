"""Apply server SyncResults back onto the mutation queue and the mirror store.

Shared by the orchestrator's push phase and the offline writer's direct
online path, so both reconcile a result the same way.
"""

import logging
from enum import Enum

from snakey.storage import MirrorStore, MutationQueue
from snakey.types import ErrorType, MirrorSyncStatus, Operation, QueueEntry, QueueStatus, SyncResult

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SYNCED = "synced"
    CONFLICT = "conflict"
    TERMINAL = "terminal"
    TRANSIENT = "transient"


class ResultApplier:
    """Reconciles one SyncResult for one queue entry.

    Args:
        queue: The mutation queue owning the entry.
        mirror: The mirror store holding the optimistic copy.
    """

    def __init__(self, queue: MutationQueue, mirror: MirrorStore):
        self._queue = queue
        self._mirror = mirror

    def apply(self, entry: QueueEntry, result: SyncResult) -> Outcome:
        if result.success:
            self._apply_success(entry, result)
            return Outcome.SYNCED

        if result.conflict:
            self._queue.mark_failed(
                entry.id,
                result.error or "Conflict detected - server record is newer",
                ErrorType.CONFLICT,
            )
            # Server wins: the whole client payload is discarded
            if result.server_record:
                self._mirror.put(entry.table, result.server_record, MirrorSyncStatus.SYNCED)
            self._mirror.commit(entry.table, entry.record_id)
            logger.info(f"Conflict on {entry.table.value}:{entry.record_id}, server version kept")
            return Outcome.CONFLICT

        error_type = result.error_type or ErrorType.INTERNAL_ERROR
        self._queue.mark_failed(entry.id, result.error or error_type.value, error_type)
        if error_type.is_terminal:
            self._mirror.revert(entry.table, entry.record_id)
            logger.warning(
                f"Terminal sync failure {error_type.value} for "
                f"{entry.operation.value} {entry.table.value}:{entry.record_id}: {result.error}"
            )
            return Outcome.TERMINAL

        logger.info(
            f"Transient sync failure for {entry.table.value}:{entry.record_id}: {result.error}"
        )
        return Outcome.TRANSIENT

    def apply_transport_failure(self, entry: QueueEntry, error: str) -> None:
        """A whole batch failed in transit; the entry stays eligible for retry."""
        self._queue.mark_failed(entry.id, error, ErrorType.INTERNAL_ERROR)

    def _apply_success(self, entry: QueueEntry, result: SyncResult) -> None:
        self._queue.mark_synced(entry.id)

        if entry.operation == Operation.DELETE:
            self._mirror.delete(entry.table, entry.record_id)
            self._mirror.commit(entry.table, entry.record_id)
            return

        record = result.record
        if self._has_later_writes(entry):
            # Keep the newer local copy visible; a revert now lands on this version
            if record:
                self._mirror.rebase(entry.table, record)
            return

        if record:
            self._mirror.put(entry.table, record, MirrorSyncStatus.SYNCED)
        self._mirror.commit(entry.table, entry.record_id)

    def _has_later_writes(self, entry: QueueEntry) -> bool:
        for other in self._queue.list_for_record(entry.table, entry.record_id):
            if other.id == entry.id:
                continue
            if other.status in (QueueStatus.PENDING, QueueStatus.SYNCING):
                return True
            if other.status == QueueStatus.FAILED and not other.is_terminal_failure:
                return True
        return False
