"""Mutation queue: the durable FIFO log of not-yet-confirmed local writes.

State machine:
    PENDING -> SYNCING -> SYNCED (entry removed)
                       -> FAILED
    FAILED -> PENDING  (retry policy, transient INTERNAL_ERROR only)
    FAILED -> PENDING  (user resubmit / retry_failed, any error type)

SYNCING entries are never deleted; recover_interrupted() returns entries
left in SYNCING by a crashed session to PENDING.
"""

import logging
import sqlite3
from typing import Any, Callable, Dict, Iterable, List, Optional

from snakey.errors import QueueStateError
from snakey.types import (
    ErrorType,
    Operation,
    QueueCounts,
    QueueEntry,
    QueueEvent,
    QueueStatus,
    SyncTable,
)

from .local import LocalDatabase

logger = logging.getLogger(__name__)

QueueListener = Callable[[QueueEvent], None]

MAX_ERROR_LENGTH = 500


class MutationQueue:
    """Ordered, persistent log of pending write intents.

    Args:
        db: The LocalDatabase host providing connections.
    """

    def __init__(self, db: LocalDatabase):
        self._db = db
        self._listeners: List[QueueListener] = []

    # === Listeners ===

    def subscribe(self, listener: QueueListener) -> None:
        """Register a callback invoked after every status transition."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: QueueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, entries: Iterable[QueueEntry]) -> None:
        for entry in entries:
            event = QueueEvent(
                entry_id=entry.id,
                table=entry.table,
                record_id=entry.record_id,
                status=entry.status,
                error_type=entry.error_type,
            )
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.warning(f"Queue listener failed: {e}", exc_info=True)

    # === Writes ===

    def enqueue(
        self,
        operation: Operation,
        table,
        record_id: str,
        payload: Optional[Dict[str, Any]] = None,
        client_timestamp: Optional[int] = None,
    ) -> QueueEntry:
        """Append a PENDING entry to the end of the log."""
        operation = Operation(operation)
        table = SyncTable.parse(table)
        if not record_id:
            raise ValueError("Queue entries require a record id")

        now = self._db._now()
        with self._db._connect() as conn:
            cursor = conn.execute(
                """INSERT INTO sync_queue
                   (operation, table_name, record_id, payload, status, retry_count,
                    created_at, client_timestamp)
                   VALUES (?, ?, ?, ?, ?, 0, ?, ?)""",
                (
                    operation.value,
                    table.value,
                    record_id,
                    self._db._to_json(payload),
                    QueueStatus.PENDING.value,
                    now,
                    client_timestamp or now,
                ),
            )
            entry = self._get(conn, cursor.lastrowid)

        logger.debug(f"Queued {operation.value} {table.value}:{record_id} as #{entry.id}")
        self._emit([entry])
        return entry

    def mark_syncing(self, ids: List[int]) -> List[QueueEntry]:
        """Move PENDING entries to SYNCING.

        Returns only the entries this call moved; ids that were no longer
        PENDING (removed, or claimed by another sender) are left out.
        """
        if not ids:
            return []
        with self._db._connect() as conn:
            # Take the write lock before reading so two senders cannot both see PENDING
            conn.execute("BEGIN IMMEDIATE")
            moved = [e.id for e in self._get_many(conn, ids) if e.status == QueueStatus.PENDING]
            if moved:
                placeholders = ",".join("?" * len(moved))
                conn.execute(
                    f"""UPDATE sync_queue SET status = ?, last_attempt_at = ?
                        WHERE id IN ({placeholders}) AND status = ?""",
                    [
                        QueueStatus.SYNCING.value,
                        self._db._now(),
                        *moved,
                        QueueStatus.PENDING.value,
                    ],
                )
            entries = self._get_many(conn, moved)

        self._emit(entries)
        return entries

    def mark_synced(self, entry_id: int) -> bool:
        """Confirm an entry: it is removed from the log."""
        with self._db._connect() as conn:
            entry = self._get(conn, entry_id)
            if entry is None:
                return False
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))

        entry.status = QueueStatus.SYNCED
        self._emit([entry])
        return True

    def mark_failed(
        self,
        entry_id: int,
        error: str,
        error_type: ErrorType = ErrorType.INTERNAL_ERROR,
    ) -> Optional[QueueEntry]:
        """Record a failure. retry_count is left alone; only a retry increments it."""
        error_type = ErrorType(error_type)
        with self._db._connect() as conn:
            conn.execute(
                """UPDATE sync_queue
                   SET status = ?, last_error = ?, error_type = ?, last_attempt_at = ?
                   WHERE id = ?""",
                (
                    QueueStatus.FAILED.value,
                    (error or error_type.value)[:MAX_ERROR_LENGTH],
                    error_type.value,
                    self._db._now(),
                    entry_id,
                ),
            )
            entry = self._get(conn, entry_id)

        if entry is not None:
            self._emit([entry])
        return entry

    def requeue_retryable(
        self,
        max_retries: int,
        backoff: Optional[Callable[[int], float]] = None,
        now: Optional[int] = None,
    ) -> int:
        """Move transient FAILED entries back to PENDING, incrementing retry_count.

        Entries at max_retries stay FAILED. With a backoff function (retry
        count -> seconds), an entry waits that long after its last attempt.
        """
        now = now if now is not None else self._db._now()
        with self._db._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM sync_queue
                   WHERE status = ? AND error_type = ? AND retry_count < ?
                   ORDER BY id""",
                (QueueStatus.FAILED.value, ErrorType.INTERNAL_ERROR.value, max_retries),
            ).fetchall()

            ready = []
            for row in rows:
                entry = self._row_to_entry(row)
                if backoff is not None and entry.last_attempt_at is not None:
                    wait_ms = int(backoff(entry.retry_count) * 1000)
                    if entry.last_attempt_at + wait_ms > now:
                        continue
                ready.append(entry.id)

            if ready:
                placeholders = ",".join("?" * len(ready))
                conn.execute(
                    f"""UPDATE sync_queue
                        SET status = ?, retry_count = retry_count + 1
                        WHERE id IN ({placeholders})""",
                    [QueueStatus.PENDING.value, *ready],
                )
            entries = self._get_many(conn, ready)

        if ready:
            logger.info(f"Requeued {len(ready)} transient failures for retry")
        self._emit(entries)
        return len(ready)

    def retry_failed(self, ids: Optional[List[int]] = None) -> int:
        """User-initiated retry: FAILED entries of any type go back to PENDING."""
        sql = """UPDATE sync_queue
                 SET status = ?, retry_count = 0, last_error = NULL, error_type = NULL
                 WHERE status = ?"""
        params: list = [QueueStatus.PENDING.value, QueueStatus.FAILED.value]
        if ids:
            sql += f" AND id IN ({','.join('?' * len(ids))})"
            params.extend(ids)

        with self._db._connect() as conn:
            if ids:
                affected = [e.id for e in self._get_many(conn, ids) if e.status == QueueStatus.FAILED]
            else:
                affected = [
                    row["id"]
                    for row in conn.execute(
                        "SELECT id FROM sync_queue WHERE status = ?", (QueueStatus.FAILED.value,)
                    ).fetchall()
                ]
            conn.execute(sql, params)
            entries = self._get_many(conn, affected)

        self._emit(entries)
        return len(entries)

    def resubmit(self, entry_id: int, payload: Optional[Dict[str, Any]]) -> QueueEntry:
        """Replace a FAILED entry's payload after a user edit and make it PENDING again.

        The client timestamp moves to now: the edit is a fresh intent.
        """
        now = self._db._now()
        with self._db._connect() as conn:
            entry = self._get(conn, entry_id)
            if entry is None:
                raise QueueStateError(f"Queue entry #{entry_id} does not exist")
            if entry.status != QueueStatus.FAILED:
                raise QueueStateError(
                    f"Only FAILED entries can be resubmitted (#{entry_id} is {entry.status.value})"
                )
            conn.execute(
                """UPDATE sync_queue
                   SET payload = ?, status = ?, retry_count = 0, last_error = NULL,
                       error_type = NULL, client_timestamp = ?
                   WHERE id = ?""",
                (self._db._to_json(payload), QueueStatus.PENDING.value, now, entry_id),
            )
            entry = self._get(conn, entry_id)

        self._emit([entry])
        return entry

    def recover_interrupted(self) -> int:
        """Return entries stuck in SYNCING (crashed session) to PENDING."""
        with self._db._connect() as conn:
            ids = [
                row["id"]
                for row in conn.execute(
                    "SELECT id FROM sync_queue WHERE status = ?", (QueueStatus.SYNCING.value,)
                ).fetchall()
            ]
            if ids:
                conn.execute(
                    "UPDATE sync_queue SET status = ? WHERE status = ?",
                    (QueueStatus.PENDING.value, QueueStatus.SYNCING.value),
                )
            entries = self._get_many(conn, ids)

        if ids:
            logger.warning(f"Recovered {len(ids)} entries interrupted mid-sync")
        self._emit(entries)
        return len(ids)

    def remove(self, entry_id: int) -> bool:
        """Drop an entry the user abandoned. SYNCING entries cannot be removed."""
        with self._db._connect() as conn:
            entry = self._get(conn, entry_id)
            if entry is None:
                return False
            if entry.status == QueueStatus.SYNCING:
                raise QueueStateError(f"Queue entry #{entry_id} is syncing and cannot be removed")
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))
        return True

    def clear_table(self, table) -> int:
        """Drop every non-SYNCING entry for one table."""
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM sync_queue WHERE table_name = ? AND status != ?",
                (table.value, QueueStatus.SYNCING.value),
            )
            return cursor.rowcount

    # === Reads ===

    def get(self, entry_id: int) -> Optional[QueueEntry]:
        with self._db._connect() as conn:
            return self._get(conn, entry_id)

    def list_pending(self, limit: Optional[int] = None) -> List[QueueEntry]:
        """PENDING entries in FIFO insertion order."""
        return self._list_by_status(QueueStatus.PENDING, limit)

    def list_syncing(self) -> List[QueueEntry]:
        return self._list_by_status(QueueStatus.SYNCING, None)

    def list_failed(
        self, terminal: Optional[bool] = None, max_retries: Optional[int] = None
    ) -> List[QueueEntry]:
        """FAILED entries; terminal=True/False narrows to user-action or auto-retry failures.

        With max_retries, transient failures that exhausted their retries count
        as terminal, matching counts().
        """
        entries = self._list_by_status(QueueStatus.FAILED, None)
        if terminal is None:
            return entries
        return [e for e in entries if self._needs_user_action(e, max_retries) == terminal]

    def list_for_record(self, table, record_id: str) -> List[QueueEntry]:
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_queue WHERE table_name = ? AND record_id = ? ORDER BY id",
                (table.value, record_id),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def pending_count(self) -> int:
        return self.counts().pending

    def failed_count(self) -> int:
        return self.counts().failed

    def counts(self, max_retries: Optional[int] = None) -> QueueCounts:
        """Status counts, derived purely from entry statuses.

        With max_retries, transient failures that exhausted their retries count
        as terminal: they will not be retried without user action.
        """
        with self._db._connect() as conn:
            rows = conn.execute(
                """SELECT status, error_type, retry_count, COUNT(*) AS count
                   FROM sync_queue GROUP BY status, error_type, retry_count"""
            ).fetchall()

        counts = QueueCounts()
        for row in rows:
            status = row["status"]
            if status == QueueStatus.PENDING.value:
                counts.pending += row["count"]
            elif status == QueueStatus.SYNCING.value:
                counts.syncing += row["count"]
            elif status == QueueStatus.FAILED.value:
                error_type = row["error_type"]
                transient = error_type is None or error_type == ErrorType.INTERNAL_ERROR.value
                exhausted = max_retries is not None and row["retry_count"] >= max_retries
                if transient and not exhausted:
                    counts.failed_transient += row["count"]
                else:
                    counts.failed_terminal += row["count"]
        return counts

    # === Internals ===

    @staticmethod
    def _needs_user_action(entry: QueueEntry, max_retries: Optional[int]) -> bool:
        if entry.is_terminal_failure:
            return True
        return max_retries is not None and entry.retry_count >= max_retries

    def _list_by_status(self, status: QueueStatus, limit: Optional[int]) -> List[QueueEntry]:
        sql = "SELECT * FROM sync_queue WHERE status = ? ORDER BY id"
        params: list = [status.value]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._db._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _get(self, conn: sqlite3.Connection, entry_id: int) -> Optional[QueueEntry]:
        row = conn.execute("SELECT * FROM sync_queue WHERE id = ?", (entry_id,)).fetchone()
        return self._row_to_entry(row) if row else None

    def _get_many(self, conn: sqlite3.Connection, ids: List[int]) -> List[QueueEntry]:
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        rows = conn.execute(
            f"SELECT * FROM sync_queue WHERE id IN ({placeholders}) ORDER BY id", list(ids)
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: sqlite3.Row) -> QueueEntry:
        return QueueEntry(
            id=row["id"],
            operation=Operation(row["operation"]),
            table=SyncTable(row["table_name"]),
            record_id=row["record_id"],
            payload=self._db._from_json(row["payload"]),
            status=QueueStatus(row["status"]),
            retry_count=row["retry_count"] or 0,
            created_at=row["created_at"],
            client_timestamp=row["client_timestamp"],
            last_error=row["last_error"],
            error_type=ErrorType(row["error_type"]) if row["error_type"] else None,
            last_attempt_at=row["last_attempt_at"],
        )
