"""Mirror store: the on-device copy of every entity the user can see.

Reads are always served locally. Optimistic writes record the prior value in
mirror_undo so a terminal sync failure can be compensated with one uniform
revert() instead of per-call-site snapshots.
"""

import logging
import sqlite3
from typing import Any, Callable, Dict, Iterable, List, Optional

from snakey.types import MirrorSyncStatus, SyncTable
from snakey.utils import to_epoch_ms

from .local import LocalDatabase

logger = logging.getLogger(__name__)

SYNC_STATUS_FIELD = "_syncStatus"
LAST_MODIFIED_FIELD = "_lastModified"

MirrorRecord = Dict[str, Any]


class MirrorStore:
    """Keyed local store of MirrorRecords, one row per (table, id).

    Args:
        db: The LocalDatabase host providing connections.
    """

    def __init__(self, db: LocalDatabase):
        self._db = db

    # === Reads ===

    def get(self, table, record_id: str) -> Optional[MirrorRecord]:
        """Get one record, or None if the mirror has no copy."""
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            row = conn.execute(
                "SELECT * FROM mirror_records WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def query(
        self,
        table,
        predicate: Optional[Callable[[MirrorRecord], bool]] = None,
        reptile_id: Optional[str] = None,
    ) -> List[MirrorRecord]:
        """Return records of a table matching an optional predicate.

        reptile_id narrows child tables at the SQL level before the predicate runs.
        """
        table = SyncTable.parse(table)
        sql = "SELECT * FROM mirror_records WHERE table_name = ?"
        params: list = [table.value]
        if reptile_id is not None:
            sql += " AND reptile_id = ?"
            params.append(reptile_id)
        sql += " ORDER BY last_modified DESC, id"

        with self._db._connect() as conn:
            rows = conn.execute(sql, params).fetchall()

        records = [self._row_to_record(row) for row in rows]
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]

    def list(self, table) -> List[MirrorRecord]:
        return self.query(table)

    def count(self, table=None, status: Optional[MirrorSyncStatus] = None) -> int:
        sql = "SELECT COUNT(*) FROM mirror_records WHERE 1 = 1"
        params: list = []
        if table is not None:
            sql += " AND table_name = ?"
            params.append(SyncTable.parse(table).value)
        if status is not None:
            sql += " AND sync_status = ?"
            params.append(MirrorSyncStatus(status).value)
        with self._db._connect() as conn:
            return conn.execute(sql, params).fetchone()[0]

    # === Writes ===

    def put(
        self,
        table,
        record: MirrorRecord,
        status: MirrorSyncStatus = MirrorSyncStatus.SYNCED,
        track_undo: bool = False,
    ) -> MirrorRecord:
        """Create or overwrite one record. Never touches the network.

        With track_undo, the value the record had before its first unconfirmed
        write is kept so revert() can restore it.
        """
        table = SyncTable.parse(table)
        status = MirrorSyncStatus(status)
        if not record.get("id"):
            raise ValueError("Mirror records require an id")

        with self._db._connect() as conn:
            if track_undo:
                self._record_undo(conn, table, record["id"])
            stored = self._write(conn, table, record, status)
        return stored

    def bulk_put(
        self,
        table,
        records: Iterable[MirrorRecord],
        status: MirrorSyncStatus = MirrorSyncStatus.SYNCED,
    ) -> int:
        """Write many server records in one transaction.

        Records with an outstanding undo entry get their undo prior refreshed
        to this server version, so a later revert restores current server truth.
        """
        table = SyncTable.parse(table)
        status = MirrorSyncStatus(status)
        count = 0
        with self._db._connect() as conn:
            for record in records:
                if not record.get("id"):
                    logger.warning(f"Skipping {table.value} record without id in bulk_put")
                    continue
                stored = self._write(conn, table, record, status)
                conn.execute(
                    """UPDATE mirror_undo
                       SET existed = 1, prior_data = ?, prior_sync_status = ?,
                           prior_last_modified = ?
                       WHERE table_name = ? AND id = ?""",
                    (
                        self._db._to_json(self._strip_meta(stored)),
                        status.value,
                        stored[LAST_MODIFIED_FIELD],
                        table.value,
                        stored["id"],
                    ),
                )
                count += 1
        return count

    def delete(self, table, record_id: str, track_undo: bool = False) -> bool:
        """Remove a record. Returns True if a row was deleted."""
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            if track_undo:
                self._record_undo(conn, table, record_id)
            cursor = conn.execute(
                "DELETE FROM mirror_records WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            )
            return cursor.rowcount > 0

    def mark_deleted_optimistically(self, table, record_id: str) -> bool:
        """Delete ahead of server confirmation; revert() brings the record back."""
        return self.delete(table, record_id, track_undo=True)

    def bulk_delete(self, table, record_ids: Iterable[str]) -> int:
        table = SyncTable.parse(table)
        ids = list(record_ids)
        if not ids:
            return 0
        with self._db._connect() as conn:
            placeholders = ",".join("?" * len(ids))
            cursor = conn.execute(
                f"DELETE FROM mirror_records WHERE table_name = ? AND id IN ({placeholders})",
                [table.value, *ids],
            )
            conn.execute(
                f"DELETE FROM mirror_undo WHERE table_name = ? AND id IN ({placeholders})",
                [table.value, *ids],
            )
            return cursor.rowcount

    # === Compensating actions ===

    def has_undo(self, table, record_id: str) -> bool:
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM mirror_undo WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            ).fetchone()
        return row is not None

    def revert(self, table, record_id: str) -> bool:
        """Restore the value a record had before its unconfirmed optimistic writes.

        A record that did not exist before is removed. Returns False when no
        undo entry was recorded.
        """
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            undo = conn.execute(
                "SELECT * FROM mirror_undo WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            ).fetchone()
            if undo is None:
                return False

            if undo["existed"]:
                prior = self._db._from_json(undo["prior_data"]) or {"id": record_id}
                conn.execute(
                    """INSERT OR REPLACE INTO mirror_records
                       (table_name, id, reptile_id, data, sync_status, last_modified)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        table.value,
                        record_id,
                        prior.get("reptileId"),
                        self._db._to_json(prior),
                        undo["prior_sync_status"] or MirrorSyncStatus.SYNCED.value,
                        undo["prior_last_modified"] or self._db._now(),
                    ),
                )
            else:
                conn.execute(
                    "DELETE FROM mirror_records WHERE table_name = ? AND id = ?",
                    (table.value, record_id),
                )
            conn.execute(
                "DELETE FROM mirror_undo WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            )
        logger.info(f"Reverted optimistic write {table.value}:{record_id}")
        return True

    def commit(self, table, record_id: str) -> bool:
        """Forget the undo entry once the server has confirmed the record."""
        table = SyncTable.parse(table)
        with self._db._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM mirror_undo WHERE table_name = ? AND id = ?",
                (table.value, record_id),
            )
            return cursor.rowcount > 0

    def rebase(self, table, record: MirrorRecord) -> None:
        """Make a confirmed server version the undo target without touching the visible row.

        Used when a record still has later unconfirmed writes queued: the local
        pending copy stays visible, but a revert now lands on server truth.
        """
        table = SyncTable.parse(table)
        data = self._strip_meta(record)
        last_modified = (
            to_epoch_ms(data.get("updatedAt"))
            or to_epoch_ms(data.get("createdAt"))
            or self._db._now()
        )
        with self._db._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO mirror_undo
                   (table_name, id, existed, prior_data, prior_sync_status,
                    prior_last_modified, recorded_at)
                   VALUES (?, ?, 1, ?, ?, ?, ?)""",
                (
                    table.value,
                    data["id"],
                    self._db._to_json(data),
                    MirrorSyncStatus.SYNCED.value,
                    last_modified,
                    self._db._now(),
                ),
            )

    # === Internals ===

    def _record_undo(self, conn: sqlite3.Connection, table: SyncTable, record_id: str):
        """Capture the current value unless an earlier unconfirmed write already did."""
        existing = conn.execute(
            "SELECT 1 FROM mirror_undo WHERE table_name = ? AND id = ?",
            (table.value, record_id),
        ).fetchone()
        if existing:
            return

        row = conn.execute(
            "SELECT data, sync_status, last_modified FROM mirror_records "
            "WHERE table_name = ? AND id = ?",
            (table.value, record_id),
        ).fetchone()
        conn.execute(
            """INSERT INTO mirror_undo
               (table_name, id, existed, prior_data, prior_sync_status,
                prior_last_modified, recorded_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                table.value,
                record_id,
                1 if row else 0,
                row["data"] if row else None,
                row["sync_status"] if row else None,
                row["last_modified"] if row else None,
                self._db._now(),
            ),
        )

    def _write(
        self,
        conn: sqlite3.Connection,
        table: SyncTable,
        record: MirrorRecord,
        status: MirrorSyncStatus,
    ) -> MirrorRecord:
        data = self._strip_meta(record)
        if status == MirrorSyncStatus.SYNCED:
            last_modified = (
                to_epoch_ms(data.get("updatedAt"))
                or to_epoch_ms(data.get("createdAt"))
                or self._db._now()
            )
        else:
            last_modified = self._db._now()

        conn.execute(
            """INSERT OR REPLACE INTO mirror_records
               (table_name, id, reptile_id, data, sync_status, last_modified)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                table.value,
                data["id"],
                data.get("reptileId"),
                self._db._to_json(data),
                status.value,
                last_modified,
            ),
        )
        return {**data, SYNC_STATUS_FIELD: status.value, LAST_MODIFIED_FIELD: last_modified}

    @staticmethod
    def _strip_meta(record: MirrorRecord) -> MirrorRecord:
        return {
            k: v for k, v in record.items() if k not in (SYNC_STATUS_FIELD, LAST_MODIFIED_FIELD)
        }

    def _row_to_record(self, row: sqlite3.Row) -> MirrorRecord:
        data = self._db._from_json(row["data"]) or {"id": row["id"]}
        data[SYNC_STATUS_FIELD] = row["sync_status"]
        data[LAST_MODIFIED_FIELD] = row["last_modified"]
        return data
