"""On-device SQLite database host.

LocalDatabase owns the file path and connection handling. MirrorStore,
MutationQueue and SyncMeta receive it and share one file, but never each
other's tables.
"""

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from snakey.utils import now_ms

from .schema import init_db

logger = logging.getLogger(__name__)


class LocalDatabase:
    """Connection host for the offline SQLite file.

    Connections are opened per operation, so instances are safe to use from
    worker threads (the orchestrator runs store calls via asyncio.to_thread).

    Args:
        db_path: Path of the SQLite file. Parent directories are created.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            init_db(conn)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that commits on success, rolls back on error and always closes."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def _now(self) -> int:
        return now_ms()

    def _to_json(self, data: Any) -> Optional[str]:
        if data is None:
            return None
        return json.dumps(data, default=str)

    def _from_json(self, s: Optional[str]) -> Any:
        if not s:
            return None
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable JSON column value")
            return None


class SyncMeta:
    """Key/value sync progress: the pull cursor and the last sync time."""

    PULL_CURSOR = "pull_cursor"
    LAST_SYNC_AT = "last_sync_at"

    def __init__(self, db: LocalDatabase):
        self._db = db

    def get(self, key: str) -> Optional[str]:
        with self._db._connect() as conn:
            row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._db._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, self._db._now()),
            )

    def get_pull_cursor(self) -> int:
        """Last server timestamp a pull succeeded with (0 = never pulled)."""
        value = self.get(self.PULL_CURSOR)
        return int(value) if value else 0

    def set_pull_cursor(self, server_timestamp: int) -> None:
        self.set(self.PULL_CURSOR, str(int(server_timestamp)))

    def get_last_sync_at(self) -> Optional[int]:
        value = self.get(self.LAST_SYNC_AT)
        return int(value) if value else None

    def set_last_sync_at(self, timestamp: int) -> None:
        self.set(self.LAST_SYNC_AT, str(int(timestamp)))
