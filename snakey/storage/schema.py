"""Database schema for the snakey on-device SQLite file.

Contains:
- Schema DDL (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Database initialization (init_db)
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2  # v2: undo log for optimistic mirror writes

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Last-known copy of every entity the user can see, one row per (table, id)
CREATE TABLE IF NOT EXISTS mirror_records (
    table_name TEXT NOT NULL,
    id TEXT NOT NULL,
    reptile_id TEXT,  -- parent id for child tables, NULL for reptiles
    data TEXT NOT NULL,  -- JSON object with the full field set
    sync_status TEXT NOT NULL DEFAULT 'synced',  -- synced | pending
    last_modified INTEGER NOT NULL,  -- epoch ms
    PRIMARY KEY (table_name, id)
);
CREATE INDEX IF NOT EXISTS idx_mirror_reptile ON mirror_records(table_name, reptile_id);
CREATE INDEX IF NOT EXISTS idx_mirror_status ON mirror_records(sync_status);

-- Prior value of a record before its first unconfirmed optimistic write
CREATE TABLE IF NOT EXISTS mirror_undo (
    table_name TEXT NOT NULL,
    id TEXT NOT NULL,
    existed INTEGER NOT NULL,  -- 0 = record was absent before the write
    prior_data TEXT,
    prior_sync_status TEXT,
    prior_last_modified INTEGER,
    recorded_at INTEGER NOT NULL,
    PRIMARY KEY (table_name, id)
);

-- Ordered log of write intents not yet confirmed by the server
CREATE TABLE IF NOT EXISTS sync_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    operation TEXT NOT NULL,  -- CREATE, UPDATE, DELETE
    table_name TEXT NOT NULL,
    record_id TEXT NOT NULL,
    payload TEXT,  -- JSON payload, NULL for DELETE
    status TEXT NOT NULL DEFAULT 'PENDING',  -- PENDING, SYNCING, FAILED, SYNCED
    retry_count INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    client_timestamp INTEGER NOT NULL,
    last_error TEXT,
    error_type TEXT,
    last_attempt_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(status);
CREATE INDEX IF NOT EXISTS idx_sync_queue_table ON sync_queue(table_name);
CREATE INDEX IF NOT EXISTS idx_sync_queue_record ON sync_queue(record_id);

-- Durable sync progress (pull cursor, last sync time)
CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables and record the schema version."""
    conn.executescript(SCHEMA)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row and row[0] is not None else 0
    if current < SCHEMA_VERSION:
        conn.execute("INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info(f"Offline database at schema version {SCHEMA_VERSION} (was {current})")
