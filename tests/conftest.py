"""
Pytest fixtures and test configuration for snakey client tests.
"""

from typing import Any, Dict, List, Optional

import pytest

from snakey.config import ClientConfig
from snakey.storage import LocalDatabase, MirrorStore, MutationQueue, SyncMeta
from snakey.types import ChangesSinceResult, SyncResult, SyncTable


@pytest.fixture(autouse=True)
def snakey_home(tmp_path, monkeypatch):
    """Point the data directory (logs, config, credentials) at a temp dir."""
    home = tmp_path / "snakey-home"
    monkeypatch.setenv("SNAKEY_DATA_DIR", str(home))
    for var in (
        "SNAKEY_BACKEND_URL",
        "SNAKEY_AUTH_TOKEN",
        "SNAKEY_DB_PATH",
        "SNAKEY_BATCH_SIZE",
        "SNAKEY_SYNC_INTERVAL",
        "SNAKEY_MAX_RETRIES",
        "SNAKEY_REQUEST_TIMEOUT",
        "SNAKEY_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def db(tmp_path):
    return LocalDatabase(tmp_path / "offline.db")


@pytest.fixture
def mirror(db):
    return MirrorStore(db)


@pytest.fixture
def queue(db):
    return MutationQueue(db)


@pytest.fixture
def meta(db):
    return SyncMeta(db)


class FakeTransport:
    """In-process SyncTransport double.

    By default every operation succeeds and the server echoes the payload
    back as the stored record. Tests swap in handlers or errors as needed.
    """

    def __init__(self):
        self.batches: List[List[Any]] = []
        self.singles: List[Any] = []
        self.pulls: List[int] = []
        self.batch_handler = None
        self.single_handler = None
        self.push_error: Optional[Exception] = None
        self.pull_error: Optional[Exception] = None
        self.pull_result = ChangesSinceResult(server_timestamp=1_000, changes={})

    @staticmethod
    def echo(table: SyncTable, op) -> SyncResult:
        record: Dict[str, Any] = {**(op.payload or {}), "id": op.record_id}
        record.setdefault("updatedAt", "2024-06-01T12:00:00.000Z")
        return SyncResult(success=True, record_id=op.record_id, record=record)

    async def push_batch(self, items):
        self.batches.append(list(items))
        if self.push_error is not None:
            raise self.push_error
        if self.batch_handler is not None:
            return self.batch_handler(items)
        return [self.echo(table, op) for table, op in items]

    async def push_one(self, table, op):
        self.singles.append((table, op))
        if self.push_error is not None:
            raise self.push_error
        if self.single_handler is not None:
            return self.single_handler(table, op)
        return self.echo(table, op)

    async def pull(self, since: int):
        self.pulls.append(since)
        if self.pull_error is not None:
            raise self.pull_error
        return self.pull_result


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client_config(tmp_path):
    """A configured client pointing at a local backend."""
    return ClientConfig(
        backend_url="http://localhost:8000",
        auth_token="test-token",
        db_path=tmp_path / "client.db",
    )
