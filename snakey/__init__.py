"""
Snakey - offline-first sync client for reptile husbandry records.

Writes land in an on-device mirror store and a durable mutation queue; the
sync orchestrator pushes them to the server in small batches and pulls
server changes back.
"""

from snakey.config import ClientConfig, load_config
from snakey.core import Snakey
from snakey.errors import (
    ConfigError,
    QueueStateError,
    RecordNotFoundError,
    SnakeyError,
    TransportError,
    UnsupportedTableError,
)
from snakey.offline import OfflineWriter, WriteOutcome
from snakey.types import ErrorType, Operation, QueueStatus, SyncStatus, SyncTable

__version__ = "0.4.0"
__all__ = [
    "Snakey",
    "ClientConfig",
    "load_config",
    "OfflineWriter",
    "WriteOutcome",
    "SnakeyError",
    "ConfigError",
    "TransportError",
    "QueueStateError",
    "RecordNotFoundError",
    "UnsupportedTableError",
    "ErrorType",
    "Operation",
    "QueueStatus",
    "SyncStatus",
    "SyncTable",
]
