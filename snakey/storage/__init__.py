"""Snakey on-device storage.

One SQLite file holds the mirror store, the mutation queue and sync metadata.
"""

from .local import LocalDatabase, SyncMeta
from .mirror import LAST_MODIFIED_FIELD, SYNC_STATUS_FIELD, MirrorRecord, MirrorStore
from .queue import MutationQueue, QueueListener

__all__ = [
    "LocalDatabase",
    "SyncMeta",
    "MirrorStore",
    "MirrorRecord",
    "MutationQueue",
    "QueueListener",
    "SYNC_STATUS_FIELD",
    "LAST_MODIFIED_FIELD",
]
