"""Server-side sync: conflict detection and operation coordination."""

from .conflict import ConflictResolver
from .coordinator import BATCH_SIZE, SyncCoordinator

__all__ = ["BATCH_SIZE", "ConflictResolver", "SyncCoordinator"]
