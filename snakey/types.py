"""
Shared sync types for snakey.

These are the vocabulary between the local stores, the orchestrator and the
HTTP transport. Wire shapes use camelCase keys; the dataclasses here use
snake_case and convert at the edges (to_wire / from_wire).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from snakey.errors import UnsupportedTableError

# === Enums ===


class SyncTable(str, Enum):
    """The six entity tables the sync core knows about."""

    REPTILES = "reptiles"
    FEEDINGS = "feedings"
    SHEDS = "sheds"
    MEASUREMENTS = "measurements"
    ENVIRONMENT_LOGS = "environment_logs"
    PHOTOS = "photos"

    @classmethod
    def parse(cls, value: "str | SyncTable") -> "SyncTable":
        """Parse a table name, raising UnsupportedTableError for anything outside the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedTableError(f"Unsupported table: {value}") from None

    @property
    def has_parent(self) -> bool:
        return self is not SyncTable.REPTILES

    @property
    def append_only(self) -> bool:
        """Append-only logs carry createdAt but no updatedAt."""
        return self in (SyncTable.ENVIRONMENT_LOGS, SyncTable.PHOTOS)


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class QueueStatus(str, Enum):
    """Lifecycle of a queue entry: PENDING -> SYNCING -> {SYNCED, FAILED}."""

    PENDING = "PENDING"
    SYNCING = "SYNCING"
    FAILED = "FAILED"
    SYNCED = "SYNCED"


class ErrorType(str, Enum):
    """Error taxonomy shared with the server."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def is_terminal(self) -> bool:
        """Terminal failures need user action; only INTERNAL_ERROR auto-retries."""
        return self is not ErrorType.INTERNAL_ERROR


class MirrorSyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"


# === Queue Types ===


@dataclass
class QueueEntry:
    """A pending write intent owned by the mutation queue."""

    id: int
    operation: Operation
    table: SyncTable
    record_id: str
    payload: Optional[Dict[str, Any]] = None
    status: QueueStatus = QueueStatus.PENDING
    retry_count: int = 0
    created_at: int = 0  # epoch ms
    client_timestamp: int = 0  # epoch ms of the local edit
    last_error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    last_attempt_at: Optional[int] = None

    @property
    def is_terminal_failure(self) -> bool:
        return (
            self.status == QueueStatus.FAILED
            and self.error_type is not None
            and self.error_type.is_terminal
        )

    def to_sync_operation(self) -> "SyncOperation":
        """Build the stateless wire request for this entry at send time."""
        return SyncOperation(
            operation=self.operation,
            record_id=self.record_id,
            payload=self.payload,
            client_timestamp=self.client_timestamp or self.created_at,
        )


@dataclass
class QueueEvent:
    """Emitted by the mutation queue on every status transition."""

    entry_id: int
    table: SyncTable
    record_id: str
    status: QueueStatus
    error_type: Optional[ErrorType] = None


@dataclass
class QueueCounts:
    pending: int = 0
    syncing: int = 0
    failed_terminal: int = 0
    failed_transient: int = 0

    @property
    def failed(self) -> int:
        return self.failed_terminal + self.failed_transient


# === Wire Types ===


@dataclass
class SyncOperation:
    """Wire request for a single queued write."""

    operation: Operation
    record_id: str
    payload: Optional[Dict[str, Any]]
    client_timestamp: int

    def to_wire(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "recordId": self.record_id,
            "payload": self.payload,
            "clientTimestamp": self.client_timestamp,
        }


@dataclass
class SyncResult:
    """Wire response for one processed operation."""

    success: bool
    record_id: str
    record: Optional[Dict[str, Any]] = None
    conflict: bool = False
    server_record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "SyncResult":
        error_type = data.get("errorType")
        conflict = bool(data.get("conflict"))
        if conflict and error_type is None:
            error_type = ErrorType.CONFLICT.value
        return cls(
            success=bool(data.get("success")),
            record_id=data.get("recordId", ""),
            record=data.get("record"),
            conflict=conflict,
            server_record=data.get("serverRecord"),
            error=data.get("error"),
            error_type=ErrorType(error_type) if error_type else None,
        )


@dataclass
class ChangesSinceResult:
    """Pull response: per-table entity lists plus the next cursor."""

    server_timestamp: int
    changes: Dict[SyncTable, List[Dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "ChangesSinceResult":
        changes = {table: list(data.get(_wire_table_key(table)) or []) for table in SyncTable}
        return cls(server_timestamp=int(data["serverTimestamp"]), changes=changes)

    @property
    def total(self) -> int:
        return sum(len(records) for records in self.changes.values())


def _wire_table_key(table: SyncTable) -> str:
    """Pull responses key tables in camelCase (environment_logs -> environmentLogs)."""
    head, *rest = table.value.split("_")
    return head + "".join(part.title() for part in rest)


# === Orchestrator Types ===


@dataclass
class TickResult:
    """Outcome of one orchestrator tick."""

    pushed: int = 0
    failed: int = 0
    conflicts: int = 0
    pulled: int = 0
    batches: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors


@dataclass
class SyncStatus:
    """Client-visible sync indicator state."""

    online: bool
    syncing: bool
    pending: int
    failed_terminal: int
    failed_transient: int
    last_pull_cursor: int
    last_sync_at: Optional[int] = None

    @property
    def failed(self) -> int:
        return self.failed_terminal + self.failed_transient

    @property
    def has_pending_changes(self) -> bool:
        return self.pending > 0

    @property
    def has_failed_changes(self) -> bool:
        return self.failed > 0

    @property
    def needs_user_action(self) -> bool:
        return self.failed_terminal > 0
