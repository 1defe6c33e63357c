"""Pydantic models for sync API requests and responses.

Wire JSON is camelCase (recordId, clientTimestamp, serverRecord, ...); Python
attributes are snake_case and populate from either form.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Enums
# =============================================================================


class SyncTable(str, Enum):
    """The six entity tables the sync API accepts."""

    REPTILES = "reptiles"
    FEEDINGS = "feedings"
    SHEDS = "sheds"
    MEASUREMENTS = "measurements"
    ENVIRONMENT_LOGS = "environment_logs"
    PHOTOS = "photos"

    @classmethod
    def parse(cls, value: "str | SyncTable") -> "SyncTable":
        from .errors import UnsupportedTableError

        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedTableError(str(value)) from None

    @property
    def has_parent(self) -> bool:
        return self is not SyncTable.REPTILES

    @property
    def append_only(self) -> bool:
        return self in (SyncTable.ENVIRONMENT_LOGS, SyncTable.PHOTOS)

    @property
    def wire_key(self) -> str:
        """camelCase key used in pull responses."""
        head, *rest = self.value.split("_")
        return head + "".join(part.title() for part in rest)


class Operation(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ErrorType(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Sync Models
# =============================================================================


class SyncOperation(CamelModel):
    """A single queued write sent by a client."""

    operation: Operation
    record_id: str = Field(..., min_length=1)
    payload: dict[str, Any] | None = None
    client_timestamp: int | None = None  # epoch ms; server now when missing


class SyncResult(CamelModel):
    """Outcome of processing one SyncOperation."""

    success: bool
    record_id: str
    record: dict[str, Any] | None = None
    conflict: bool = False
    server_record: dict[str, Any] | None = None
    error: str | None = None
    error_type: ErrorType | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BatchSyncItem(BaseModel):
    """One entry of a batch request. The table is validated before processing."""

    table: str
    operation: SyncOperation


class BatchSyncRequest(BaseModel):
    operations: list[BatchSyncItem]


class BatchSummary(BaseModel):
    total: int
    success: int
    failed: int
    conflicts: int


class BatchSyncResponse(BaseModel):
    results: list[dict[str, Any]]
    summary: BatchSummary


class ChangesSince(CamelModel):
    """Entities changed after a cursor, grouped by table."""

    reptiles: list[dict[str, Any]] = []
    feedings: list[dict[str, Any]] = []
    sheds: list[dict[str, Any]] = []
    measurements: list[dict[str, Any]] = []
    environment_logs: list[dict[str, Any]] = []
    photos: list[dict[str, Any]] = []
    server_timestamp: int

    def for_table(self, table: SyncTable) -> list[dict[str, Any]]:
        return getattr(self, table.value)

    def summary(self) -> dict[str, int]:
        counts = {table.wire_key: len(self.for_table(table)) for table in SyncTable}
        counts["total"] = sum(counts.values())
        return counts

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="json")
        data["summary"] = self.summary()
        return data
