"""Domain service interface consumed by the sync coordinator.

One service per synced table. Services own persistence, payload validation
and ownership checks; they raise DomainError subclasses tagged with an error
kind and never return error values.
"""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from ..models import SyncTable

Entity = dict[str, Any]


@runtime_checkable
class DomainService(Protocol):
    """Create/update/delete/get plus the pull query for one table."""

    async def create(
        self,
        user_id: str,
        parent_id: str | None,
        payload: dict[str, Any],
        record_id: str | None = None,
    ) -> Entity: ...

    async def update(self, user_id: str, record_id: str, payload: dict[str, Any]) -> Entity: ...

    async def delete(self, user_id: str, record_id: str) -> None: ...

    async def get_by_id(self, user_id: str, record_id: str) -> Entity: ...

    async def changed_since(self, user_id: str, since_ms: int) -> list[Entity]: ...

    async def ping(self) -> None: ...


@dataclass(frozen=True)
class DomainServices:
    """The full table -> service bundle. All six are required."""

    reptiles: DomainService
    feedings: DomainService
    sheds: DomainService
    measurements: DomainService
    environment_logs: DomainService
    photos: DomainService

    def __post_init__(self):
        missing = [f.name for f in fields(self) if getattr(self, f.name) is None]
        if missing:
            raise ValueError(f"Missing domain services: {', '.join(missing)}")

    def for_table(self, table: SyncTable) -> DomainService:
        return getattr(self, table.value)


def now_iso() -> str:
    """Entity timestamp format: ISO-8601 UTC with milliseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_epoch_ms(value: Any) -> int | None:
    """Convert an entity timestamp (ISO string, datetime or epoch ms) to epoch ms."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return None


def modified_at_ms(entity: Entity) -> int:
    """updatedAt, else createdAt (append-only tables), else 0."""
    return to_epoch_ms(entity.get("updatedAt")) or to_epoch_ms(entity.get("createdAt")) or 0
