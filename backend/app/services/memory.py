"""Dict-backed entity store for local development and the test-suite."""

import copy

from ..models import SyncTable
from .base import DomainServices, Entity, modified_at_ms
from .entity import build_services


class InMemoryEntityStore:
    """Keeps every table in a dict keyed by id. Rows are copied in and out."""

    def __init__(self):
        self.tables: dict[SyncTable, dict[str, Entity]] = {table: {} for table in SyncTable}

    async def fetch(self, table: SyncTable, record_id: str) -> Entity | None:
        row = self.tables[table].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def save(self, table: SyncTable, entity: Entity) -> Entity:
        self.tables[table][entity["id"]] = copy.deepcopy(entity)
        return copy.deepcopy(entity)

    async def remove(self, table: SyncTable, record_id: str) -> None:
        self.tables[table].pop(record_id, None)

    async def reptile_ids_for_user(self, user_id: str) -> list[str]:
        return [
            row["id"]
            for row in self.tables[SyncTable.REPTILES].values()
            if row.get("userId") == user_id
        ]

    async def changed_since(
        self,
        table: SyncTable,
        since_ms: int,
        user_id: str | None = None,
        reptile_ids: list[str] | None = None,
    ) -> list[Entity]:
        allowed = set(reptile_ids) if reptile_ids is not None else None
        rows = []
        for row in self.tables[table].values():
            if user_id is not None and row.get("userId") != user_id:
                continue
            if allowed is not None and row.get("reptileId") not in allowed:
                continue
            if modified_at_ms(row) > since_ms:
                rows.append(copy.deepcopy(row))
        rows.sort(key=modified_at_ms)
        return rows

    async def clear_primary_photos(self, reptile_id: str, except_id: str) -> None:
        for row in self.tables[SyncTable.PHOTOS].values():
            if row.get("reptileId") == reptile_id and row["id"] != except_id:
                row["isPrimary"] = False

    async def ping(self) -> None:
        return None


def build_memory_services(store: InMemoryEntityStore | None = None) -> DomainServices:
    return build_services(store or InMemoryEntityStore())
