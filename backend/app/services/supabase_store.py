"""Supabase-backed entity store.

The supabase client is synchronous; every query runs via asyncio.to_thread.
Columns are camelCase (id, userId, reptileId, createdAt, updatedAt, deletedAt).
"""

import asyncio
from datetime import datetime, timezone

from supabase import Client

from ..database import (
    ENVIRONMENT_LOGS_TABLE,
    FEEDINGS_TABLE,
    MEASUREMENTS_TABLE,
    PHOTOS_TABLE,
    REPTILES_TABLE,
    SHEDS_TABLE,
)
from ..models import SyncTable
from .base import DomainServices, Entity
from .entity import build_services

TABLE_NAMES = {
    SyncTable.REPTILES: REPTILES_TABLE,
    SyncTable.FEEDINGS: FEEDINGS_TABLE,
    SyncTable.SHEDS: SHEDS_TABLE,
    SyncTable.MEASUREMENTS: MEASUREMENTS_TABLE,
    SyncTable.ENVIRONMENT_LOGS: ENVIRONMENT_LOGS_TABLE,
    SyncTable.PHOTOS: PHOTOS_TABLE,
}


def _ms_to_iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")


class SupabaseEntityStore:
    """EntityStore over a Supabase (PostgREST) client."""

    def __init__(self, db: Client):
        self.db = db

    async def fetch(self, table: SyncTable, record_id: str) -> Entity | None:
        def _query():
            return (
                self.db.table(TABLE_NAMES[table])
                .select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return result.data[0] if result.data else None

    async def save(self, table: SyncTable, entity: Entity) -> Entity:
        def _upsert():
            return self.db.table(TABLE_NAMES[table]).upsert(entity, on_conflict="id").execute()

        result = await asyncio.to_thread(_upsert)
        if not result.data:
            raise RuntimeError(f"Upsert into {table.value} returned no row for {entity['id']}")
        return result.data[0]

    async def remove(self, table: SyncTable, record_id: str) -> None:
        def _delete():
            return self.db.table(TABLE_NAMES[table]).delete().eq("id", record_id).execute()

        await asyncio.to_thread(_delete)

    async def reptile_ids_for_user(self, user_id: str) -> list[str]:
        def _query():
            return (
                self.db.table(REPTILES_TABLE)
                .select("id")
                .eq("userId", user_id)
                .execute()
            )

        result = await asyncio.to_thread(_query)
        return [row["id"] for row in result.data or []]

    async def changed_since(
        self,
        table: SyncTable,
        since_ms: int,
        user_id: str | None = None,
        reptile_ids: list[str] | None = None,
    ) -> list[Entity]:
        column = "createdAt" if table.append_only else "updatedAt"

        def _query():
            query = self.db.table(TABLE_NAMES[table]).select("*").gt(column, _ms_to_iso(since_ms))
            if user_id is not None:
                query = query.eq("userId", user_id)
            if reptile_ids is not None:
                query = query.in_("reptileId", reptile_ids)
            return query.order(column).execute()

        result = await asyncio.to_thread(_query)
        return result.data or []

    async def clear_primary_photos(self, reptile_id: str, except_id: str) -> None:
        def _update():
            return (
                self.db.table(PHOTOS_TABLE)
                .update({"isPrimary": False})
                .eq("reptileId", reptile_id)
                .neq("id", except_id)
                .execute()
            )

        await asyncio.to_thread(_update)

    async def ping(self) -> None:
        def _query():
            return self.db.table(REPTILES_TABLE).select("id").limit(1).execute()

        await asyncio.to_thread(_query)


def build_supabase_services(db: Client) -> DomainServices:
    return build_services(SupabaseEntityStore(db))
