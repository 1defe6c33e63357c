"""Entity service: validation and ownership rules over a storage backend.

Ownership: a reptile belongs to its userId; every child row belongs to the
owner of its reptile. Reptile deletes are soft (deletedAt) so the pull feed
can tell clients to drop them; child deletes are hard.
"""

import logging
import uuid
from typing import Any, Protocol

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import SyncTable
from .base import DomainServices, Entity, now_iso
from .schemas import validate_payload

logger = logging.getLogger("snakey.services")


class EntityStore(Protocol):
    """Storage primitives an EntityService needs. Rows use camelCase columns."""

    async def fetch(self, table: SyncTable, record_id: str) -> Entity | None: ...

    async def save(self, table: SyncTable, entity: Entity) -> Entity: ...

    async def remove(self, table: SyncTable, record_id: str) -> None: ...

    async def reptile_ids_for_user(self, user_id: str) -> list[str]: ...

    async def changed_since(
        self,
        table: SyncTable,
        since_ms: int,
        user_id: str | None = None,
        reptile_ids: list[str] | None = None,
    ) -> list[Entity]: ...

    async def clear_primary_photos(self, reptile_id: str, except_id: str) -> None: ...

    async def ping(self) -> None: ...


class EntityService:
    """DomainService for one table.

    Args:
        table: The table this service owns.
        store: Storage backend shared by all six services.
    """

    def __init__(self, table: SyncTable, store: EntityStore):
        self.table = table
        self.store = store

    async def create(
        self,
        user_id: str,
        parent_id: str | None,
        payload: dict[str, Any],
        record_id: str | None = None,
    ) -> Entity:
        """Create (or, for a replayed client id, upsert) an entity."""
        data = validate_payload(self.table, payload, partial=False)
        record_id = record_id or str(uuid.uuid4())

        if self.table.has_parent:
            if not parent_id:
                raise ValidationError(
                    "reptileId is required", field_errors={"reptileId": ["Required"]}
                )
            await self._owned_reptile(user_id, parent_id)

        existing = await self.store.fetch(self.table, record_id)
        now = now_iso()
        if existing is not None:
            await self._check_owner(user_id, existing)
            if existing.get("deletedAt"):
                raise NotFoundError(f"{self._label} {record_id} not found")
            entity = {**existing, **data}
        else:
            entity = {"id": record_id, **data, "createdAt": now}

        if self.table.has_parent:
            entity["reptileId"] = parent_id
        else:
            entity["userId"] = user_id
            entity.setdefault("deletedAt", None)
        if not self.table.append_only:
            entity["updatedAt"] = now

        saved = await self.store.save(self.table, entity)
        if self.table == SyncTable.PHOTOS and saved.get("isPrimary"):
            await self.store.clear_primary_photos(parent_id, saved["id"])
        logger.debug(f"{'Upserted' if existing else 'Created'} {self.table.value}/{record_id}")
        return saved

    async def update(self, user_id: str, record_id: str, payload: dict[str, Any]) -> Entity:
        entity = await self.get_by_id(user_id, record_id)
        changes = validate_payload(self.table, payload, partial=True)
        updated = {**entity, **changes}
        if not self.table.append_only:
            updated["updatedAt"] = now_iso()

        saved = await self.store.save(self.table, updated)
        if self.table == SyncTable.PHOTOS and changes.get("isPrimary"):
            await self.store.clear_primary_photos(saved["reptileId"], saved["id"])
        return saved

    async def delete(self, user_id: str, record_id: str) -> None:
        entity = await self.get_by_id(user_id, record_id)
        if self.table == SyncTable.REPTILES:
            now = now_iso()
            await self.store.save(self.table, {**entity, "deletedAt": now, "updatedAt": now})
            logger.info(f"Soft-deleted reptile {record_id} for {user_id}")
            return
        await self.store.remove(self.table, record_id)

    async def get_by_id(self, user_id: str, record_id: str) -> Entity:
        """Fetch one visible entity owned by user_id.

        Raises NotFoundError for missing or soft-deleted rows and
        ForbiddenError for rows owned by someone else.
        """
        entity = await self.store.fetch(self.table, record_id)
        if entity is None or entity.get("deletedAt"):
            raise NotFoundError(f"{self._label} {record_id} not found")
        await self._check_owner(user_id, entity)
        return entity

    async def changed_since(self, user_id: str, since_ms: int) -> list[Entity]:
        """Entities modified strictly after since_ms, soft-deleted reptiles included."""
        if self.table == SyncTable.REPTILES:
            return await self.store.changed_since(self.table, since_ms, user_id=user_id)
        reptile_ids = await self.store.reptile_ids_for_user(user_id)
        if not reptile_ids:
            return []
        return await self.store.changed_since(self.table, since_ms, reptile_ids=reptile_ids)

    async def ping(self) -> None:
        await self.store.ping()

    # === Ownership ===

    @property
    def _label(self) -> str:
        return self.table.value.rstrip("s").replace("_", " ").capitalize()

    async def _owned_reptile(self, user_id: str, reptile_id: str) -> Entity:
        reptile = await self.store.fetch(SyncTable.REPTILES, reptile_id)
        if reptile is None or reptile.get("deletedAt"):
            raise NotFoundError(f"Reptile {reptile_id} not found")
        if reptile.get("userId") != user_id:
            raise ForbiddenError(f"Reptile {reptile_id} belongs to another user")
        return reptile

    async def _check_owner(self, user_id: str, entity: Entity) -> None:
        if self.table == SyncTable.REPTILES:
            if entity.get("userId") != user_id:
                raise ForbiddenError(f"Reptile {entity['id']} belongs to another user")
            return

        reptile = await self.store.fetch(SyncTable.REPTILES, entity.get("reptileId") or "")
        if reptile is None:
            raise NotFoundError(f"Reptile {entity.get('reptileId')} not found")
        if reptile.get("userId") != user_id:
            raise ForbiddenError(f"{self._label} {entity['id']} belongs to another user")


def build_services(store: EntityStore) -> DomainServices:
    """One EntityService per table over a shared store."""
    return DomainServices(**{table.value: EntityService(table, store) for table in SyncTable})
